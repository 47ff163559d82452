"""Report job request/response schemas."""

import re
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.jobs.models import ReportJobPayload
from app.jobs.types import JobStatus, ReportType

_DOMAIN_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)+$")


class QueueReportRequest(BaseModel):
    """Request to generate a report asynchronously."""

    company_name: str = Field(..., min_length=1, max_length=200)
    company_domain: str = Field(..., min_length=3, max_length=253)
    industry: Optional[str] = Field(None, max_length=200)
    competitors: list[str] = Field(default_factory=list, max_length=10)
    report_type: ReportType = ReportType.MEDIA_MONITORING
    date_range_days: int = Field(default=7, ge=1, le=365)
    user_id: Optional[UUID] = None
    report_config_id: Optional[UUID] = None
    target_report_id: Optional[UUID] = Field(
        None, description="Pre-created report to write into"
    )
    is_public: bool = False
    idempotency_key: Optional[str] = Field(
        None,
        max_length=128,
        description="Repeated submissions with the same key return the same job",
    )

    @field_validator("company_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("company_name must not be blank")
        return v

    @field_validator("company_domain")
    @classmethod
    def normalize_domain(cls, v: str) -> str:
        """Accept bare domains or URLs; store the lowercase host without www."""
        v = v.strip().lower()
        v = re.sub(r"^https?://", "", v).split("/")[0]
        if v.startswith("www."):
            v = v[4:]
        if not _DOMAIN_RE.match(v):
            raise ValueError(f"Invalid company domain: {v!r}")
        return v

    @field_validator("competitors")
    @classmethod
    def clean_competitors(cls, v: list[str]) -> list[str]:
        return [c.strip() for c in v if c and c.strip()]

    def to_payload(self) -> ReportJobPayload:
        return ReportJobPayload(
            company_name=self.company_name,
            company_domain=self.company_domain,
            report_type=self.report_type,
            industry=self.industry,
            competitors=tuple(self.competitors),
            date_range_days=self.date_range_days,
            user_id=self.user_id,
            report_config_id=self.report_config_id,
            target_report_id=self.target_report_id,
            is_public=self.is_public,
        )


class QueueReportResponse(BaseModel):
    """Response for an accepted report job."""

    job_id: UUID
    status: str = "queued"
    report_id: Optional[UUID] = None


class JobView(BaseModel):
    """Caller-facing job status."""

    id: UUID
    state: JobStatus
    progress: int = Field(..., ge=0, le=100)
    attempts: int
    max_attempts: int
    data: dict[str, Any]
    result: Optional[dict[str, Any]] = None
    failed_reason: Optional[str] = None
    submitted_at: datetime
    processed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class CancelJobResponse(BaseModel):
    job_id: UUID
    cancelled: bool


class QueueStatsResponse(BaseModel):
    """Job counts by state."""

    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int
    total: int
