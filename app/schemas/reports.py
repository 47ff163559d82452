"""Generated report schemas."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.jobs.types import ReportStatus


class ReportResponse(BaseModel):
    """A generated report. ``content`` is null until the report completes."""

    id: UUID
    report_config_id: UUID
    user_id: UUID
    status: ReportStatus
    content: Optional[dict[str, Any]] = None
    is_public: bool
    public_slug: Optional[str] = None
    view_count: int
    error_message: Optional[str] = None
    generation_started_at: Optional[datetime] = None
    generation_completed_at: Optional[datetime] = None
    generation_duration_ms: Optional[int] = None
    created_at: datetime


class PublicReportResponse(BaseModel):
    """What an anonymous reader sees through a public slug."""

    id: UUID
    public_slug: str
    content: Optional[dict[str, Any]] = None
    view_count: int
    generation_completed_at: Optional[datetime] = None


class VisibilityRequest(BaseModel):
    is_public: bool


class ReportListResponse(BaseModel):
    reports: list[ReportResponse]
    limit: int
    offset: int


class GenerateNowRequest(BaseModel):
    """Generate a report immediately from a stored report config."""

    user_id: Optional[UUID] = None
    is_public: bool = False


class GenerateNowResponse(BaseModel):
    job_id: UUID
    status: str = "queued"
    report_id: Optional[UUID] = Field(None, description="Report the job writes to")
