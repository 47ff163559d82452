"""Job system data models."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from app.jobs.types import JobStatus, ReportType

DEFAULT_DATE_RANGE_DAYS = 7


@dataclass(frozen=True)
class ReportJobPayload:
    """Immutable snapshot of a report generation request."""

    company_name: str
    company_domain: str
    report_type: ReportType = ReportType.MEDIA_MONITORING
    industry: Optional[str] = None
    competitors: tuple[str, ...] = ()
    date_range_days: int = DEFAULT_DATE_RANGE_DAYS
    user_id: Optional[UUID] = None
    report_config_id: Optional[UUID] = None
    target_report_id: Optional[UUID] = None
    is_public: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSONB storage."""
        return {
            "company_name": self.company_name,
            "company_domain": self.company_domain,
            "report_type": self.report_type.value,
            "industry": self.industry,
            "competitors": list(self.competitors),
            "date_range_days": self.date_range_days,
            "user_id": str(self.user_id) if self.user_id else None,
            "report_config_id": (
                str(self.report_config_id) if self.report_config_id else None
            ),
            "target_report_id": (
                str(self.target_report_id) if self.target_report_id else None
            ),
            "is_public": self.is_public,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReportJobPayload":
        def _uuid(value: Any) -> Optional[UUID]:
            if value is None or isinstance(value, UUID):
                return value
            return UUID(str(value))

        return cls(
            company_name=data["company_name"],
            company_domain=data["company_domain"],
            report_type=ReportType(data.get("report_type", ReportType.MEDIA_MONITORING)),
            industry=data.get("industry"),
            competitors=tuple(data.get("competitors") or ()),
            date_range_days=int(data.get("date_range_days") or DEFAULT_DATE_RANGE_DAYS),
            user_id=_uuid(data.get("user_id")),
            report_config_id=_uuid(data.get("report_config_id")),
            target_report_id=_uuid(data.get("target_report_id")),
            is_public=bool(data.get("is_public", False)),
        )


@dataclass
class ReportJobResult:
    """Result summary stored on a completed job."""

    report_id: UUID
    public_slug: Optional[str]
    generation_duration_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_id": str(self.report_id),
            "public_slug": self.public_slug,
            "generation_duration_ms": self.generation_duration_ms,
        }


@dataclass
class Job:
    """A report generation job in the queue."""

    id: UUID
    status: JobStatus
    payload: ReportJobPayload

    # Retry handling
    attempt: int = 0
    max_attempts: int = 2
    run_after: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    progress: int = 0

    # Lock info
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None

    dedupe_key: Optional[str] = None

    # Lifecycle timestamps
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Outcome: result on completion, failure_reason on terminal failure
    result: Optional[dict[str, Any]] = None
    failure_reason: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def can_retry(self) -> bool:
        return self.attempt < self.max_attempts

    def to_view(self) -> dict[str, Any]:
        """Caller-facing status view."""
        return {
            "id": str(self.id),
            "state": self.status.value,
            "progress": self.progress,
            "attempts": self.attempt,
            "max_attempts": self.max_attempts,
            "data": self.payload.to_dict(),
            "result": self.result,
            "failed_reason": self.failure_reason,
            "submitted_at": self.created_at,
            "processed_at": self.started_at,
            "finished_at": self.finished_at,
        }


@dataclass
class QueueStats:
    """Aggregate job counts by status."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed + self.delayed

    def to_dict(self) -> dict[str, int]:
        data = asdict(self)
        data["total"] = self.total
        return data
