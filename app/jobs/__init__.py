"""Job system package."""

from app.jobs.models import Job, QueueStats, ReportJobPayload, ReportJobResult
from app.jobs.types import JobStatus, ReportStatus, ReportType

__all__ = [
    "Job",
    "JobStatus",
    "QueueStats",
    "ReportJobPayload",
    "ReportJobResult",
    "ReportStatus",
    "ReportType",
]
