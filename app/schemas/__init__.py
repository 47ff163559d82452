"""Pydantic models for request/response validation.

Imports like `from app.schemas import X` re-export from the submodules.
"""

from app.schemas.common import DependencyHealth, ErrorResponse, HealthResponse
from app.schemas.jobs import (
    CancelJobResponse,
    JobView,
    QueueReportRequest,
    QueueReportResponse,
    QueueStatsResponse,
)
from app.schemas.reports import (
    GenerateNowRequest,
    GenerateNowResponse,
    PublicReportResponse,
    ReportListResponse,
    ReportResponse,
    VisibilityRequest,
)

__all__ = [
    "CancelJobResponse",
    "DependencyHealth",
    "ErrorResponse",
    "GenerateNowRequest",
    "GenerateNowResponse",
    "HealthResponse",
    "JobView",
    "PublicReportResponse",
    "QueueReportRequest",
    "QueueReportResponse",
    "QueueStatsResponse",
    "ReportListResponse",
    "ReportResponse",
    "VisibilityRequest",
]
