"""Report Store and submission services."""

from app.services.reports.generation import (
    ReportAlreadyGeneratingError,
    ReportGenerationService,
)
from app.services.reports.slugs import generate_public_slug
from app.services.reports.store import ReportNotFoundError, ReportStore, SlugAllocationError

__all__ = [
    "ReportAlreadyGeneratingError",
    "ReportGenerationService",
    "ReportNotFoundError",
    "ReportStore",
    "SlugAllocationError",
    "generate_public_slug",
]
