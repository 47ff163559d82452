"""FastAPI dependencies."""

from app.deps.services import require_generation_service, require_queue, require_report_store

__all__ = ["require_generation_service", "require_queue", "require_report_store"]
