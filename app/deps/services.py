"""FastAPI dependencies resolving the service objects built at startup."""

from fastapi import HTTPException, status

from app.core.lifespan import get_controller, get_generation_service, get_report_store
from app.jobs.queue import ReportQueue
from app.services.reports import ReportGenerationService, ReportStore


def _unavailable(what: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"{what} unavailable - database not connected",
    )


def require_queue() -> ReportQueue:
    controller = get_controller()
    if controller is None:
        raise _unavailable("Report queue")
    return controller.queue


def require_generation_service() -> ReportGenerationService:
    service = get_generation_service()
    if service is None:
        raise _unavailable("Report queue")
    return service


def require_report_store() -> ReportStore:
    store = get_report_store()
    if store is None:
        raise _unavailable("Report store")
    return store
