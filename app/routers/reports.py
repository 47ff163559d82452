"""Generated report endpoints: read, public link, visibility, listing."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.deps import require_generation_service, require_report_store
from app.jobs.queue import INFRA_ERRORS, QueueUnavailableError
from app.schemas import (
    GenerateNowRequest,
    GenerateNowResponse,
    PublicReportResponse,
    ReportListResponse,
    ReportResponse,
    VisibilityRequest,
)
from app.services.reports import (
    ReportAlreadyGeneratingError,
    ReportGenerationService,
    ReportNotFoundError,
    ReportStore,
    SlugAllocationError,
)

router = APIRouter(prefix="/reports", tags=["reports"])
logger = structlog.get_logger(__name__)


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")


def _store_unavailable(e: Exception) -> HTTPException:
    logger.error("Report store unavailable", error=str(e))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Report store unavailable: {e}",
    )


@router.get("/public/{slug}", response_model=PublicReportResponse)
async def get_public_report(
    slug: str, store: ReportStore = Depends(require_report_store)
) -> PublicReportResponse:
    """Read a shared report. Every successful read counts one view."""
    try:
        report = await store.get_by_slug(slug)
    except INFRA_ERRORS as e:
        raise _store_unavailable(e)
    if report is None or report.public_slug is None:
        raise _not_found("Report")
    return PublicReportResponse(
        id=report.id,
        public_slug=report.public_slug,
        content=report.to_dict()["content"],
        view_count=report.view_count,
        generation_completed_at=report.generation_completed_at,
    )


@router.get("/user/{user_id}", response_model=ReportListResponse)
async def list_user_reports(
    user_id: UUID,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
    store: ReportStore = Depends(require_report_store),
) -> ReportListResponse:
    """A user's reports, newest first."""
    try:
        reports = await store.list_for_user(user_id, limit=limit, offset=offset)
    except INFRA_ERRORS as e:
        raise _store_unavailable(e)
    return ReportListResponse(
        reports=[ReportResponse(**r.to_dict()) for r in reports],
        limit=limit,
        offset=offset,
    )


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: UUID, store: ReportStore = Depends(require_report_store)
) -> ReportResponse:
    """Read a report by id. Does not count as a view."""
    try:
        report = await store.get_by_id(report_id)
    except INFRA_ERRORS as e:
        raise _store_unavailable(e)
    if report is None:
        raise _not_found(f"Report {report_id}")
    return ReportResponse(**report.to_dict())


@router.patch("/{report_id}/visibility", response_model=ReportResponse)
async def set_report_visibility(
    report_id: UUID,
    body: VisibilityRequest,
    store: ReportStore = Depends(require_report_store),
) -> ReportResponse:
    """Share or unshare a report. Sharing assigns a public slug; unsharing clears it."""
    try:
        report = await store.set_visibility(report_id, body.is_public)
    except ReportNotFoundError:
        raise _not_found(f"Report {report_id}")
    except SlugAllocationError as e:
        logger.error("Public slug allocation failed", report_id=str(report_id), error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except INFRA_ERRORS as e:
        raise _store_unavailable(e)
    return ReportResponse(**report.to_dict())


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    report_id: UUID, store: ReportStore = Depends(require_report_store)
) -> None:
    try:
        deleted = await store.delete(report_id)
    except INFRA_ERRORS as e:
        raise _store_unavailable(e)
    if not deleted:
        raise _not_found(f"Report {report_id}")


@router.post(
    "/configs/{config_id}/generate",
    response_model=GenerateNowResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"description": "Report config not found"},
        409: {"description": "A report for this config is already generating"},
        503: {"description": "Queue or report store unavailable, retry later"},
    },
)
async def generate_now(
    config_id: UUID,
    body: GenerateNowRequest,
    service: ReportGenerationService = Depends(require_generation_service),
) -> GenerateNowResponse:
    """Generate a report now from a stored report config."""
    try:
        job = await service.submit_for_config(
            config_id, user_id=body.user_id, is_public=body.is_public
        )
    except ReportNotFoundError:
        raise _not_found(f"Report config {config_id}")
    except ReportAlreadyGeneratingError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except QueueUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except INFRA_ERRORS as e:
        raise _store_unavailable(e)
    return GenerateNowResponse(job_id=job.id, report_id=job.payload.target_report_id)
