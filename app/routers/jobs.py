"""Report job endpoints: submit, status, cancel, queue stats."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.config import get_settings
from app.core.rate_limit import limiter
from app.deps import require_generation_service, require_queue
from app.jobs.queue import QueueUnavailableError, ReportQueue
from app.schemas import (
    CancelJobResponse,
    JobView,
    QueueReportRequest,
    QueueReportResponse,
    QueueStatsResponse,
)
from app.services.reports import ReportGenerationService, ReportNotFoundError

router = APIRouter(prefix="/jobs", tags=["jobs"])
logger = structlog.get_logger(__name__)


def _queue_unavailable(e: QueueUnavailableError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.post(
    "/queue-report",
    response_model=QueueReportResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        202: {"description": "Job accepted"},
        404: {"description": "Target report not found"},
        503: {"description": "Queue unavailable, retry later"},
    },
)
@limiter.limit(lambda: get_settings().submit_rate_limit)
async def queue_report(
    request: Request,
    body: QueueReportRequest,
    service: ReportGenerationService = Depends(require_generation_service),
) -> QueueReportResponse:
    """
    Queue a report for asynchronous generation.

    Returns immediately with the job id; poll ``GET /jobs/{job_id}`` for
    progress. The report is created in ``generating`` state before the job
    is enqueued.
    """
    try:
        job = await service.submit(body.to_payload(), idempotency_key=body.idempotency_key)
    except QueueUnavailableError as e:
        raise _queue_unavailable(e)
    except ReportNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return QueueReportResponse(job_id=job.id, report_id=job.payload.target_report_id)


@router.get(
    "/stats/queue",
    response_model=QueueStatsResponse,
    responses={503: {"description": "Queue unavailable"}},
)
async def queue_stats(queue: ReportQueue = Depends(require_queue)) -> QueueStatsResponse:
    """Job counts by state plus total."""
    try:
        stats = await queue.stats()
    except QueueUnavailableError as e:
        raise _queue_unavailable(e)
    return QueueStatsResponse(**stats.to_dict())


@router.get(
    "/{job_id}",
    response_model=JobView,
    responses={
        200: {"description": "Job status retrieved"},
        404: {"description": "Job not found"},
    },
)
async def get_job_status(job_id: UUID, queue: ReportQueue = Depends(require_queue)) -> JobView:
    """
    Get the status of a report job.

    Job states:
    - waiting: queued, not yet claimed
    - active: a worker is running the pipeline
    - delayed: a failed attempt is waiting out its retry backoff
    - completed: report persisted, ``result`` holds report id and slug
    - failed: all attempts exhausted, ``failed_reason`` holds the last error

    Progress is reported as a percentage (0-100) at coarse checkpoints.
    """
    try:
        job = await queue.get(job_id)
    except QueueUnavailableError as e:
        raise _queue_unavailable(e)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    return JobView(**job.to_view())


@router.delete(
    "/{job_id}",
    response_model=CancelJobResponse,
    responses={
        404: {"description": "Job not found"},
        409: {"description": "Job already started or finished"},
    },
)
async def cancel_job(
    job_id: UUID, queue: ReportQueue = Depends(require_queue)
) -> CancelJobResponse:
    """Cancel a job that has not started. Running jobs are never interrupted."""
    try:
        removed = await queue.remove(job_id)
        if removed:
            return CancelJobResponse(job_id=job_id, cancelled=True)
        job = await queue.get(job_id)
    except QueueUnavailableError as e:
        raise _queue_unavailable(e)

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    logger.info("Cancel rejected", job_id=str(job_id), state=job.status.value)
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Job {job_id} is {job.status.value} and can no longer be cancelled",
    )
