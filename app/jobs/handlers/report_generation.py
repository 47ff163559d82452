"""Report generation handler - runs the pipeline for one job attempt.

Progress checkpoints:
    10  job claimed
    20  target report resolved, pipeline starting
    90  pipeline finished
    100 content persisted
"""

import time
from typing import Any, Optional
from uuid import UUID

import structlog

from app.jobs.models import Job, ReportJobResult
from app.jobs.types import ReportStatus
from app.repositories.reports import GeneratedReport
from app.services.pipeline import PipelineInput, ReportPipeline
from app.services.reports.store import ReportStore

logger = structlog.get_logger(__name__)

PROGRESS_CLAIMED = 10
PROGRESS_PIPELINE_STARTED = 20
PROGRESS_PIPELINE_DONE = 90
PROGRESS_PERSISTED = 100


class ReportGenerationHandler:
    """Handler for report jobs.

    The report is only marked failed on the job's final attempt, so a report
    leaves ``generating`` exactly once even when a retry later succeeds.
    """

    def __init__(self, store: ReportStore, pipeline: ReportPipeline):
        self.store = store
        self.pipeline = pipeline

    async def __call__(self, job: Job, ctx: dict[str, Any]) -> dict[str, Any]:
        progress = ctx["progress"]
        log = logger.bind(job_id=str(job.id), attempt=job.attempt)
        await progress(PROGRESS_CLAIMED)

        report_id: Optional[UUID] = job.payload.target_report_id
        try:
            report = await self.store.prepare_report(job.payload, job.id)
            report_id = report.id
            log = log.bind(report_id=str(report_id))

            if report.status is ReportStatus.COMPLETED:
                # An earlier attempt persisted the report but never finished the job
                log.info("report_already_completed")
                await progress(PROGRESS_PERSISTED)
                return _result(report)

            await progress(PROGRESS_PIPELINE_STARTED)
            log.info("report_generation_started")
            start = time.perf_counter()
            content = await self.pipeline.run(PipelineInput.from_payload(job.payload))
            await progress(PROGRESS_PIPELINE_DONE)

            duration_ms = int((time.perf_counter() - start) * 1000)
            report = await self.store.complete_with_content(
                report_id, content.to_dict(), duration_ms
            )
        except Exception as e:
            log.error("report_generation_failed", error=str(e))
            if job.attempt >= job.max_attempts and report_id is not None:
                await self.record_failure(report_id, str(e))
            raise

        await progress(PROGRESS_PERSISTED)
        log.info("report_generation_succeeded", duration_ms=report.generation_duration_ms)
        return _result(report)

    async def record_failure(self, report_id: UUID, message: str) -> None:
        """Mark the report failed. Errors here never replace the original one."""
        try:
            await self.store.mark_failed(report_id, message)
        except Exception:
            logger.error(
                "report_failure_persist_failed",
                report_id=str(report_id),
                exc_info=True,
            )

    async def abandon(self, job: Job) -> None:
        """Settle the report of a job that ran out of attempts without a worker."""
        report_id = job.payload.target_report_id
        if report_id is None:
            report = await self.store.find_by_job(job.id)
            report_id = report.id if report else None
        if report_id is not None:
            await self.record_failure(report_id, job.failure_reason or "Job failed")


def _result(report: GeneratedReport) -> dict[str, Any]:
    return ReportJobResult(
        report_id=report.id,
        public_slug=report.public_slug,
        generation_duration_ms=report.generation_duration_ms or 0,
    ).to_dict()
