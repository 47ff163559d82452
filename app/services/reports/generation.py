"""Report submission: pre-create the report, then enqueue its job."""

from dataclasses import replace
from typing import Optional
from uuid import UUID

import structlog

from app.jobs.models import Job, ReportJobPayload
from app.jobs.queue import INFRA_ERRORS, QueueUnavailableError, ReportQueue
from app.jobs.types import ReportType
from app.services.reports.store import ReportNotFoundError, ReportStore

logger = structlog.get_logger(__name__)


class ReportAlreadyGeneratingError(Exception):
    """A report for this config is already being generated."""

    def __init__(self, report_id: UUID):
        self.report_id = report_id
        super().__init__(f"Report {report_id} is already generating")


class ReportGenerationService:
    """Composes the Report Store and the Queue for callers.

    Every job enqueued here names its target report, so the worker never has
    to guess which report a failure belongs to.
    """

    def __init__(self, store: ReportStore, queue: ReportQueue):
        self._store = store
        self._queue = queue

    async def submit(
        self, payload: ReportJobPayload, idempotency_key: Optional[str] = None
    ) -> Job:
        if payload.target_report_id is not None:
            return await self._queue.submit(payload, idempotency_key)

        try:
            user_id = payload.user_id or await self._store.bootstrap_owner(
                payload.company_domain
            )
            config_id = payload.report_config_id or await self._store.ensure_config(
                user_id, payload
            )
            report = await self._store.create_generating(
                user_id, config_id, is_public=payload.is_public
            )
        except INFRA_ERRORS as e:
            logger.error("report_precreate_failed", error=str(e))
            raise QueueUnavailableError(f"Report store unavailable: {e}") from e

        prepared = replace(
            payload,
            user_id=user_id,
            report_config_id=config_id,
            target_report_id=report.id,
        )
        try:
            job = await self._queue.submit(prepared, idempotency_key)
        except QueueUnavailableError:
            await self._discard(report.id, "Report queue unavailable")
            raise

        if job.payload.target_report_id != report.id:
            # Idempotent resubmission: the existing job owns its own report
            await self._discard(report.id, None)
            logger.info("report_submission_deduplicated", job_id=str(job.id))
        return job

    async def submit_for_config(
        self,
        config_id: UUID,
        user_id: Optional[UUID] = None,
        is_public: bool = False,
    ) -> Job:
        """Generate a report now from a stored config."""
        config = await self._store.get_config(config_id)
        if config is None:
            raise ReportNotFoundError(f"Report config {config_id} not found")

        generating = await self._store.find_generating_for_config(config_id)
        if generating is not None:
            raise ReportAlreadyGeneratingError(generating.id)

        params = config.search_parameters
        payload = ReportJobPayload(
            company_name=params.get("company_name") or config.title,
            company_domain=config.company_domain,
            report_type=ReportType(config.report_type),
            industry=params.get("industry"),
            competitors=tuple(params.get("competitors") or ()),
            date_range_days=int(params.get("date_range_days") or 7),
            user_id=user_id or config.user_id,
            report_config_id=config_id,
            is_public=is_public,
        )
        return await self.submit(payload)

    async def _discard(self, report_id: UUID, failure: Optional[str]) -> None:
        """Drop or fail a pre-created report whose job was never enqueued."""
        try:
            if failure is None:
                await self._store.delete(report_id)
            else:
                await self._store.mark_failed(report_id, failure)
        except Exception:
            logger.warning("report_discard_failed", report_id=str(report_id), exc_info=True)
