"""Report Store: persistence boundary for report configs and generated reports."""

from typing import Any, Callable, Optional
from uuid import UUID

import asyncpg
import structlog

from app.jobs.models import ReportJobPayload
from app.jobs.types import InvalidTransitionError, ReportStatus, ensure_report_transition
from app.repositories.report_configs import ReportConfig, ReportConfigRepository
from app.repositories.reports import GeneratedReport, ReportRepository
from app.services.reports.slugs import generate_public_slug

logger = structlog.get_logger(__name__)

MAX_SLUG_ATTEMPTS = 5


class ReportNotFoundError(Exception):
    """The referenced report (or report config) does not exist."""


class SlugAllocationError(Exception):
    """No unique public slug could be allocated."""


class ReportStore:
    """Report persistence used by the submission service and the workers.

    Only the worker that owns a job's attempt writes to that job's report, so
    read-then-write sequences here need no extra locking.
    """

    def __init__(
        self,
        reports: ReportRepository,
        configs: ReportConfigRepository,
        slug_factory: Callable[[], str] = generate_public_slug,
        max_slug_attempts: int = MAX_SLUG_ATTEMPTS,
    ):
        self._reports = reports
        self._configs = configs
        self._slug_factory = slug_factory
        self._max_slug_attempts = max_slug_attempts

    # ------------------------------------------------------------------
    # Owners and configs
    # ------------------------------------------------------------------

    async def bootstrap_owner(self, company_domain: str) -> UUID:
        return await self._configs.bootstrap_owner(company_domain)

    async def ensure_config(self, user_id: UUID, payload: ReportJobPayload) -> UUID:
        return await self._configs.ensure(
            user_id=user_id,
            company_name=payload.company_name,
            company_domain=payload.company_domain,
            report_type=payload.report_type,
            search_parameters=search_parameters_for(payload),
        )

    async def get_config(self, config_id: UUID) -> Optional[ReportConfig]:
        return await self._configs.get(config_id)

    # ------------------------------------------------------------------
    # Lifecycle writes
    # ------------------------------------------------------------------

    async def create_generating(
        self,
        user_id: UUID,
        report_config_id: UUID,
        is_public: bool = False,
        job_id: Optional[UUID] = None,
    ) -> GeneratedReport:
        return await self._reports.create_generating(
            user_id, report_config_id, is_public=is_public, job_id=job_id
        )

    async def prepare_report(self, payload: ReportJobPayload, job_id: UUID) -> GeneratedReport:
        """Resolve the report a job writes to.

        Uses the pre-created report when the payload names one. Payloads
        without a target get an owner, a config and a generating report here;
        the report is tied to the job so a retry reuses it.
        """
        if payload.target_report_id is not None:
            report = await self._reports.get(payload.target_report_id)
            if report is None:
                raise ReportNotFoundError(f"Report {payload.target_report_id} not found")
            return report

        existing = await self._reports.find_by_job(job_id)
        if existing is not None:
            return existing

        user_id = payload.user_id or await self.bootstrap_owner(payload.company_domain)
        config_id = payload.report_config_id or await self.ensure_config(user_id, payload)
        report = await self.create_generating(
            user_id, config_id, is_public=payload.is_public, job_id=job_id
        )
        logger.info(
            "report_bootstrapped_for_job",
            report_id=str(report.id),
            job_id=str(job_id),
        )
        return report

    async def complete_with_content(
        self, report_id: UUID, content: dict[str, Any], duration_ms: int
    ) -> GeneratedReport:
        """Persist content and move generating -> completed.

        A public report receives a fresh slug; collisions are retried.
        """
        report = await self._reports.get(report_id)
        if report is None:
            raise ReportNotFoundError(f"Report {report_id} not found")
        ensure_report_transition(report.status, ReportStatus.COMPLETED)

        for _ in range(self._max_slug_attempts):
            slug = self._slug_factory() if report.is_public else None
            try:
                completed = await self._reports.complete(report_id, content, duration_ms, slug)
            except asyncpg.UniqueViolationError:
                logger.warning("public_slug_collision", report_id=str(report_id))
                continue

            if completed is None:
                # Someone else finished the report between our read and write
                current = await self._reports.get(report_id)
                status = current.status.value if current else "missing"
                raise InvalidTransitionError("report", status, ReportStatus.COMPLETED.value)

            logger.info(
                "report_completed",
                report_id=str(report_id),
                duration_ms=duration_ms,
                public=completed.is_public,
            )
            return completed

        raise SlugAllocationError(
            f"Could not allocate a unique slug after {self._max_slug_attempts} attempts"
        )

    async def mark_failed(self, report_id: UUID, message: str) -> Optional[GeneratedReport]:
        """Move generating -> failed. Returns None if the report was not generating."""
        failed = await self._reports.fail(report_id, message)
        if failed is None:
            logger.warning("report_fail_skipped", report_id=str(report_id))
            return None
        logger.info("report_failed", report_id=str(report_id), error=message)
        return failed

    # ------------------------------------------------------------------
    # Reads and sharing
    # ------------------------------------------------------------------

    async def get_by_id(self, report_id: UUID) -> Optional[GeneratedReport]:
        return await self._reports.get(report_id)

    async def get_by_slug(self, slug: str) -> Optional[GeneratedReport]:
        """Public read. Each successful lookup counts one view."""
        return await self._reports.get_public_and_count_view(slug)

    async def find_by_job(self, job_id: UUID) -> Optional[GeneratedReport]:
        return await self._reports.find_by_job(job_id)

    async def find_generating_for_config(self, config_id: UUID) -> Optional[GeneratedReport]:
        return await self._reports.find_generating_for_config(config_id)

    async def set_visibility(self, report_id: UUID, is_public: bool) -> GeneratedReport:
        """Toggle public sharing.

        Making a completed report public assigns a fresh slug; one that is
        already public keeps its slug. Revoking clears the slug. Reports that
        are not completed only record the flag and get a slug on completion.
        """
        report = await self._reports.get(report_id)
        if report is None:
            raise ReportNotFoundError(f"Report {report_id} not found")

        if not is_public or report.status is not ReportStatus.COMPLETED:
            updated = await self._reports.update_visibility(report_id, is_public, None)
        elif report.is_public and report.public_slug:
            return report
        else:
            updated = await self._publish(report_id)

        if updated is None:
            raise ReportNotFoundError(f"Report {report_id} not found")
        logger.info(
            "report_visibility_changed",
            report_id=str(report_id),
            is_public=is_public,
        )
        return updated

    async def list_for_user(
        self, user_id: UUID, limit: int = 20, offset: int = 0
    ) -> list[GeneratedReport]:
        return await self._reports.list_for_user(user_id, limit=limit, offset=offset)

    async def delete(self, report_id: UUID) -> bool:
        return await self._reports.delete(report_id)

    async def _publish(self, report_id: UUID) -> Optional[GeneratedReport]:
        for _ in range(self._max_slug_attempts):
            try:
                return await self._reports.update_visibility(
                    report_id, True, self._slug_factory()
                )
            except asyncpg.UniqueViolationError:
                logger.warning("public_slug_collision", report_id=str(report_id))
        raise SlugAllocationError(
            f"Could not allocate a unique slug after {self._max_slug_attempts} attempts"
        )


def search_parameters_for(payload: ReportJobPayload) -> dict[str, Any]:
    """Search profile stored on the report config."""
    return {
        "company_name": payload.company_name,
        "industry": payload.industry,
        "competitors": list(payload.competitors),
        "keywords": [payload.company_name, *payload.competitors],
        "date_range_days": payload.date_range_days,
    }
