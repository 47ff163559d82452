"""Durable report generation queue backed by the report_jobs table."""

import time
from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

import asyncpg
import structlog

from app.config import Settings
from app.jobs.models import Job, QueueStats, ReportJobPayload
from app.repositories.jobs import JobRepository

logger = structlog.get_logger(__name__)

QUEUE_NAME = "report-generation"
STALLED_REASON = "Job stalled: worker lock expired"

# Errors that mean the backing store could not be reached
INFRA_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.CannotConnectNowError,
    ConnectionError,
    OSError,
)


class QueueUnavailableError(Exception):
    """The queue's backing store is unreachable. Callers may retry."""


@dataclass(frozen=True)
class JobPolicy:
    """Default retry and retention policy for report jobs."""

    max_attempts: int = 2
    backoff_base_s: float = 5.0
    keep_completed: int = 100
    keep_completed_age_s: int = 24 * 3600
    keep_failed: int = 200
    stale_timeout_minutes: int = 60

    @classmethod
    def from_settings(cls, settings: Settings) -> "JobPolicy":
        return cls(
            max_attempts=settings.report_job_max_attempts,
            backoff_base_s=settings.report_job_backoff_base_s,
            keep_completed=settings.report_job_keep_completed,
            keep_completed_age_s=settings.report_job_keep_completed_age_s,
            keep_failed=settings.report_job_keep_failed,
            stale_timeout_minutes=settings.report_job_stale_timeout_minutes,
        )


def make_dedupe_key(
    company_domain: str,
    idempotency_key: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> str:
    """Build the job dedupe key.

    With an explicit idempotency key, repeated submissions collapse onto one
    job. Without one the key is time based, so only submissions for the same
    domain within the same millisecond collide.
    """
    domain = company_domain.strip().lower()
    if idempotency_key:
        return f"report-{domain}-key-{idempotency_key}"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"report-{domain}-{now_ms}"


class ReportQueue:
    """Queue contract used by callers and by the worker pool."""

    def __init__(self, repo: JobRepository, policy: Optional[JobPolicy] = None):
        self._repo = repo
        self.policy = policy or JobPolicy()

    @property
    def name(self) -> str:
        return QUEUE_NAME

    # ------------------------------------------------------------------
    # Caller-facing operations
    # ------------------------------------------------------------------

    async def submit(
        self, payload: ReportJobPayload, idempotency_key: Optional[str] = None
    ) -> Job:
        """Durably append a waiting job. Never waits on pipeline execution."""
        dedupe_key = make_dedupe_key(payload.company_domain, idempotency_key)
        try:
            job = await self._repo.create(
                payload,
                dedupe_key=dedupe_key,
                max_attempts=self.policy.max_attempts,
            )
        except INFRA_ERRORS as e:
            logger.error("queue_submit_failed", error=str(e))
            raise QueueUnavailableError(f"Report queue unavailable: {e}") from e

        logger.info(
            "job_queued",
            job_id=str(job.id),
            dedupe_key=dedupe_key,
            company_name=payload.company_name,
            report_type=payload.report_type.value,
        )
        return job

    async def get(self, job_id: UUID) -> Optional[Job]:
        try:
            return await self._repo.get(job_id)
        except INFRA_ERRORS as e:
            logger.error("queue_get_failed", job_id=str(job_id), error=str(e))
            raise QueueUnavailableError(f"Report queue unavailable: {e}") from e

    async def remove(self, job_id: UUID) -> bool:
        """Remove a job that is still waiting or delayed.

        Returns False for active and finished jobs; in-flight work is never
        cancelled.
        """
        try:
            removed = await self._repo.remove_pending(job_id)
        except INFRA_ERRORS as e:
            logger.error("queue_remove_failed", job_id=str(job_id), error=str(e))
            raise QueueUnavailableError(f"Report queue unavailable: {e}") from e
        if removed:
            logger.info("job_removed", job_id=str(job_id))
        return removed

    async def stats(self) -> QueueStats:
        try:
            return await self._repo.counts()
        except INFRA_ERRORS as e:
            logger.error("queue_stats_failed", error=str(e))
            raise QueueUnavailableError(f"Report queue unavailable: {e}") from e

    # ------------------------------------------------------------------
    # Worker-facing operations
    # ------------------------------------------------------------------

    async def claim(self, worker_id: str) -> Optional[Job]:
        return await self._repo.claim(worker_id)

    # Writes below take the claimed job and only apply while that exact
    # attempt still holds the lock.

    async def report_progress(self, job: Job, progress: int) -> bool:
        if not 0 <= progress <= 100:
            raise ValueError(f"progress must be within 0-100, got {progress}")
        return await self._repo.update_progress(job.id, job.attempt, job.locked_by, progress)

    async def extend_lock(self, job: Job) -> bool:
        return await self._repo.extend_lock(job.id, job.attempt, job.locked_by)

    async def complete(self, job: Job, result: dict) -> Optional[Job]:
        done = await self._repo.complete(job.id, job.attempt, job.locked_by, result)
        if done is not None:
            await self._prune()
        return done

    async def fail(self, job: Job, error: str) -> Optional[Job]:
        """Record a failed attempt; the retry policy decides what happens next."""
        updated = await self._repo.fail(
            job.id, job.attempt, job.locked_by, error, self.policy.backoff_base_s
        )
        if updated is not None and not updated.status.is_pending:
            await self._prune()
        return updated

    async def promote_due(self) -> int:
        return await self._repo.promote_due()

    async def reap_stale(self, exclude: Iterable[UUID] = ()) -> list[Job]:
        """Fail attempts whose worker disappeared, through the normal retry path.

        ``exclude`` holds the caller's own in-flight job ids. Returns the jobs
        as they stand after the failure was recorded.
        """
        stale = await self._repo.find_stale(
            self.policy.stale_timeout_minutes, exclude_ids=list(exclude)
        )
        reaped = []
        for job in stale:
            updated = await self.fail(job, STALLED_REASON)
            if updated is not None:
                reaped.append(updated)
        if reaped:
            logger.warning("stale_jobs_reaped", count=len(reaped))
        return reaped

    async def _prune(self) -> None:
        try:
            await self._repo.prune(
                self.policy.keep_completed,
                self.policy.keep_completed_age_s,
                self.policy.keep_failed,
            )
        except Exception as e:
            logger.warning("job_prune_failed", error=str(e))
