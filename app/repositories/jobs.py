"""Repository for report job queue operations."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

import structlog

from app.jobs.models import Job, QueueStats, ReportJobPayload
from app.jobs.types import JobStatus, ensure_transition, sources_for

logger = structlog.get_logger(__name__)


class JobRepository:
    """Repository for report job queue operations.

    Every status update is guarded by the set of statuses the transition
    table allows as a source, so a stale writer can never move a job
    backwards.
    """

    def __init__(self, pool):
        self._pool = pool

    async def create(
        self,
        payload: ReportJobPayload,
        dedupe_key: Optional[str] = None,
        max_attempts: int = 2,
        run_after: Optional[datetime] = None,
    ) -> Job:
        """Append a waiting job. An existing job with the same dedupe key is returned as-is."""
        query = """
            INSERT INTO report_jobs (status, payload, dedupe_key, max_attempts, run_after)
            VALUES ('waiting', $1, $2, $3, COALESCE($4, now()))
            ON CONFLICT (dedupe_key) WHERE dedupe_key IS NOT NULL
            DO UPDATE SET id = report_jobs.id  -- no-op, just return existing
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                payload.to_dict(),
                dedupe_key,
                max_attempts,
                run_after,
            )
        return self._row_to_job(row)

    async def claim(self, worker_id: str) -> Optional[Job]:
        """Claim the oldest eligible waiting job using FOR UPDATE SKIP LOCKED.

        Exactly one caller can win a given row; concurrent claimers skip it.
        Returns None if no jobs available.
        """
        query = """
            WITH cte AS (
                SELECT id FROM report_jobs
                WHERE status = ANY($2::text[]) AND run_after <= now()
                ORDER BY created_at
                FOR UPDATE SKIP LOCKED
                LIMIT 1
            )
            UPDATE report_jobs j SET
                status = 'active',
                locked_at = now(),
                locked_by = $1,
                started_at = now(),
                progress = 0,
                attempt = j.attempt + 1
            FROM cte
            WHERE j.id = cte.id
            RETURNING j.*
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, worker_id, sources_for(JobStatus.ACTIVE))

        if row:
            logger.info(
                "job_claimed",
                job_id=str(row["id"]),
                attempt=row["attempt"],
                worker_id=worker_id,
            )
            return self._row_to_job(row)
        return None

    async def update_progress(
        self, job_id: UUID, attempt: int, worker_id: str, progress: int
    ) -> bool:
        """Raise progress of the attempt this worker owns. Lower values are ignored.

        A progress write also renews the attempt's lock.
        """
        query = """
            UPDATE report_jobs SET progress = $4, locked_at = now()
            WHERE id = $1 AND attempt = $2 AND locked_by = $3
              AND status = 'active' AND progress <= $4
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id, attempt, worker_id, progress)
        return row is not None

    async def extend_lock(self, job_id: UUID, attempt: int, worker_id: str) -> bool:
        """Renew the lock of a running attempt so the reaper leaves it alone."""
        query = """
            UPDATE report_jobs SET locked_at = now()
            WHERE id = $1 AND attempt = $2 AND locked_by = $3 AND status = 'active'
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id, attempt, worker_id)
        return row is not None

    async def complete(
        self, job_id: UUID, attempt: int, worker_id: str, result: dict[str, Any]
    ) -> Optional[Job]:
        """Mark the attempt this worker owns as completed.

        Returns None when the job is no longer active or the attempt was
        superseded (reaped and claimed again).
        """
        query = """
            UPDATE report_jobs SET
                status = 'completed',
                progress = 100,
                result = $2,
                failure_reason = NULL,
                locked_at = NULL,
                locked_by = NULL,
                finished_at = now()
            WHERE id = $1 AND status = ANY($3::text[])
              AND attempt = $4 AND locked_by = $5
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query, job_id, result, sources_for(JobStatus.COMPLETED), attempt, worker_id
            )
        if not row:
            logger.warning("job_complete_skipped", job_id=str(job_id), attempt=attempt)
            return None
        logger.info("job_completed", job_id=str(job_id))
        return self._row_to_job(row)

    async def fail(
        self,
        job_id: UUID,
        attempt: int,
        worker_id: str,
        error: str,
        backoff_base_s: float,
    ) -> Optional[Job]:
        """Record a failed attempt, scheduling a retry while attempts remain.

        Returns None when the job is no longer active or the attempt was
        superseded, so a late writer never touches the next attempt.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT * FROM report_jobs WHERE id = $1 FOR UPDATE", job_id
                )
                if not row:
                    raise ValueError(f"Job {job_id} not found")

                current = JobStatus(row["status"])
                if current is not JobStatus.ACTIVE:
                    logger.warning(
                        "job_fail_skipped", job_id=str(job_id), status=current.value
                    )
                    return None
                if row["attempt"] != attempt or row["locked_by"] != worker_id:
                    logger.warning(
                        "job_fail_superseded",
                        job_id=str(job_id),
                        attempt=attempt,
                        current_attempt=row["attempt"],
                    )
                    return None
                ensure_transition(current, JobStatus.FAILED)

                if attempt < row["max_attempts"]:
                    delay = calculate_backoff(attempt, backoff_base_s)
                    retry_status = JobStatus.DELAYED if delay > 0 else JobStatus.WAITING
                    ensure_transition(JobStatus.FAILED, retry_status)
                    run_after = datetime.now(timezone.utc) + timedelta(seconds=delay)
                    query = """
                        UPDATE report_jobs SET
                            status = $2,
                            locked_at = NULL,
                            locked_by = NULL,
                            run_after = $3,
                            last_error = $4
                        WHERE id = $1
                        RETURNING *
                    """
                    row = await conn.fetchrow(
                        query, job_id, retry_status.value, run_after, error
                    )
                    logger.info(
                        "job_retry_scheduled",
                        job_id=str(job_id),
                        attempt=attempt,
                        backoff=delay,
                    )
                else:
                    query = """
                        UPDATE report_jobs SET
                            status = 'failed',
                            locked_at = NULL,
                            locked_by = NULL,
                            finished_at = now(),
                            failure_reason = $2,
                            last_error = $2
                        WHERE id = $1
                        RETURNING *
                    """
                    row = await conn.fetchrow(query, job_id, error)
                    logger.warning("job_failed", job_id=str(job_id), error=error)

        return self._row_to_job(row)

    async def remove_pending(self, job_id: UUID) -> bool:
        """Delete a job that has not started its next attempt yet."""
        query = """
            DELETE FROM report_jobs
            WHERE id = $1 AND status = ANY($2::text[])
            RETURNING id
        """
        pending = [s.value for s in JobStatus if s.is_pending]
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id, pending)
        return row is not None

    async def get(self, job_id: UUID) -> Optional[Job]:
        """Get a job by ID."""
        query = "SELECT * FROM report_jobs WHERE id = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id)
        return self._row_to_job(row) if row else None

    async def counts(self) -> QueueStats:
        """Count jobs by status."""
        query = "SELECT status, COUNT(*) AS cnt FROM report_jobs GROUP BY status"
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query)
        stats = QueueStats()
        for row in rows:
            setattr(stats, JobStatus(row["status"]).value, row["cnt"])
        return stats

    async def promote_due(self) -> int:
        """Move delayed jobs whose backoff has elapsed back to waiting."""
        query = """
            UPDATE report_jobs SET status = 'waiting'
            WHERE status = 'delayed' AND run_after <= now()
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query)
        return len(rows)

    async def prune(
        self, keep_completed: int, keep_completed_age_s: int, keep_failed: int
    ) -> int:
        """Evict old terminal jobs beyond the retention bounds."""
        query = """
            WITH ranked AS (
                SELECT id, status, finished_at,
                       ROW_NUMBER() OVER (
                           PARTITION BY status ORDER BY finished_at DESC NULLS LAST
                       ) AS rn
                FROM report_jobs
                WHERE status IN ('completed', 'failed')
            )
            DELETE FROM report_jobs j
            USING ranked r
            WHERE j.id = r.id AND (
                (r.status = 'completed' AND (
                    r.rn > $1
                    OR r.finished_at < now() - make_interval(secs => $2)
                ))
                OR (r.status = 'failed' AND r.rn > $3)
            )
            RETURNING j.id
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                query, keep_completed, float(keep_completed_age_s), keep_failed
            )
        count = len(rows)
        if count > 0:
            logger.info("jobs_pruned", count=count)
        return count

    async def find_stale(
        self, stale_minutes: int, exclude_ids: Optional[list[UUID]] = None
    ) -> list[Job]:
        """Active jobs whose lock is older than the stale timeout (worker died).

        ``exclude_ids`` are attempts the caller is running itself.
        """
        query = """
            SELECT * FROM report_jobs
            WHERE status = 'active'
              AND locked_at < now() - make_interval(mins => $1)
              AND NOT (id = ANY($2::uuid[]))
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, stale_minutes, list(exclude_ids or []))
        return [self._row_to_job(row) for row in rows]

    def _row_to_job(self, row) -> Job:
        """Convert a database row to a Job model."""
        return Job(
            id=row["id"],
            status=JobStatus(row["status"]),
            payload=ReportJobPayload.from_dict(row["payload"]),
            attempt=row["attempt"],
            max_attempts=row["max_attempts"],
            run_after=row["run_after"],
            progress=row["progress"],
            locked_at=row["locked_at"],
            locked_by=row["locked_by"],
            dedupe_key=row["dedupe_key"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            result=row["result"],
            failure_reason=row["failure_reason"],
            last_error=row["last_error"],
        )


def calculate_backoff(attempt: int, base_s: float) -> float:
    """Exponential retry delay: base * 2^(attempt - 1), so 5s, 10s, 20s..."""
    if attempt < 1:
        return 0.0
    return base_s * (2 ** (attempt - 1))
