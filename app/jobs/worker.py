"""Worker pool - claims report jobs from the queue and executes them."""

import asyncio
import os
import socket
import time
import traceback
from functools import partial
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import structlog

from app import __version__
from app.config import Settings
from app.jobs.metrics import (
    JOB_DURATION,
    JOBS_ACTIVE,
    JOBS_FINISHED,
    JOBS_RETRIED,
    JOBS_STARTED,
)
from app.jobs.models import Job
from app.jobs.queue import INFRA_ERRORS, ReportQueue
from app.jobs.rate_limit import RollingWindowLimiter
from app.jobs.types import JobStatus

logger = structlog.get_logger(__name__)

JobHandler = Callable[[Job, dict[str, Any]], Awaitable[dict[str, Any]]]
AbandonHook = Callable[[Job], Awaitable[None]]


def generate_worker_id() -> str:
    """Generate a unique worker ID: hostname:pid."""
    return f"{socket.gethostname()}:{os.getpid()}"


class WorkerPool:
    """Bounded set of concurrent job executors.

    A single dispatcher loop claims jobs while a concurrency slot is free and
    the rate limiter admits another start; each claimed job runs in its own
    task. Loop errors (database unreachable, etc.) are logged and the loop
    keeps going.
    """

    def __init__(
        self,
        queue: ReportQueue,
        handler: JobHandler,
        concurrency: int = 2,
        limiter: Optional[RollingWindowLimiter] = None,
        poll_interval_s: float = 1.0,
        reap_interval_s: float = 60.0,
        lock_refresh_s: float = 30.0,
        on_abandoned: Optional[AbandonHook] = None,
        worker_id: Optional[str] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._queue = queue
        self._handler = handler
        self._concurrency = concurrency
        self._limiter = limiter or RollingWindowLimiter(max_starts=10, window_s=60.0)
        self._poll_interval_s = poll_interval_s
        self._reap_interval_s = reap_interval_s
        self._lock_refresh_s = lock_refresh_s
        self._on_abandoned = on_abandoned
        self._worker_id = worker_id or generate_worker_id()

        self._slots = asyncio.Semaphore(concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._running_ids: set[UUID] = set()
        self._dispatcher: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self._running = False
        self._last_reap = 0.0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        queue: ReportQueue,
        handler: JobHandler,
        on_abandoned: Optional[AbandonHook] = None,
    ) -> "WorkerPool":
        return cls(
            queue,
            handler,
            concurrency=settings.report_worker_concurrency,
            limiter=RollingWindowLimiter(
                settings.report_worker_rate_max, settings.report_worker_rate_window_s
            ),
            poll_interval_s=settings.report_worker_poll_interval_s,
            lock_refresh_s=settings.report_worker_lock_refresh_s,
            on_abandoned=on_abandoned,
        )

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def status(self) -> dict[str, Any]:
        return {
            "worker_id": self._worker_id,
            "running": self._running,
            "concurrency": self._concurrency,
            "in_flight": self.in_flight,
            "starts_in_window": self._limiter.in_window,
        }

    def start(self) -> None:
        """Start the dispatcher loop. Idempotent."""
        if self._dispatcher is not None and not self._dispatcher.done():
            return
        self._running = True
        self._stopping.clear()
        self._dispatcher = asyncio.create_task(self._dispatch_loop())
        logger.info(
            "worker_started",
            worker_id=self._worker_id,
            version=__version__,
            concurrency=self._concurrency,
            rate_max=self._limiter.max_starts,
            rate_window_s=self._limiter.window_s,
        )

    async def stop(self, timeout: float = 300.0) -> None:
        """Stop claiming, then let in-flight attempts finish.

        Attempts still running after ``timeout`` seconds are cancelled; their
        jobs stay active until the stale-job reaper fails them.
        """
        if self._dispatcher is None:
            return
        self._running = False
        self._stopping.set()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        pending = self._pending()
        while pending:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
            pending = self._pending()

        if pending:
            logger.warning("worker_drain_timeout", worker_id=self._worker_id, in_flight=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        self._dispatcher = None
        logger.info("worker_stopped", worker_id=self._worker_id)

    def _pending(self) -> set[asyncio.Task]:
        pending = set(self._tasks)
        if self._dispatcher is not None and not self._dispatcher.done():
            pending.add(self._dispatcher)
        return pending

    async def _dispatch_loop(self) -> None:
        while self._running:
            await self._slots.acquire()
            spawned = False
            try:
                if not self._running:
                    break
                await self._maintain()

                delay = self._limiter.delay()
                if delay > 0:
                    await self._idle(min(delay, self._poll_interval_s))
                    continue

                job = await self._queue.claim(self._worker_id)
                if job is None:
                    await self._idle(self._poll_interval_s)
                    continue

                self._limiter.record()
                self._spawn(job)
                spawned = True
            except Exception as e:
                logger.error(
                    "worker_loop_error", error=str(e), traceback=traceback.format_exc()
                )
                await self._idle(self._poll_interval_s)
            finally:
                if not spawned:
                    self._slots.release()

    async def _maintain(self) -> None:
        """Promote due retries and, less often, reap stalled attempts."""
        await self._queue.promote_due()

        now = time.monotonic()
        if now - self._last_reap < self._reap_interval_s:
            return
        self._last_reap = now
        # Attempts running here renew their own locks, even when a stage hangs
        for job in await self._queue.reap_stale(exclude=set(self._running_ids)):
            if job.status is JobStatus.FAILED and self._on_abandoned is not None:
                await self._on_abandoned(job)

    async def _idle(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _spawn(self, job: Job) -> None:
        task = asyncio.create_task(self._execute(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, job: Job) -> None:
        log = logger.bind(job_id=str(job.id), attempt=job.attempt, worker_id=self._worker_id)
        log.info("job_executing")
        JOBS_STARTED.inc()
        JOBS_ACTIVE.inc()
        start = time.monotonic()
        ctx = {
            "worker_id": self._worker_id,
            "progress": partial(self._report_progress, job),
        }
        self._running_ids.add(job.id)
        lock_keeper = asyncio.create_task(self._keep_lock(job))
        try:
            try:
                result = await self._handler(job, ctx)
            except Exception as e:
                log.error("job_handler_failed", error=str(e))
                await self._record_failure(job, str(e))
            else:
                await self._record_success(job, result)
        finally:
            lock_keeper.cancel()
            await asyncio.gather(lock_keeper, return_exceptions=True)
            self._running_ids.discard(job.id)
            JOBS_ACTIVE.dec()
            JOB_DURATION.observe(time.monotonic() - start)
            self._slots.release()

    async def _keep_lock(self, job: Job) -> None:
        while True:
            await asyncio.sleep(self._lock_refresh_s)
            try:
                held = await self._queue.extend_lock(job)
            except Exception as e:
                logger.warning("job_lock_refresh_failed", job_id=str(job.id), error=str(e))
                continue
            if not held:
                logger.warning("job_lock_lost", job_id=str(job.id), attempt=job.attempt)
                return

    async def _record_success(self, job: Job, result: dict[str, Any]) -> None:
        try:
            done = await self._queue.complete(job, result)
        except Exception as e:
            # The job stays active; the reaper retries it and the handler
            # finds its report already completed.
            logger.error("job_complete_persist_failed", job_id=str(job.id), error=str(e))
            return
        if done is None:
            return
        JOBS_FINISHED.labels(status=JobStatus.COMPLETED.value).inc()
        logger.info("job_succeeded", job_id=str(job.id))

    async def _record_failure(self, job: Job, error: str) -> None:
        try:
            updated = await self._queue.fail(job, error)
        except Exception as e:
            logger.error("job_fail_persist_failed", job_id=str(job.id), error=str(e))
            return
        if updated is None:
            return
        if updated.status is JobStatus.FAILED:
            JOBS_FINISHED.labels(status=JobStatus.FAILED.value).inc()
        else:
            JOBS_RETRIED.inc()

    async def _report_progress(self, job: Job, value: int) -> None:
        try:
            await self._queue.report_progress(job, value)
        except INFRA_ERRORS as e:
            logger.warning("job_progress_failed", job_id=str(job.id), progress=value, error=str(e))
