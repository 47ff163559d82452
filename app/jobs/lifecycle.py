"""Lifecycle controller - owns the worker pool and the queue's connection."""

import asyncio
import signal
from typing import Any, Optional

import structlog

from app.jobs.queue import ReportQueue
from app.jobs.worker import WorkerPool

logger = structlog.get_logger(__name__)


class LifecycleController:
    """Starts and stops the worker pool for one process.

    Constructed explicitly by the composition root (app lifespan or the
    standalone worker script); nothing starts on import.

    Shutdown order: stop claiming, drain in-flight attempts (bounded by
    ``shutdown_timeout_s``), then close the database pool.
    """

    def __init__(
        self,
        pool,
        queue: ReportQueue,
        worker_pool: Optional[WorkerPool],
        shutdown_timeout_s: float = 300.0,
    ):
        self._pool = pool
        self._queue = queue
        self._worker_pool = worker_pool
        self._shutdown_timeout_s = shutdown_timeout_s
        self._stop_requested = asyncio.Event()
        self._started = False
        self._stopped = False

    @property
    def queue(self) -> ReportQueue:
        return self._queue

    @property
    def worker_pool(self) -> Optional[WorkerPool]:
        return self._worker_pool

    @property
    def started(self) -> bool:
        return self._started and not self._stopped

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        if self._worker_pool is None:
            logger.info("worker_pool_disabled")
            return
        self._worker_pool.start()

    async def stop(self) -> None:
        """Graceful shutdown. Safe to call more than once."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("lifecycle_stopping", timeout_s=self._shutdown_timeout_s)

        if self._worker_pool is not None:
            try:
                await self._worker_pool.stop(timeout=self._shutdown_timeout_s)
            except Exception as e:
                logger.error("worker_pool_stop_failed", error=str(e))

        if self._pool is not None:
            await self._pool.close()
            logger.info("database_pool_closed")
        self._stop_requested.set()

    async def stats(self) -> dict[str, Any]:
        """Queue counts plus this process's worker pool state."""
        counts = await self._queue.stats()
        return {
            "queue": self._queue.name,
            "jobs": counts.to_dict(),
            "worker": self._worker_pool.status() if self._worker_pool else None,
        }

    def request_stop(self) -> None:
        self._stop_requested.set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to a graceful stop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except NotImplementedError:
                # Not supported on this platform's event loop
                logger.warning("signal_handler_unsupported", signal=sig.name)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        self.request_stop()

    async def run_until_stopped(self) -> None:
        """Start, block until a stop is requested, then shut down."""
        self.start()
        await self._stop_requested.wait()
        await self.stop()
