#!/usr/bin/env python3
"""Run the report worker pool as a standalone process.

Usage:
    DATABASE_URL=postgresql://... python scripts/run_worker.py

SIGINT/SIGTERM stop claiming new jobs, let in-flight jobs finish (up to
REPORT_WORKER_SHUTDOWN_TIMEOUT_S), then close the database pool.
"""
import asyncio
import sys

import structlog

from app.config import get_settings
from app.core.lifespan import build_controller, init_database
from app.core.logging import configure_logging
from app.core.sentry import init_sentry

logger = structlog.get_logger("run_worker")


async def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)
    init_sentry(settings)

    if not settings.report_worker_enabled:
        logger.error("Report worker disabled (REPORT_WORKER_ENABLED=false)")
        return 1

    pool = await init_database(settings)
    if pool is None:
        logger.error("Database unavailable, worker not started")
        return 1

    controller = build_controller(pool, settings)
    if controller.worker_pool is None:
        await controller.stop()
        return 1

    controller.install_signal_handlers()
    await controller.run_until_stopped()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
