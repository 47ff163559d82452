"""Application lifespan management - startup and shutdown logic.

This is the composition root: the database pool, queue, report store,
pipeline, worker pool and lifecycle controller are all constructed here.
"""

import json
import traceback
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import asyncpg
import structlog
from fastapi import FastAPI

from app import __version__
from app.config import Settings, get_settings
from app.jobs.handlers import ReportGenerationHandler
from app.jobs.lifecycle import LifecycleController
from app.jobs.queue import JobPolicy, ReportQueue
from app.jobs.worker import WorkerPool
from app.repositories.jobs import JobRepository
from app.repositories.report_configs import ReportConfigRepository
from app.repositories.reports import ReportRepository
from app.services.llm_base import LLMNotConfiguredError
from app.services.llm_factory import LLMStartupError, create_llm_client, get_llm_status
from app.services.pipeline import PipelineStageError, build_pipeline
from app.services.reports import ReportGenerationService, ReportStore

logger = structlog.get_logger(__name__)

# Global clients - accessed by routers through the getters below
_db_pool: Optional[asyncpg.Pool] = None
_controller: Optional[LifecycleController] = None
_report_store: Optional[ReportStore] = None
_generation_service: Optional[ReportGenerationService] = None


def get_db_pool() -> Optional[asyncpg.Pool]:
    """Get the database connection pool."""
    return _db_pool


def get_controller() -> Optional[LifecycleController]:
    """Get the lifecycle controller (queue + worker pool)."""
    return _controller


def get_report_store() -> Optional[ReportStore]:
    return _report_store


def get_generation_service() -> Optional[ReportGenerationService]:
    return _generation_service


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode json/jsonb columns to Python objects and encode dicts on write."""
    for typename in ("json", "jsonb"):
        await conn.set_type_codec(
            typename,
            encoder=lambda value: json.dumps(value, default=str),
            decoder=json.loads,
            schema="pg_catalog",
        )


async def init_database(settings: Settings) -> Optional[asyncpg.Pool]:
    """Initialize the asyncpg pool. Returns None when unconfigured or unreachable."""
    if not settings.database_url:
        logger.warning("Database connection not configured. Set DATABASE_URL in .env")
        return None

    try:
        logger.info(
            "Attempting database connection",
            url_prefix=settings.database_url[:30] + "...",
        )
        # Short timeout - the service can still start in degraded mode
        pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            ssl="require" if settings.db_ssl else None,
            timeout=10,
            command_timeout=30,
            init=_init_connection,
        )
        logger.info(
            "Database pool initialized",
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        return pool
    except Exception as e:
        logger.error(
            "Failed to initialize database pool - report endpoints will be unavailable",
            error=str(e),
            traceback=traceback.format_exc(),
        )
        return None


def build_worker_pool(
    settings: Settings, queue: ReportQueue, store: ReportStore
) -> Optional[WorkerPool]:
    """Wire the pipeline and handler into a worker pool, if enabled."""
    if not settings.report_worker_enabled:
        logger.info("Report worker disabled (REPORT_WORKER_ENABLED=false)")
        return None

    try:
        llm = create_llm_client(settings)
        pipeline = build_pipeline(settings, llm)
    except (LLMNotConfiguredError, PipelineStageError) as e:
        # Submissions are still accepted; jobs wait until a worker can run them
        logger.error("Report worker not started", error=str(e))
        return None

    handler = ReportGenerationHandler(store, pipeline)
    return WorkerPool.from_settings(settings, queue, handler, on_abandoned=handler.abandon)


def build_controller(pool: asyncpg.Pool, settings: Settings) -> LifecycleController:
    """Construct the queue, report store and worker pool around one pool."""
    global _report_store, _generation_service

    queue = ReportQueue(JobRepository(pool), JobPolicy.from_settings(settings))
    _report_store = ReportStore(ReportRepository(pool), ReportConfigRepository(pool))
    _generation_service = ReportGenerationService(_report_store, queue)
    return LifecycleController(
        pool,
        queue,
        build_worker_pool(settings, queue, _report_store),
        shutdown_timeout_s=settings.report_worker_shutdown_timeout_s,
    )


def _log_llm_configuration(settings: Settings) -> None:
    try:
        llm_status = get_llm_status(settings)
        logger.info(
            "LLM configuration",
            provider_config=llm_status.provider_config,
            provider_resolved=llm_status.provider_resolved,
            model=llm_status.model,
            llm_enabled=llm_status.enabled,
        )
    except LLMStartupError as e:
        logger.error("LLM startup failed", error=str(e))
        raise


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global _db_pool, _controller, _report_store, _generation_service

    settings = get_settings()
    logger.info(
        "Starting report generation service",
        version=__version__,
        host=settings.service_host,
        port=settings.service_port,
        worker_enabled=settings.report_worker_enabled,
    )

    _log_llm_configuration(settings)
    _db_pool = await init_database(settings)
    if _db_pool:
        _controller = build_controller(_db_pool, settings)
        _controller.start()

    yield

    logger.info("Shutting down report generation service")
    if _controller:
        # Drains in-flight jobs, then closes the pool
        await _controller.stop()
    elif _db_pool:
        await _db_pool.close()
    _controller = None
    _report_store = None
    _generation_service = None
    _db_pool = None
