"""Health check endpoint."""

import time
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends

from app import __version__
from app.core.lifespan import get_controller, get_db_pool
from app.schemas import DependencyHealth, HealthResponse

router = APIRouter()
logger = structlog.get_logger(__name__)


async def check_database_health(pool) -> DependencyHealth:
    """Check Postgres connectivity with a trivial query."""
    if pool is None:
        return DependencyHealth(status="error", error="Database pool not initialized")

    start = time.perf_counter()
    try:
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        latency = (time.perf_counter() - start) * 1000
        return DependencyHealth(status="ok", latency_ms=latency)
    except Exception as e:
        latency = (time.perf_counter() - start) * 1000
        return DependencyHealth(status="error", latency_ms=latency, error=str(e))


def worker_status() -> Optional[dict[str, Any]]:
    controller = get_controller()
    if controller is None or controller.worker_pool is None:
        return None
    return controller.worker_pool.status()


@router.get("/health", response_model=HealthResponse)
async def health_check(pool=Depends(get_db_pool)) -> HealthResponse:
    """
    Service health.

    ``degraded`` when the database is unreachable or the worker pool that
    should run in this process is not running.
    """
    database = await check_database_health(pool)
    worker = worker_status()

    healthy = database.status == "ok" and (worker is None or worker["running"])
    if not healthy:
        logger.warning("Health check degraded", database=database.status, worker=worker)

    return HealthResponse(
        status="ok" if healthy else "degraded",
        database=database,
        worker=worker,
        version=__version__,
    )
