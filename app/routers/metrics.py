"""Prometheus metrics endpoint for the report generation service."""

import structlog
from fastapi import APIRouter, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

router = APIRouter()
logger = structlog.get_logger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "clipping_reports_requests_total",
    "Total number of requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "clipping_reports_request_latency_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Queue depth, refreshed on every scrape
QUEUE_JOBS = Gauge(
    "report_queue_jobs",
    "Report jobs in the queue by state",
    ["state"],
)

# Connection pool metrics
DB_POOL_SIZE = Gauge(
    "clipping_reports_db_pool_size",
    "Current database connection pool size",
)

DB_POOL_AVAILABLE = Gauge(
    "clipping_reports_db_pool_available",
    "Available connections in database pool",
)


def record_request(method: str, endpoint: str, status_code: int, duration: float):
    """Record request metrics."""
    REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=status_code).inc()
    REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(duration)


def set_queue_metrics(counts: dict[str, int]):
    """Set per-state queue gauges (the ``total`` key is skipped)."""
    for state, value in counts.items():
        if state != "total":
            QUEUE_JOBS.labels(state=state).set(value)


def set_db_pool_metrics(pool_size: int, available: int):
    """Set database pool metrics."""
    DB_POOL_SIZE.set(pool_size)
    DB_POOL_AVAILABLE.set(available)


async def _refresh_gauges() -> None:
    from app.core.lifespan import get_controller, get_db_pool

    pool = get_db_pool()
    if pool is not None:
        set_db_pool_metrics(pool.get_size(), pool.get_idle_size())

    controller = get_controller()
    if controller is None:
        return
    try:
        stats = await controller.queue.stats()
    except Exception as e:
        # A scrape must still succeed while the database is down
        logger.warning("Queue metrics refresh failed", error=str(e))
        return
    set_queue_metrics(stats.to_dict())


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint.

    Returns metrics in Prometheus text format for scraping.
    This endpoint is excluded from OpenAPI docs.
    """
    await _refresh_gauges()
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
