"""Clipping Reports - FastAPI Application."""

from pathlib import Path

import structlog
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from app import __version__
from app.config import get_settings
from app.core.lifespan import lifespan
from app.core.logging import configure_logging
from app.core.middleware import setup_middleware
from app.core.sentry import init_sentry
from app.routers import health, jobs, metrics, reports

settings = get_settings()

configure_logging(settings.log_level)
logger = structlog.get_logger(__name__)

init_sentry(settings)

app = FastAPI(
    title="Clipping Reports",
    description="Asynchronous AI report generation: news search, summaries and images",
    version=__version__,
    lifespan=lifespan,
)

setup_middleware(app, settings)

app.include_router(health.router, tags=["health"])
app.include_router(metrics.router)
app.include_router(jobs.router)
app.include_router(reports.router)

# Generated article images are written here by the pipeline
Path(settings.image_upload_dir).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.image_upload_dir), name="uploads")


@app.get("/", include_in_schema=False)
async def root() -> dict:
    return {"service": "clipping-reports", "version": __version__}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.service_host,
        port=settings.service_port,
        reload=False,
    )
