"""API routers for the report generation service."""

from app.routers import health, jobs, metrics, reports

__all__ = ["health", "jobs", "metrics", "reports"]
