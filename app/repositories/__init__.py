"""Database repositories for the report generation service."""

from app.repositories import jobs, report_configs, reports

__all__ = ["jobs", "report_configs", "reports"]
