"""Common schemas: health and error responses."""

from typing import Any, Optional

from pydantic import BaseModel, Field


# ===========================================
# Health & Error Responses
# ===========================================


class DependencyHealth(BaseModel):
    """Health status for a dependency."""

    status: str = Field(..., description="Dependency status (ok/error/disabled)")
    latency_ms: Optional[float] = Field(None, description="Response latency in ms")
    error: Optional[str] = Field(None, description="Error message if unhealthy")


class HealthResponse(BaseModel):
    """Response for health endpoint."""

    status: str = Field(..., description="Overall service status (ok/degraded)")
    database: DependencyHealth = Field(..., description="Postgres health")
    worker: Optional[dict[str, Any]] = Field(
        None, description="Worker pool state, null when not running in this process"
    )
    version: str = Field(..., description="Service version")


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    retryable: bool = Field(default=False, description="Whether error is retryable")
