"""Middleware configuration for the FastAPI application."""

import os
import time
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app import __version__
from app.config import Settings
from app.core.rate_limit import limiter
from app.routers import metrics

logger = structlog.get_logger(__name__)


def setup_rate_limiter(app: FastAPI) -> Limiter:
    """Attach the rate limiter to the app."""
    app.state.limiter = limiter
    # mypy: slowapi handler signature differs from FastAPI expected type
    app.add_exception_handler(
        RateLimitExceeded, _rate_limit_exceeded_handler  # type: ignore[arg-type]
    )
    return limiter


def setup_cors(app: FastAPI) -> None:
    """Configure CORS middleware."""
    cors_origins_str = os.environ.get("CORS_ORIGINS", "*")
    if cors_origins_str == "*":
        # Development mode - allow all (will log warning)
        cors_origins = ["*"]
        logger.warning("CORS_ORIGINS not set, allowing all origins (not for production)")
    else:
        cors_origins = [origin.strip() for origin in cors_origins_str.split(",")]
        logger.info("CORS origins configured", origins=cors_origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )


def _reject(status_code: int, detail: str, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "retryable": False},
        headers={"X-Request-ID": request_id, "X-API-Version": __version__},
    )


def create_request_middleware(settings: Settings):
    """Create request middleware with settings closure."""

    # Public report links, their images and probes never need the API key
    public_paths = {"/health", "/metrics", "/docs", "/openapi.json", "/redoc", "/"}

    async def request_middleware(request: Request, call_next):
        """Add request ID, timing, size limits, and API key validation to all requests."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        path = request.url.path
        is_public = (
            path in public_paths
            or path.startswith("/reports/public/")
            or path.startswith("/uploads/")
        )
        if settings.api_key and not is_public:
            provided_key = request.headers.get(settings.api_key_header_name)
            if not provided_key:
                logger.warning("API key missing", path=path)
                return _reject(
                    401,
                    f"API key required. Provide key in {settings.api_key_header_name} header",
                    request_id,
                )
            if provided_key != settings.api_key:
                logger.warning("Invalid API key", path=path)
                return _reject(403, "Invalid API key", request_id)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                body_size = int(content_length)
            except ValueError:
                logger.warning("Malformed Content-Length", content_length=content_length)
                return _reject(400, "Invalid Content-Length header", request_id)
        else:
            body_size = 0
        if body_size > settings.max_request_body_size:
            logger.warning(
                "Request body too large",
                content_length=body_size,
                max_size=settings.max_request_body_size,
            )
            return _reject(413, "Request body too large", request_id)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception("Request failed", error=str(e))
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error", "retryable": True},
                headers={"X-Request-ID": request_id, "X-API-Version": __version__},
            )

        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"
        response.headers["X-API-Version"] = __version__

        # Skip /metrics to avoid recursion
        if path != "/metrics":
            route = request.scope.get("route")
            metrics.record_request(
                method=request.method,
                endpoint=getattr(route, "path", path),
                status_code=response.status_code,
                duration=duration_ms / 1000,
            )

        logger.info(
            "Request completed",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response

    return request_middleware


async def security_headers_middleware(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if request.headers.get("X-Forwarded-Proto") == "https":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Set up all middleware for the application."""
    setup_rate_limiter(app)
    setup_cors(app)

    # Security headers (added first, runs last in middleware stack)
    app.middleware("http")(security_headers_middleware)

    # Request middleware (request ID, timing, auth, size limits)
    app.middleware("http")(create_request_middleware(settings))
