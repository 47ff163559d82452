"""Shared slowapi limiter for HTTP routes."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import get_settings

# Routes apply per-endpoint limits with @limiter.limit(...)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{get_settings().rate_limit_requests_per_minute}/minute"],
    enabled=get_settings().rate_limit_enabled,
)
