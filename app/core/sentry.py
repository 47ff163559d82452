"""Sentry initialization and configuration."""

import os
from typing import Any, Optional

import sentry_sdk
import structlog
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from app import __version__
from app.config import Settings

logger = structlog.get_logger(__name__)


def _before_send(event: dict, hint: dict) -> Optional[dict]:
    """
    Filter out 4xx client errors from Sentry events.

    Validation failures, missing jobs and rate limiting (400, 404, 409, 422,
    429) are caller errors. Only 5xx and worker errors are captured.
    """
    if "exc_info" in hint:
        exc_type, exc_value, tb = hint["exc_info"]
        if hasattr(exc_value, "status_code"):
            status_code = exc_value.status_code
            if 400 <= status_code < 500:
                return None

    if "contexts" in event:
        response = event.get("contexts", {}).get("response", {})
        status_code = response.get("status_code", 0)
        if 400 <= status_code < 500:
            return None

    return event


def _create_traces_sampler(settings: Settings) -> Any:
    """Create a sampling function for Sentry traces."""

    def traces_sampler(sampling_context: dict) -> float:
        # Probes are scraped constantly and carry no signal
        tx_name = sampling_context.get("transaction_context", {}).get("name", "")
        if tx_name.endswith(("/health", "/metrics")):
            return 0.0

        parent = sampling_context.get("parent_sampled")
        if parent is not None:
            return float(parent)

        return settings.sentry_traces_sample_rate

    return traces_sampler


def init_sentry(settings: Settings) -> bool:
    """
    Initialize Sentry if DSN is configured.

    Returns True if Sentry was initialized, False otherwise.
    """
    if not settings.sentry_dsn:
        return False

    # Only send ERROR-level logs as Sentry events
    sentry_logging = LoggingIntegration(
        level=None,
        event_level="ERROR",
    )

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        release=os.environ.get("GIT_SHA", f"clipping-reports@{__version__}"),
        integrations=[
            sentry_logging,
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        traces_sampler=_create_traces_sampler(settings),
        send_default_pii=False,
        attach_stacktrace=True,
        before_send=_before_send,
    )

    sentry_sdk.set_tag("service", "clipping-reports")
    sentry_sdk.set_tag("answer_model", settings.answer_model)

    logger.info(
        "Sentry initialized",
        environment=settings.sentry_environment,
        traces_sample_rate=settings.sentry_traces_sample_rate,
    )
    return True
