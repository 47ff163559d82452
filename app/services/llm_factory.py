"""LLM provider resolution and client construction."""

from dataclasses import dataclass
from typing import Literal

import structlog

from app.config import Settings
from app.services.llm_base import BaseLLMClient, LLMNotConfiguredError

logger = structlog.get_logger(__name__)

ProviderResolved = Literal["anthropic", "openai"]


class LLMStartupError(Exception):
    """Raised when LLM is required but no provider key is configured."""


@dataclass
class LLMStatus:
    """LLM configuration status."""

    enabled: bool
    provider_config: str
    provider_resolved: ProviderResolved | None
    model: str | None


def _key(value: str | None) -> str | None:
    return (value or "").strip() or None


def resolve_provider(settings: Settings) -> tuple[ProviderResolved | None, str | None]:
    """
    Resolve which provider to use based on settings.

    Returns:
        (provider_resolved, api_key) tuple, or (None, None) when no key is set
    """
    provider = settings.llm_provider
    anthropic_key = _key(settings.anthropic_api_key)
    openai_key = _key(settings.openai_api_key)

    if provider == "anthropic":
        if not anthropic_key:
            raise LLMStartupError("LLM_PROVIDER=anthropic but ANTHROPIC_API_KEY not set")
        return "anthropic", anthropic_key

    if provider == "openai":
        if not openai_key:
            raise LLMStartupError("LLM_PROVIDER=openai but OPENAI_API_KEY not set")
        return "openai", openai_key

    # Auto: prefer Anthropic, fall back to OpenAI
    if anthropic_key:
        return "anthropic", anthropic_key
    if openai_key:
        return "openai", openai_key

    if settings.llm_required:
        raise LLMStartupError(
            "LLM_REQUIRED=true but no API key configured. "
            "Set ANTHROPIC_API_KEY or OPENAI_API_KEY"
        )
    return None, None


def get_llm_status(settings: Settings) -> LLMStatus:
    """Describe the resolved provider without building a client."""
    provider, _ = resolve_provider(settings)
    return LLMStatus(
        enabled=provider is not None,
        provider_config=settings.llm_provider,
        provider_resolved=provider,
        model=settings.answer_model if provider else None,
    )


def create_llm_client(settings: Settings) -> BaseLLMClient:
    """
    Build the LLM client the pipeline stages share.

    Raises:
        LLMNotConfiguredError: If no provider key is configured
        LLMStartupError: If an explicitly selected provider has no key
    """
    provider, api_key = resolve_provider(settings)
    if provider is None or api_key is None:
        raise LLMNotConfiguredError(
            "Report generation needs ANTHROPIC_API_KEY or OPENAI_API_KEY"
        )

    if provider == "anthropic":
        from app.services.llm_anthropic import AnthropicLLMClient

        client: BaseLLMClient = AnthropicLLMClient(
            api_key=api_key, model=settings.answer_model, timeout=settings.llm_timeout
        )
    else:
        from app.services.llm_openai import OpenAILLMClient

        client = OpenAILLMClient(
            api_key=api_key, model=settings.answer_model, timeout=settings.llm_timeout
        )

    logger.info(
        "LLM initialized",
        provider_config=settings.llm_provider,
        provider_resolved=provider,
        model=settings.answer_model,
    )
    return client
