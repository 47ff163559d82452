"""Base LLM client interface and shared types."""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal, TypedDict

import structlog

logger = structlog.get_logger(__name__)

# Message types
Role = Literal["system", "user", "assistant"]


class Message(TypedDict):
    """Chat message structure."""

    role: Role
    content: str


# Response types
@dataclass
class LLMResponse:
    """Response from an LLM generation call."""

    text: str
    model: str
    provider: str
    usage: dict | None = None  # {input_tokens, output_tokens}
    latency_ms: float | None = None


# ===========================================
# Errors - Provider-agnostic exception hierarchy
# Providers should map their errors to these in their adapters
# ===========================================


class LLMError(Exception):
    """Base error from LLM provider."""

    def __init__(self, message: str, provider: str, model: str | None = None):
        self.provider = provider
        self.model = model
        super().__init__(message)


class LLMNotConfiguredError(Exception):
    """Raised when LLM generation is requested but no provider is configured."""


class LLMTimeoutError(LLMError):
    """Request timed out waiting for LLM response."""

    def __init__(
        self,
        message: str = "LLM request timed out",
        provider: str = "unknown",
        model: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        super().__init__(message, provider, model)


class LLMRateLimitError(LLMError):
    """Rate limited by LLM provider."""

    def __init__(
        self,
        message: str = "Rate limited by LLM provider",
        provider: str = "unknown",
        model: str | None = None,
        retry_after_seconds: int | None = None,
    ):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message, provider, model)


class LLMAPIError(LLMError):
    """General API error from LLM provider (non-rate-limit)."""

    def __init__(
        self,
        message: str = "LLM provider API error",
        provider: str = "unknown",
        model: str | None = None,
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider, model)


_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Pull the outermost JSON object out of a model reply.

    Models often wrap JSON in prose or code fences; anything that does not
    parse to a dict yields None.
    """
    match = _JSON_OBJECT.search(text or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


# Base client
class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    def __init__(self, model: str):
        """
        Initialize the LLM client.

        Args:
            model: Default model for every pipeline prompt
        """
        self.model = model
        self.provider: str = "base"  # Override in subclasses

    @abstractmethod
    async def generate(
        self,
        *,
        messages: list[Message],
        model: str | None = None,
        max_tokens: int = 2000,
    ) -> LLMResponse:
        """
        Generate a response from the LLM.

        Args:
            messages: List of chat messages
            model: Model to use (defaults to the client model)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with text, model, provider, usage, latency

        Raises:
            LLMError: On provider API errors
        """
        ...

    async def generate_text(
        self,
        prompt: str,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 2000,
    ) -> str:
        """
        Convenience method: generate text from a simple prompt.

        Args:
            prompt: User prompt
            system: Optional system prompt
            model: Model to use
            max_tokens: Maximum tokens

        Returns:
            Generated text string
        """
        messages: list[Message] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await self.generate(
            messages=messages,
            model=model,
            max_tokens=max_tokens,
        )
        return response.text

    async def generate_json(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 2000,
    ) -> dict[str, Any] | None:
        """Generate and parse a JSON object reply. Returns None if unparseable."""
        text = await self.generate_text(prompt, system=system, max_tokens=max_tokens)
        parsed = extract_json_object(text)
        if parsed is None:
            logger.warning(
                "LLM reply was not a JSON object",
                provider=self.provider,
                preview=text[:200],
            )
        return parsed
