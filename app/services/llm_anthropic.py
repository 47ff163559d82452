"""Anthropic LLM client using the official SDK."""

import time

import structlog
from anthropic import (
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    RateLimitError,
)

from app.services.llm_base import (
    BaseLLMClient,
    LLMAPIError,
    LLMError,
    LLMRateLimitError,
    LLMResponse,
    LLMTimeoutError,
    Message,
)

logger = structlog.get_logger(__name__)


class AnthropicLLMClient(BaseLLMClient):
    """LLM client using the Anthropic API directly."""

    def __init__(self, api_key: str, model: str, timeout: int = 60):
        super().__init__(model)
        self.timeout = timeout
        self.client = AsyncAnthropic(api_key=api_key, timeout=timeout)
        self.provider = "anthropic"

    async def generate(
        self,
        *,
        messages: list[Message],
        model: str | None = None,
        max_tokens: int = 2000,
    ) -> LLMResponse:
        """Generate a response, mapping SDK errors onto the LLMError hierarchy."""
        model = model or self.model

        # Anthropic takes the system prompt separately, not as a message
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        chat_messages = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m["role"] != "system"
        ]

        try:
            start = time.perf_counter()
            response = await self.client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system="\n\n".join(system_parts),
                messages=chat_messages,
            )
            latency_ms = (time.perf_counter() - start) * 1000
        except RateLimitError as e:
            logger.warning("Anthropic rate limited", model=model)
            raise LLMRateLimitError(
                f"Anthropic rate limited: {e}", provider=self.provider, model=model
            ) from e
        except APITimeoutError as e:
            raise LLMTimeoutError(
                provider=self.provider, model=model, timeout_seconds=self.timeout
            ) from e
        except APIStatusError as e:
            logger.error(
                "Anthropic API error",
                model=model,
                status_code=e.status_code,
                error=str(e),
            )
            raise LLMAPIError(
                f"Anthropic API error: {e}",
                provider=self.provider,
                model=model,
                status_code=e.status_code,
            ) from e
        except APIError as e:
            logger.error("Anthropic request failed", model=model, error=str(e))
            raise LLMError(
                f"Anthropic request failed: {e}", provider=self.provider, model=model
            ) from e

        text = "".join(
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text"
        )
        usage = {
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
        }

        logger.debug(
            "Anthropic generation complete",
            model=response.model,
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
            latency_ms=round(latency_ms, 2),
        )

        return LLMResponse(
            text=text,
            model=response.model,
            provider=self.provider,
            usage=usage,
            latency_ms=latency_ms,
        )
