"""OpenAI LLM client for GPT models."""

import time

import httpx
import structlog

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

OPENAI_BASE_URL = "https://api.openai.com/v1"


class OpenAILLMClient(BaseLLMClient):
    """LLM client using the OpenAI chat completions REST API."""

    def __init__(self, api_key: str, model: str, timeout: int = 60):
        super().__init__(model)
        self.api_key = api_key
        self.timeout = timeout
        self.provider = "openai"

    async def generate(
        self,
        *,
        messages: list[Message],
        model: str | None = None,
        max_tokens: int = 2000,
    ) -> LLMResponse:
        """
        Generate a response using the OpenAI API.

        Raises:
            LLMRateLimitError: On HTTP 429
            LLMTimeoutError: When the request exceeds the client timeout
            LLMAPIError: On other HTTP errors
            LLMError: On transport failures or empty replies
        """
        model = model or self.model

        try:
            start = time.perf_counter()
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{OPENAI_BASE_URL}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": model,
                        "messages": [
                            {"role": m["role"], "content": m["content"]}
                            for m in messages
                        ],
                        "max_tokens": max_tokens,
                    },
                )
                response.raise_for_status()
                data = response.json()
            latency_ms = (time.perf_counter() - start) * 1000
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(
                provider=self.provider, model=model, timeout_seconds=self.timeout
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 429:
                retry_after = e.response.headers.get("retry-after")
                raise LLMRateLimitError(
                    provider=self.provider,
                    model=model,
                    retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                ) from e
            logger.error(
                "OpenAI API HTTP error",
                model=model,
                status_code=status_code,
                error=e.response.text[:500],
            )
            raise LLMAPIError(
                f"OpenAI API error: {status_code}",
                provider=self.provider,
                model=model,
                status_code=status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error("OpenAI request error", model=model, error=str(e))
            raise LLMError(
                f"OpenAI request failed: {e}", provider=self.provider, model=model
            ) from e

        choices = data.get("choices", [])
        if not choices:
            raise LLMError("No response from OpenAI", provider=self.provider, model=model)

        usage_data = data.get("usage") or {}
        usage = {
            "input_tokens": usage_data.get("prompt_tokens", 0),
            "output_tokens": usage_data.get("completion_tokens", 0),
        }

        return LLMResponse(
            text=choices[0].get("message", {}).get("content") or "",
            model=data.get("model", model),
            provider=self.provider,
            usage=usage,
            latency_ms=latency_ms,
        )
