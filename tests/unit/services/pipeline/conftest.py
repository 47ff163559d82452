"""Fixtures for pipeline stage tests."""

import json
from typing import Union

import pytest

from app.jobs.types import ReportType
from app.services.llm_base import BaseLLMClient, LLMResponse, Message
from app.services.pipeline import Article, PipelineInput

Reply = Union[str, dict, Exception]


class ScriptedLLM(BaseLLMClient):
    """LLM client that plays back canned replies in order."""

    def __init__(self, replies: list[Reply]):
        super().__init__(model="scripted")
        self.provider = "scripted"
        self.replies = list(replies)
        self.prompts: list[str] = []

    async def generate(
        self,
        *,
        messages: list[Message],
        model: str | None = None,
        max_tokens: int = 2000,
    ) -> LLMResponse:
        self.prompts.append(messages[-1]["content"])
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        text = json.dumps(reply) if isinstance(reply, dict) else reply
        return LLMResponse(text=text, model=self.model, provider=self.provider)


@pytest.fixture
def scripted_llm():
    return ScriptedLLM


@pytest.fixture
def request_input():
    return PipelineInput(
        company_name="Acme Corp",
        company_domain="acme.com",
        report_type=ReportType.COMPETITOR_LANDSCAPE,
        date_range_days=7,
        industry="Robotics",
        competitors=("Globex",),
    )


@pytest.fixture
def make_article():
    def _make(n: int, host: str = "", score: float = 0.5) -> Article:
        host = host or f"site{n}.com"
        return Article(
            title=f"Headline {n}",
            url=f"https://{host}/story-{n}",
            content=f"Body of story {n}",
            published_date="2026-10-01",
            score=score,
        )

    return _make
