"""Stage 5: time-aware TL;DR over the summarized articles."""

import structlog

from app.services.llm_base import BaseLLMClient
from app.services.pipeline.errors import PipelineStageError
from app.services.pipeline.types import PipelineInput, ReportArticle

logger = structlog.get_logger(__name__)


def period_label(window_days: int) -> str:
    if window_days <= 7:
        return "this week"
    if window_days <= 31:
        return "this month"
    return "this year"


class ReportSynthesizer:
    """(summaries, window) -> overall summary."""

    def __init__(self, llm: BaseLLMClient):
        self._llm = llm

    async def synthesize(
        self,
        articles: list[ReportArticle],
        request: PipelineInput,
        window_days: int,
    ) -> str:
        listing = "\n".join(f"- {a.title}: {a.summary}" for a in articles)
        period = period_label(window_days)
        prompt = f"""Create a compelling TL;DR for a {request.report_type.value} report about {request.company_name}.

The articles below cover {period} (last {window_days} days). Refer to the period as "{period}".

Articles covered:
{listing}

Write a 2-3 sentence TL;DR that:
- Highlights the most important insights
- Shows clear patterns or trends
- Uses specific numbers/facts when available

Return ONLY the TL;DR text (no JSON, no extra formatting)."""

        tldr = (await self._llm.generate_text(prompt, max_tokens=512)).strip()
        if not tldr:
            raise PipelineStageError("synthesis", "Empty TL;DR")
        logger.info("Generated TL;DR", period=period)
        return tldr
