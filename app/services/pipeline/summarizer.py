"""Stage 4: per-article short summary and long-form body."""

import uuid

import structlog

from app.services.llm_base import BaseLLMClient, LLMError
from app.services.pipeline.errors import SummarizationError
from app.services.pipeline.types import Article, PipelineInput, ReportArticle

logger = structlog.get_logger(__name__)


def build_summary_prompt(article: Article, request: PipelineInput) -> str:
    return f"""Summarize this article for a {request.report_type.value} report about {request.company_name}.

Title: {article.title}
URL: {article.url}
Content: {article.content}

Create:
1. A concise 2-3 sentence summary (for preview)
2. A detailed 300-500 word analysis (main content)
3. An image description for AI generation

Focus on: actionable insights, strategic implications, key facts.

Return ONLY valid JSON:
{{"title": "cleaned title", "summary": "2-3 sentences", "content": "300-500 word analysis", "imageDescription": "image prompt"}}"""


class ArticleSummarizer:
    """(selected articles) -> per-article {summary, body}."""

    def __init__(self, llm: BaseLLMClient):
        self._llm = llm

    async def summarize(
        self, articles: list[Article], request: PipelineInput
    ) -> list[ReportArticle]:
        summarized: list[ReportArticle] = []
        for article in articles:
            try:
                summarized.append(await self._summarize_one(article, request))
            except (LLMError, ValueError) as e:
                logger.warning(
                    "Article summarization failed, skipping",
                    url=article.url,
                    error=str(e),
                )

        if not summarized:
            raise SummarizationError()
        logger.info("Summarized articles", count=len(summarized), selected=len(articles))
        return summarized

    async def _summarize_one(self, article: Article, request: PipelineInput) -> ReportArticle:
        parsed = await self._llm.generate_json(
            build_summary_prompt(article, request), max_tokens=2048
        )
        if parsed is None:
            raise ValueError("No JSON in summarization response")

        title = parsed.get("title") or article.title
        return ReportArticle(
            id=f"article-{uuid.uuid4().hex[:12]}",
            title=title,
            summary=parsed.get("summary") or article.content[:200],
            content=parsed.get("content") or article.content,
            sources=[article.url],
            image_alt=parsed.get("imageDescription") or title,
            published_at=article.published_date,
            relevance_score=article.score,
        )
