"""Report pipeline: plan -> search -> rank -> summarize -> synthesize -> illustrate.

Stages run strictly in sequence within one job attempt. Any stage except
image generation can fail the attempt; those failures surface as
PipelineStageError.
"""

import time
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from app.config import Settings
from app.jobs.metrics import PIPELINE_STAGE_FAILURES
from app.services.llm_base import BaseLLMClient
from app.services.pipeline.errors import PipelineStageError
from app.services.pipeline.images import ImageGenerator, ImageStore
from app.services.pipeline.planner import QueryPlanner
from app.services.pipeline.ranking import ArticleRanker
from app.services.pipeline.search import SearchExecutor, TavilySearchClient
from app.services.pipeline.summarizer import ArticleSummarizer
from app.services.pipeline.synthesis import ReportSynthesizer
from app.services.pipeline.types import PipelineInput, ReportContent

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ReportPipeline:
    """Runs the fixed stage sequence for one report."""

    def __init__(
        self,
        planner: QueryPlanner,
        search: SearchExecutor,
        ranker: ArticleRanker,
        summarizer: ArticleSummarizer,
        synthesizer: ReportSynthesizer,
        images: ImageGenerator,
        article_count: int = 5,
    ):
        self.planner = planner
        self.search = search
        self.ranker = ranker
        self.summarizer = summarizer
        self.synthesizer = synthesizer
        self.images = images
        self.article_count = article_count

    async def run(self, request: PipelineInput) -> ReportContent:
        start = time.perf_counter()
        log = logger.bind(company=request.company_name, report_type=request.report_type.value)
        log.info("Starting report generation")

        queries = await _stage("query_planning", lambda: self.planner.plan(request))
        found = await _stage(
            "search", lambda: self.search.search(queries, request.date_range_days)
        )
        selected = await _stage(
            "ranking",
            lambda: self.ranker.select(found.articles, request, self.article_count),
        )
        articles = await _stage(
            "summarization", lambda: self.summarizer.summarize(selected, request)
        )
        summary = await _stage(
            "synthesis",
            lambda: self.synthesizer.synthesize(articles, request, found.window_days),
        )
        placeholders = await self.images.illustrate(articles)

        generation_ms = int((time.perf_counter() - start) * 1000)
        metadata: dict[str, Any] = {
            "totalSearches": found.queries_run * len(found.windows_tried),
            "articlesFound": len(found.articles),
            "articlesSelected": len(articles),
            "searchWindowDays": found.window_days,
            "searchWindowsTried": found.windows_tried,
            "imagePlaceholders": placeholders,
            "generationTime": generation_ms,
        }
        log.info("Report generated", **metadata)
        return ReportContent(summary=summary, articles=articles, metadata=metadata)


async def _stage(name: str, call: Callable[[], Awaitable[T]]) -> T:
    """Run one stage, normalizing any failure into a PipelineStageError."""
    try:
        return await call()
    except PipelineStageError as e:
        PIPELINE_STAGE_FAILURES.labels(stage=e.stage).inc()
        logger.error("Pipeline stage failed", stage=e.stage, error=str(e))
        raise
    except Exception as e:
        PIPELINE_STAGE_FAILURES.labels(stage=name).inc()
        logger.error("Pipeline stage failed", stage=name, error=str(e))
        raise PipelineStageError(name, str(e)) from e


def build_pipeline(settings: Settings, llm: BaseLLMClient) -> ReportPipeline:
    """Wire the production stages from settings."""
    if not settings.tavily_api_key:
        raise PipelineStageError("search", "TAVILY_API_KEY is required for report generation")

    return ReportPipeline(
        planner=QueryPlanner(llm),
        search=SearchExecutor(
            TavilySearchClient(settings.tavily_api_key, timeout=settings.search_timeout),
            fallback_days=settings.search_windows,
            min_results=settings.search_min_results,
            max_results_per_query=settings.search_max_results_per_query,
            exclude_domains=settings.search_exclude_domains,
        ),
        ranker=ArticleRanker(llm),
        summarizer=ArticleSummarizer(llm),
        synthesizer=ReportSynthesizer(llm),
        images=ImageGenerator(
            api_key=settings.openai_api_key,
            store=ImageStore(settings.image_upload_dir),
            placeholder_url=settings.image_placeholder_url,
            model=settings.image_model,
            size=settings.image_size,
            timeout=settings.image_timeout,
            enabled=settings.image_generation_enabled,
        ),
        article_count=settings.report_article_count,
    )
