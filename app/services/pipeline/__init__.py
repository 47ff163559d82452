"""Report generation pipeline stages."""

from app.services.pipeline.errors import (
    NoArticlesSelectedError,
    NoQueriesPlannedError,
    NoSearchResultsError,
    PipelineStageError,
    SummarizationError,
)
from app.services.pipeline.runner import ReportPipeline, build_pipeline
from app.services.pipeline.types import (
    Article,
    PipelineInput,
    ReportArticle,
    ReportContent,
    SearchQuery,
)

__all__ = [
    "Article",
    "NoArticlesSelectedError",
    "NoQueriesPlannedError",
    "NoSearchResultsError",
    "PipelineInput",
    "PipelineStageError",
    "ReportArticle",
    "ReportContent",
    "ReportPipeline",
    "SearchQuery",
    "SummarizationError",
    "build_pipeline",
]
