"""Data passed between pipeline stages."""

from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

from app.jobs.models import ReportJobPayload
from app.jobs.types import ReportType


@dataclass(frozen=True)
class PipelineInput:
    """What the pipeline needs from a job payload."""

    company_name: str
    company_domain: str
    report_type: ReportType
    date_range_days: int
    industry: Optional[str] = None
    competitors: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: ReportJobPayload) -> "PipelineInput":
        return cls(
            company_name=payload.company_name,
            company_domain=payload.company_domain,
            report_type=payload.report_type,
            date_range_days=payload.date_range_days,
            industry=payload.industry,
            competitors=payload.competitors,
        )


@dataclass(frozen=True)
class SearchQuery:
    query: str
    reasoning: str = ""


@dataclass
class Article:
    """A search hit, before selection."""

    title: str
    url: str
    content: str
    published_date: Optional[str] = None
    score: Optional[float] = None

    @property
    def source(self) -> str:
        """Host the article came from, used to keep selections diverse."""
        host = urlparse(self.url).netloc.lower()
        return host[4:] if host.startswith("www.") else host


@dataclass
class SearchOutcome:
    """Candidates from exactly one search window."""

    articles: list[Article]
    window_days: int
    queries_run: int
    windows_tried: list[int] = field(default_factory=list)


@dataclass
class ReportArticle:
    """A summarized, illustrated article as stored in report content."""

    id: str
    title: str
    summary: str
    content: str
    sources: list[str]
    image_alt: str
    image_url: Optional[str] = None
    image_status: str = "pending"  # generated | placeholder | pending
    published_at: Optional[str] = None
    relevance_score: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "content": self.content,
            "imageUrl": self.image_url,
            "imageAlt": self.image_alt,
            "imageStatus": self.image_status,
            "sources": list(self.sources),
            "publishedAt": self.published_at,
            "relevanceScore": self.relevance_score,
        }


@dataclass
class ReportContent:
    """Final report payload persisted on the generated report."""

    summary: str
    articles: list[ReportArticle]
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "articles": [a.to_dict() for a in self.articles],
            "metadata": dict(self.metadata),
        }
