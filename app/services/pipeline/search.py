"""Stage 2: run planned queries against the web search API.

Each call to ``SearchExecutor.search`` confines every query to a single
look-back window. When a window yields too few candidates the whole query
set is re-run with the next wider window; results from different windows
are never mixed.
"""

from typing import Optional

import httpx
import structlog

from app.services.pipeline.errors import NoSearchResultsError
from app.services.pipeline.types import Article, SearchOutcome, SearchQuery

logger = structlog.get_logger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"


class TavilySearchClient:
    """Thin async client for the Tavily search REST API."""

    def __init__(self, api_key: str, timeout: int = 30):
        self.api_key = api_key
        self.timeout = timeout

    async def search(
        self,
        query: str,
        days: int,
        max_results: int = 5,
        exclude_domains: Optional[list[str]] = None,
    ) -> list[Article]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                TAVILY_SEARCH_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "query": query,
                    "topic": "news",
                    "days": days,
                    "search_depth": "advanced",
                    "max_results": max_results,
                    "exclude_domains": exclude_domains or [],
                },
            )
            response.raise_for_status()
            data = response.json()

        return [
            Article(
                title=r.get("title") or "",
                url=r["url"],
                content=r.get("content") or "",
                published_date=r.get("published_date"),
                score=r.get("score"),
            )
            for r in data.get("results", [])
            if r.get("url")
        ]


def windows_for(requested_days: int, fallback_days: list[int]) -> list[int]:
    """Requested window first, then each wider fallback window."""
    return [requested_days] + sorted(w for w in set(fallback_days) if w > requested_days)


class SearchExecutor:
    """(queries, date_range_days) -> candidate articles from one window."""

    def __init__(
        self,
        client: TavilySearchClient,
        fallback_days: list[int],
        min_results: int = 5,
        max_results_per_query: int = 5,
        exclude_domains: Optional[list[str]] = None,
    ):
        self._client = client
        self._fallback_days = fallback_days
        self._min_results = min_results
        self._max_results_per_query = max_results_per_query
        self._exclude_domains = exclude_domains or []

    async def search(
        self, queries: list[SearchQuery], date_range_days: int
    ) -> SearchOutcome:
        windows = windows_for(date_range_days, self._fallback_days)
        best: Optional[SearchOutcome] = None
        tried: list[int] = []

        for days in windows:
            tried.append(days)
            articles = await self._search_window(queries, days)
            logger.info(
                "Search window complete",
                window_days=days,
                results=len(articles),
                min_results=self._min_results,
            )
            if not articles:
                continue

            outcome = SearchOutcome(
                articles=articles,
                window_days=days,
                queries_run=len(queries),
                windows_tried=list(tried),
            )
            if len(articles) >= self._min_results:
                return outcome
            # Keep the narrowest window that found anything as the fallback answer
            if best is None:
                best = outcome

        if best is None:
            raise NoSearchResultsError(tried)

        best.windows_tried = tried
        logger.info(
            "Search windows exhausted, using narrowest non-empty window",
            window_days=best.window_days,
            results=len(best.articles),
        )
        return best

    async def _search_window(self, queries: list[SearchQuery], days: int) -> list[Article]:
        results: list[Article] = []
        seen_urls: set[str] = set()

        for q in queries:
            try:
                hits = await self._client.search(
                    q.query,
                    days=days,
                    max_results=self._max_results_per_query,
                    exclude_domains=self._exclude_domains,
                )
            except httpx.HTTPError as e:
                # One failing query must not sink the whole window
                logger.warning("Search query failed", query=q.query, error=str(e))
                continue

            for hit in hits:
                if hit.url not in seen_urls:
                    seen_urls.add(hit.url)
                    results.append(hit)

        return results
