"""Stage 1: plan web search queries for a report request."""

import structlog

from app.jobs.types import ReportType
from app.services.llm_base import BaseLLMClient
from app.services.pipeline.errors import NoQueriesPlannedError
from app.services.pipeline.types import PipelineInput, SearchQuery

logger = structlog.get_logger(__name__)

MIN_QUERIES = 3
MAX_QUERIES = 7

REPORT_FOCUS = {
    ReportType.COMPETITOR_LANDSCAPE: (
        "Focus on: product launches, pricing changes, strategic moves, funding, "
        "partnerships, leadership changes"
    ),
    ReportType.MARKET_LANDSCAPE: (
        "Focus on: industry trends, regulatory changes, market shifts, emerging "
        "technologies, market opportunities"
    ),
    ReportType.MEDIA_MONITORING: (
        "Focus on: news mentions, press releases, social media buzz, industry "
        "publications, sentiment"
    ),
}


def build_planning_prompt(request: PipelineInput) -> str:
    competitors = ", ".join(request.competitors) or "To be discovered"
    return f"""You are a research assistant planning search queries for a competitive intelligence report.

Company: {request.company_name} ({request.company_domain})
Industry: {request.industry or "Unknown"}
Competitors: {competitors}
Report Type: {request.report_type.value}
Time Range: Last {request.date_range_days} days

{REPORT_FOCUS[request.report_type]}

Generate 5-7 optimal search queries to find the most relevant, recent information.

Each query should:
- Be specific and targeted
- Focus on recent developments
- Cover different aspects of the report type

Return ONLY valid JSON in this format:
{{"queries": [{{"query": "the search query string", "reasoning": "why this query is valuable"}}]}}"""


class QueryPlanner:
    """(company, domain, industry) -> 3-7 search queries."""

    def __init__(self, llm: BaseLLMClient):
        self._llm = llm

    async def plan(self, request: PipelineInput) -> list[SearchQuery]:
        parsed = await self._llm.generate_json(
            build_planning_prompt(request), max_tokens=2048
        )
        raw = (parsed or {}).get("queries") or []

        queries: list[SearchQuery] = []
        seen: set[str] = set()
        for item in raw:
            if isinstance(item, str):
                text, reasoning = item, ""
            elif isinstance(item, dict):
                text, reasoning = item.get("query", ""), item.get("reasoning", "")
            else:
                continue
            text = text.strip()
            if text and text.lower() not in seen:
                seen.add(text.lower())
                queries.append(SearchQuery(query=text, reasoning=reasoning))

        queries = queries[:MAX_QUERIES]
        if len(queries) < MIN_QUERIES:
            raise NoQueriesPlannedError(
                f"Planned {len(queries)} queries, need at least {MIN_QUERIES}"
            )

        logger.info("Planned search queries", count=len(queries))
        return queries
