"""Stage 3: pick the most valuable candidates for the report."""

import structlog

from app.services.llm_base import BaseLLMClient
from app.services.pipeline.errors import NoArticlesSelectedError
from app.services.pipeline.types import Article, PipelineInput

logger = structlog.get_logger(__name__)

PREVIEW_CHARS = 300


def build_ranking_prompt(
    candidates: list[Article], request: PipelineInput, target_count: int
) -> str:
    listing = "\n---\n".join(
        f"[{i}] {a.title}\nURL: {a.url}\nPublished: {a.published_date or 'Unknown'}\n"
        f"Preview: {a.content[:PREVIEW_CHARS]}..."
        for i, a in enumerate(candidates)
    )
    return f"""You are filtering search results for a {request.report_type.value} report about {request.company_name}.

Review these {len(candidates)} search results and select the {target_count} MOST valuable articles.

Criteria:
- Relevance to {request.report_type.value}
- Recency (prefer recent news)
- Quality of source
- Uniqueness (avoid duplicates and repeated sources)

Results:
{listing}

Return ONLY a JSON object with the indices of the {target_count} best articles, best first:
{{"selected": [0, 3, 5, 8, 12]}}"""


def _parse_indices(raw: object, upper: int) -> list[int]:
    if not isinstance(raw, list):
        return []
    indices = []
    for value in raw:
        try:
            idx = int(value)
        except (TypeError, ValueError):
            continue
        if 0 <= idx < upper:
            indices.append(idx)
    return indices


class ArticleRanker:
    """(candidates, N) -> up to N articles, best first, one per source."""

    def __init__(self, llm: BaseLLMClient):
        self._llm = llm

    async def select(
        self, candidates: list[Article], request: PipelineInput, target_count: int = 5
    ) -> list[Article]:
        if not candidates:
            raise NoArticlesSelectedError("No candidates to rank")

        parsed = await self._llm.generate_json(
            build_ranking_prompt(candidates, request, target_count), max_tokens=1024
        )
        ranked = _parse_indices((parsed or {}).get("selected"), len(candidates))
        if not ranked:
            logger.warning("Ranking reply unusable, falling back to search score")

        # LLM picks first, then remaining candidates by search score as filler
        by_score = sorted(
            range(len(candidates)),
            key=lambda i: (candidates[i].score or 0.0),
            reverse=True,
        )
        selected = self._dedupe(candidates, ranked + by_score, target_count)
        if not selected:
            raise NoArticlesSelectedError()

        logger.info(
            "Selected articles",
            selected=len(selected),
            candidates=len(candidates),
            llm_picks=len(ranked),
        )
        return selected

    @staticmethod
    def _dedupe(
        candidates: list[Article], order: list[int], target_count: int
    ) -> list[Article]:
        selected: list[Article] = []
        used_indices: set[int] = set()
        used_sources: set[str] = set()
        used_urls: set[str] = set()

        for idx in order:
            if len(selected) >= target_count:
                break
            article = candidates[idx]
            if idx in used_indices or article.url in used_urls:
                continue
            if article.source in used_sources:
                continue
            used_indices.add(idx)
            used_urls.add(article.url)
            used_sources.add(article.source)
            selected.append(article)

        return selected
