"""
Bounded, iterative web research.

Runs an initial search/fetch round over the decomposer's queries, retries
once with model-refined queries when too few substantive sources came back,
then deepens coverage with gap analysis until the model reports the sources
sufficient, the iteration cap is hit, or the global fetch budget is spent.
Every search and fetch is awaited one at a time.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from ..config.settings import PipelineSettings
from ..core.types import BudgetUsage, FetchResponse, GapAnalysis, SearchResponse, Source, StructuredSource
from ..core.utils import Timer, as_string_list, fail_open_call
from ..llm.gateway import ModelGateway, ModelRequest, ModelTier
from ..planners.prompts import (
    SYSTEM_GAP_ANALYST,
    SYSTEM_QUERY_REFINER,
    build_gap_analysis_prompt,
    build_refine_queries_prompt,
)

logger = logging.getLogger(__name__)


@dataclass
class GapIteration:
    iteration: int
    gaps: List[str]
    additional_queries: List[str]
    sufficient: bool
    status: str
    sources_added: int = 0


@dataclass
class ResearchOutcome:
    """Everything the research phase hands to synthesis and to the phase log"""
    sources: List[Source]
    structured_sources: List[StructuredSource]
    substantive_count: int
    iterations_run: int
    budget_used: BudgetUsage
    refinement_attempted: bool = False
    refined_queries: List[str] = field(default_factory=list)
    queries_executed: List[str] = field(default_factory=list)
    gap_iterations: List[GapIteration] = field(default_factory=list)
    meta_calls: int = 0
    tokens_used: int = 0
    duration_ms: int = 0


class _ResearchRun:
    """Mutable state of one research run; never shared between runs"""

    def __init__(self, settings: PipelineSettings):
        self.settings = settings
        self.sources: List[Source] = []
        self.attempted_urls: Set[str] = set()
        self.queries_used = 0
        self.fetches_used = 0
        self.queries_executed: List[str] = []
        self.meta_calls = 0
        self.tokens_used = 0

    @property
    def fetch_budget_exhausted(self) -> bool:
        return self.fetches_used >= self.settings.max_fetches_per_step

    def substantive_count(self) -> int:
        threshold = self.settings.substantive_threshold_chars
        return sum(1 for s in self.sources if s.is_substantive(threshold))

    def budget(self) -> BudgetUsage:
        return BudgetUsage(
            queries_used=self.queries_used,
            queries_max=self.settings.max_queries_total,
            fetches_used=self.fetches_used,
            fetches_max=self.settings.max_fetches_per_step,
        )


def summarize_sources(sources: List[Source], preview_chars: int = 200) -> str:
    """Condensed one-line-per-source summary for gap analysis"""
    lines = []
    for i, source in enumerate(sources, start=1):
        preview = re.sub(r"\s+", " ", (source.content or "")[:preview_chars]).strip()
        lines.append(f"- [{i}] {source.title or source.url} ({source.url}, {len(source.content or '')} chars): {preview}")
    return "\n".join(lines)


def _parse_gap_analysis(data: Dict[str, Any]) -> GapAnalysis:
    sufficient = data.get("sufficient", False)
    if isinstance(sufficient, str):
        sufficient = sufficient.strip().lower() in ("true", "yes", "1")
    return GapAnalysis(
        gaps=as_string_list(data.get("gaps")),
        additional_queries=as_string_list(data.get("additionalQueries")),
        sufficient=bool(sufficient),
    )


class ResearchCoordinator:
    """
    Coordinates search, fetch, query refinement and gap analysis under hard budgets.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        search_client: Any,
        fetch_client: Any,
        settings: Optional[PipelineSettings] = None,
    ):
        self.gateway = gateway
        self.search_client = search_client
        self.fetch_client = fetch_client
        self.settings = settings or PipelineSettings()

    # ---- collaborator calls ----

    async def _search(self, query: str) -> SearchResponse:
        try:
            return await self.search_client.search(query, self.settings.search_results_per_query)
        except Exception as e:
            return SearchResponse(results=[], error=f"{type(e).__name__}: {e}")

    async def _fetch(self, url: str) -> FetchResponse:
        try:
            return await self.fetch_client.fetch(url, self.settings.max_chars_per_page)
        except Exception as e:
            return FetchResponse(error=f"{type(e).__name__}: {e}")

    # ---- rounds ----

    async def _run_round(self, run: _ResearchRun, queries: List[str], label: str) -> int:
        """
        One search/fetch round. Returns the number of sources added.
        Stops the moment the global fetch budget is reached.
        """
        added = 0
        for query in queries[:self.settings.max_queries_per_step]:
            if run.fetch_budget_exhausted:
                logger.info(f"Fetch budget exhausted during {label} round, stopping")
                break

            run.queries_used += 1
            run.queries_executed.append(query)
            search = await self._search(query)
            if search.error or not search.results:
                logger.info(f"Search '{query}' returned no results{f': {search.error}' if search.error else ''}")
                continue

            fetched_for_query = 0
            for hit in search.results:
                if fetched_for_query >= self.settings.max_urls_per_query or run.fetch_budget_exhausted:
                    break
                if not hit.url or hit.url in run.attempted_urls:
                    continue

                run.attempted_urls.add(hit.url)
                fetched_for_query += 1
                run.fetches_used += 1
                page = await self._fetch(hit.url)

                if page.error or not page.content:
                    logger.info(f"Fetch failed for {hit.url}: {page.error or 'empty content'}")
                    continue

                run.sources.append(Source(
                    url=hit.url,
                    title=page.title or hit.title or hit.url,
                    content=page.content[:self.settings.max_chars_per_page],
                    snippet=hit.snippet,
                ))
                added += 1
        return added

    # ---- meta-work ----

    async def _refine_queries(self, run: _ResearchRun, original_queries: List[str], task: str,
                              caller_context: Dict[str, Any]) -> List[str]:
        result = await fail_open_call(
            self.gateway,
            ModelRequest(
                system_prompt=SYSTEM_QUERY_REFINER,
                user_message=build_refine_queries_prompt(original_queries, task),
                tier=ModelTier.CHEAP,
                caller_context={**caller_context, "phase": "refine_queries"},
            ),
            parse=lambda data: as_string_list(data.get("refinedQueries")),
            default=[],
            label="refine_queries",
        )
        run.meta_calls += 1
        run.tokens_used += result.response.usage.total
        return result.value

    async def _analyze_gaps(self, run: _ResearchRun, task: str, sub_questions: List[str],
                            caller_context: Dict[str, Any]):
        result = await fail_open_call(
            self.gateway,
            ModelRequest(
                system_prompt=SYSTEM_GAP_ANALYST,
                user_message=build_gap_analysis_prompt(
                    task,
                    sub_questions,
                    summarize_sources(run.sources, self.settings.source_preview_chars),
                    len(run.sources),
                ),
                tier=ModelTier.CHEAP,
                caller_context={**caller_context, "phase": "gap_analysis"},
            ),
            parse=_parse_gap_analysis,
            default=GapAnalysis(sufficient=True),
            label="gap_analysis",
        )
        run.meta_calls += 1
        run.tokens_used += result.response.usage.total
        return result

    # ---- public API ----

    async def research(
        self,
        search_queries: List[str],
        task_description: str,
        sub_questions: List[str],
        caller_context: Optional[Dict[str, Any]] = None,
    ) -> ResearchOutcome:
        """
        Execute the research phase.

        Never raises for search, fetch or meta-work failures; they degrade
        to fewer sources.
        """
        caller_context = caller_context or {}
        run = _ResearchRun(self.settings)
        refinement_attempted = False
        refined_queries: List[str] = []
        gap_iterations: List[GapIteration] = []

        with Timer("research") as timer:
            # 1) Initial round
            await self._run_round(run, search_queries, "initial")
            substantive = run.substantive_count()

            # 2) One refinement retry when sources are thin
            if substantive < self.settings.min_substantive_sources and not run.fetch_budget_exhausted:
                refinement_attempted = True
                logger.info(f"Only {substantive} substantive sources, refining queries")
                refined_queries = await self._refine_queries(run, search_queries, task_description, caller_context)
                if refined_queries:
                    await self._run_round(run, refined_queries, "refinement")
                    substantive = run.substantive_count()
                else:
                    logger.info("Query refinement produced nothing, continuing with collected sources")

            # 3) Gap analysis iterations
            iteration = 0
            while iteration < self.settings.max_research_iterations and not run.fetch_budget_exhausted:
                iteration += 1
                result = await self._analyze_gaps(run, task_description, sub_questions, caller_context)
                gap: GapAnalysis = result.value
                record = GapIteration(
                    iteration=iteration,
                    gaps=gap.gaps,
                    additional_queries=gap.additional_queries,
                    sufficient=gap.sufficient,
                    status="ok" if result.ok else "fallback",
                )
                gap_iterations.append(record)

                if gap.sufficient or not gap.additional_queries:
                    logger.info(f"Gap analysis iteration {iteration}: research sufficient")
                    break

                logger.info(f"Gap analysis iteration {iteration}: {len(gap.gaps)} gaps, "
                            f"{len(gap.additional_queries)} follow-up queries")
                record.sources_added = await self._run_round(run, gap.additional_queries, f"gap-{iteration}")
                substantive = run.substantive_count()

        budget = run.budget()
        logger.info(f"Research found {len(run.sources)} sources ({substantive} substantive, "
                    f"{len(gap_iterations)} gap iterations, {budget.summary()})")

        return ResearchOutcome(
            sources=list(run.sources),
            structured_sources=[
                StructuredSource.from_source(s, self.settings.source_preview_chars) for s in run.sources
            ],
            substantive_count=substantive,
            iterations_run=len(gap_iterations),
            budget_used=budget,
            refinement_attempted=refinement_attempted,
            refined_queries=refined_queries,
            queries_executed=list(run.queries_executed),
            gap_iterations=gap_iterations,
            meta_calls=run.meta_calls,
            tokens_used=run.tokens_used,
            duration_ms=timer.elapsed_ms,
        )
