"""
Deep work pipeline orchestrating decompose, research, synthesis and the
critique/revision loop for a single task.

The run is an explicit state machine: each state has one handler that does
its phase's work, writes the phase record and returns the next state. Only
decompose, synthesize and the single-shot call can fail a run; every other
degradation is absorbed and shows up in the phase log.
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config.settings import PipelineSettings, Settings
from ..core.errors import DecomposeFailed, PhaseFailed, SynthesizeFailed
from ..core.types import CitationCheck, Critique, Decomposition, PipelineResult, StructuredSource, Source
from ..core.utils import Timer
from ..llm.gateway import ModelGateway, ModelRequest, ModelTier, call_gateway
from ..planners.decomposer import Decomposer
from ..synth.critic import Critic, needs_revision
from ..synth.synthesizer import Synthesizer
from ..synth.verify import validate_citations
from .recorder import InMemoryPhaseStore, PhaseLog, PhaseRecorder, PostgresPhaseStore
from .research import ResearchCoordinator, ResearchOutcome

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    DECOMPOSE = "decompose"
    RESEARCH = "research"
    SYNTHESIZE = "synthesize"
    CITATION_CHECK = "citation_check"
    CRITIQUE = "critique"
    REVISE = "revise"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = (PipelineState.DONE, PipelineState.FAILED)


@dataclass(frozen=True)
class PipelineRunConfig:
    """Per-run switches"""
    skip_research: bool = False      # engineering/creative work where the web adds nothing
    skip_pipeline: bool = False      # trivial tasks: one direct model call
    citation_score_override: Optional[float] = None


@dataclass
class ExecuteRequest:
    task_description: str
    persona_prompt: str
    tier: ModelTier = ModelTier.STANDARD
    config: PipelineRunConfig = field(default_factory=PipelineRunConfig)
    task_id: Optional[str] = None
    approach_hints: Optional[str] = None


@dataclass
class _RunContext:
    """All mutable state of one run"""
    request: ExecuteRequest
    task_id: str
    log: PhaseLog
    decomposition: Optional[Decomposition] = None
    research: Optional[ResearchOutcome] = None
    content: Optional[str] = None
    citation: Optional[CitationCheck] = None
    citation_score: Optional[float] = None
    critique: Optional[Critique] = None
    critique_count: int = 0
    revision_count: int = 0
    revised: bool = False
    error: Optional[str] = None
    states: List[PipelineState] = field(default_factory=list)

    @property
    def caller_context(self) -> Dict[str, Any]:
        return {"task_id": self.task_id}

    @property
    def sources(self) -> List[Source]:
        return self.research.sources if self.research else []

    @property
    def structured_sources(self) -> List[StructuredSource]:
        return self.research.structured_sources if self.research else []


class DeepWorkPipeline:
    """
    Staged task execution: decompose -> research -> synthesize -> citation
    check -> critique/revise.

    Holds only settings and collaborators; all run state lives in a
    _RunContext, so one instance can serve concurrent runs.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        search_client: Any,
        fetch_client: Any,
        recorder: Optional[PhaseRecorder] = None,
        settings: Optional[PipelineSettings] = None,
    ):
        self.gateway = gateway
        self.settings = settings or PipelineSettings()
        self.recorder = recorder or PhaseRecorder(InMemoryPhaseStore())

        self.decomposer = Decomposer(gateway)
        self.researcher = ResearchCoordinator(gateway, search_client, fetch_client, self.settings)
        self.synthesizer = Synthesizer(gateway, self.settings.source_preview_chars)
        self.critic = Critic(gateway)

        self._handlers: Dict[PipelineState, Callable[[_RunContext], Awaitable[PipelineState]]] = {
            PipelineState.DECOMPOSE: self._decompose,
            PipelineState.RESEARCH: self._research,
            PipelineState.SYNTHESIZE: self._synthesize,
            PipelineState.CITATION_CHECK: self._citation_check,
            PipelineState.CRITIQUE: self._critique,
            PipelineState.REVISE: self._revise,
        }

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, db_pool=None) -> "DeepWorkPipeline":
        """
        Wire the deployment collaborators: Ollama, Tavily/DuckDuckGo search,
        httpx + trafilatura fetches, and Postgres phases when a pool is given.
        """
        from ..extract.html import HttpFetchClient
        from ..llm.ollama_client import OllamaGateway
        from ..search.client import WebSearchClient

        settings = settings or Settings()
        store = PostgresPhaseStore(db_pool) if db_pool is not None else InMemoryPhaseStore()
        return cls(
            gateway=OllamaGateway(settings.gateway),
            search_client=WebSearchClient(settings.search),
            fetch_client=HttpFetchClient(settings.search),
            recorder=PhaseRecorder(store),
            settings=settings.pipeline,
        )

    # ---- public API ----

    async def execute(self, request: ExecuteRequest) -> PipelineResult:
        """
        Run the pipeline for one task. Never raises for phase failures; a
        fatal phase yields a result with content=None and `error` set.
        """
        task_id = request.task_id or uuid.uuid4().hex
        ctx = _RunContext(request=request, task_id=task_id, log=self.recorder.begin(task_id))

        if request.config.skip_pipeline:
            return await self._single_shot(ctx)

        logger.info(f"Task {task_id}: starting pipeline (tier {request.tier.value}, "
                    f"skip_research={request.config.skip_research})")

        with Timer(f"Task {task_id} pipeline"):
            state = PipelineState.DECOMPOSE
            while state not in TERMINAL_STATES:
                ctx.states.append(state)
                try:
                    state = await self._handlers[state](ctx)
                except PhaseFailed as e:
                    ctx.error = e.describe()
                    logger.error(f"Task {task_id}: {ctx.error}")
                    state = PipelineState.FAILED
            ctx.states.append(state)

        return self._result(ctx)

    # ---- skip mode ----

    async def _single_shot(self, ctx: _RunContext) -> PipelineResult:
        request = ctx.request
        logger.info(f"Task {ctx.task_id}: single-shot call ({request.tier.value})")

        with Timer("single-shot", log=False) as timer:
            response = await call_gateway(self.gateway, ModelRequest(
                system_prompt=request.persona_prompt,
                user_message=request.task_description,
                tier=request.tier,
                caller_context={**ctx.caller_context, "phase": "single_shot"},
            ))

        if response.error:
            await ctx.log.record(
                "single-shot",
                model_tier=request.tier.value,
                duration_ms=timer.elapsed_ms,
                metadata={"error": response.error},
                status="failed",
            )
            return PipelineResult(
                task_id=ctx.task_id,
                phases=ctx.log.summaries(),
                error=f"Single-shot failed: {response.error}",
            )

        await ctx.log.record(
            "single-shot",
            content=response.content,
            model_tier=request.tier.value,
            tokens_used=response.usage.total,
            duration_ms=timer.elapsed_ms,
        )
        return PipelineResult(task_id=ctx.task_id, content=response.content, phases=ctx.log.summaries())

    # ---- state handlers ----

    async def _decompose(self, ctx: _RunContext) -> PipelineState:
        logger.info(f"Task {ctx.task_id}: starting DECOMPOSE phase")
        with Timer("decompose", log=False) as timer:
            try:
                outcome = await self.decomposer.decompose(
                    ctx.request.task_description,
                    approach_hints=ctx.request.approach_hints,
                    caller_context=ctx.caller_context,
                )
            except DecomposeFailed as e:
                failure = e
            else:
                failure = None

        if failure is not None:
            await ctx.log.record(
                "decompose",
                model_tier=ModelTier.CHEAP.value,
                duration_ms=timer.elapsed_ms,
                metadata={"error": failure.reason},
                status="failed",
            )
            raise failure

        ctx.decomposition = outcome.decomposition
        await ctx.log.record(
            "decompose",
            content=outcome.response.content,
            model_tier=ModelTier.CHEAP.value,
            tokens_used=outcome.response.usage.total,
            duration_ms=outcome.duration_ms,
            metadata={
                "sub_questions": outcome.decomposition.sub_questions,
                "search_queries": outcome.decomposition.search_queries,
                "key_requirements": outcome.decomposition.key_requirements,
            },
            status="ok" if outcome.parsed_ok else "fallback",
        )

        if ctx.request.config.skip_research:
            logger.info(f"Task {ctx.task_id}: research skipped")
            return PipelineState.SYNTHESIZE
        return PipelineState.RESEARCH

    async def _research(self, ctx: _RunContext) -> PipelineState:
        decomposition = ctx.decomposition
        logger.info(f"Task {ctx.task_id}: starting RESEARCH phase "
                    f"({len(decomposition.search_queries)} queries)")

        outcome = await self.researcher.research(
            decomposition.search_queries,
            ctx.request.task_description,
            decomposition.sub_questions,
            caller_context=ctx.caller_context,
        )
        ctx.research = outcome

        await ctx.log.record(
            "research",
            content="\n".join(f"[{s.title}]({s.url})" for s in outcome.sources),
            model_tier=None,
            tokens_used=outcome.tokens_used,
            duration_ms=outcome.duration_ms,
            metadata={
                "queries_executed": outcome.queries_executed,
                "sources_found": len(outcome.sources),
                "substantive_sources": outcome.substantive_count,
                "refinement_attempted": outcome.refinement_attempted,
                "refined_queries": outcome.refined_queries,
                "iterations_run": outcome.iterations_run,
                "gap_iterations": [asdict(g) for g in outcome.gap_iterations],
                "budget_used": asdict(outcome.budget_used),
                "structured_sources": [asdict(s) for s in outcome.structured_sources],
            },
        )
        return PipelineState.SYNTHESIZE

    async def _synthesize(self, ctx: _RunContext) -> PipelineState:
        request = ctx.request
        logger.info(f"Task {ctx.task_id}: starting SYNTHESIZE phase ({request.tier.value})")

        with Timer("synthesize", log=False) as timer:
            try:
                outcome = await self.synthesizer.synthesize(
                    request.task_description,
                    ctx.sources,
                    ctx.decomposition.sub_questions,
                    ctx.research.budget_used if ctx.research else None,
                    request.persona_prompt,
                    request.tier,
                    caller_context=ctx.caller_context,
                )
            except SynthesizeFailed as e:
                failure = e
            else:
                failure = None

        if failure is not None:
            await ctx.log.record(
                "synthesize",
                model_tier=request.tier.value,
                duration_ms=timer.elapsed_ms,
                metadata={"error": failure.reason},
                status="failed",
            )
            raise failure

        ctx.content = outcome.content
        await ctx.log.record(
            "synthesize",
            content=outcome.content,
            model_tier=request.tier.value,
            tokens_used=outcome.response.usage.total,
            duration_ms=outcome.duration_ms,
        )
        return PipelineState.CITATION_CHECK

    async def _citation_check(self, ctx: _RunContext) -> PipelineState:
        override = ctx.request.config.citation_score_override
        if override is not None:
            ctx.citation = None
            ctx.citation_score = override
            return PipelineState.CRITIQUE

        ctx.citation = validate_citations(ctx.content, ctx.structured_sources)
        # no citation hint for the critic when research produced no sources
        ctx.citation_score = ctx.citation.citation_score if ctx.structured_sources else None
        logger.info(f"Task {ctx.task_id}: citation score {ctx.citation.citation_score:.2f} "
                    f"({ctx.citation.cited_claims}/{ctx.citation.total_factual_claims} claims)")
        return PipelineState.CRITIQUE

    async def _critique(self, ctx: _RunContext) -> PipelineState:
        attempt = ctx.critique_count
        suffix = f" (post-revision {attempt})" if attempt > 0 else ""
        logger.info(f"Task {ctx.task_id}: starting CRITIQUE phase{suffix}")

        outcome = await self.critic.critique(
            ctx.request.task_description,
            ctx.content,
            citation_score=ctx.citation_score,
            caller_context=ctx.caller_context,
        )
        ctx.critique_count += 1
        ctx.critique = outcome.critique

        metadata: Dict[str, Any] = {
            "attempt": attempt,
            "scores": outcome.critique.scores,
            "gaps": outcome.critique.gaps,
            "lesson": outcome.critique.lesson,
        }
        if ctx.citation_score is not None:
            metadata["citation_score"] = ctx.citation_score
        if ctx.citation is not None:
            metadata["citation_check"] = ctx.citation.to_dict()

        await ctx.log.record(
            "critique",
            content=outcome.response.content,
            model_tier=self.critic.critique_tier.value,
            tokens_used=outcome.response.usage.total,
            duration_ms=outcome.duration_ms,
            score=outcome.critique.overall_score,
            metadata=metadata,
            status="ok" if outcome.ok else "fallback",
        )
        logger.info(f"Task {ctx.task_id}: critique score {outcome.critique.overall_score}/5")

        trigger, reason = needs_revision(outcome.critique)
        if not trigger:
            return PipelineState.DONE
        if ctx.revision_count >= self.settings.max_revisions:
            logger.info(f"Task {ctx.task_id}: revision cap reached ({self.settings.max_revisions}), "
                        f"keeping current content")
            return PipelineState.DONE

        logger.info(f"Task {ctx.task_id}: revision {ctx.revision_count + 1}/{self.settings.max_revisions}: {reason}")
        return PipelineState.REVISE

    async def _revise(self, ctx: _RunContext) -> PipelineState:
        request = ctx.request
        outcome = await self.critic.revise(
            request.task_description,
            ctx.content,
            ctx.critique,
            ctx.sources,
            request.persona_prompt,
            request.tier,
            caller_context=ctx.caller_context,
        )

        if not outcome.success:
            logger.info(f"Task {ctx.task_id}: revise failed ({outcome.error}), keeping current content")
            await ctx.log.record(
                "revise",
                model_tier=request.tier.value,
                tokens_used=outcome.response.usage.total,
                duration_ms=outcome.duration_ms,
                metadata={"error": outcome.error, "revision": ctx.revision_count + 1},
                status="failed",
            )
            return PipelineState.DONE

        ctx.content = outcome.content
        ctx.revision_count += 1
        ctx.revised = True
        await ctx.log.record(
            "revise",
            content=outcome.content,
            model_tier=request.tier.value,
            tokens_used=outcome.response.usage.total,
            duration_ms=outcome.duration_ms,
            metadata={"revision": ctx.revision_count},
        )
        return PipelineState.CITATION_CHECK

    # ---- result ----

    def _result(self, ctx: _RunContext) -> PipelineResult:
        if ctx.error:
            return PipelineResult(task_id=ctx.task_id, phases=ctx.log.summaries(), error=ctx.error)

        critique = ctx.critique or Critique.neutral()
        logger.info(f"Task {ctx.task_id}: pipeline complete ({len(ctx.log.records)} phases, "
                    f"score: {critique.overall_score}, revised: {ctx.revised}, "
                    f"revisions: {ctx.revision_count})")
        return PipelineResult(
            task_id=ctx.task_id,
            content=ctx.content,
            critique_score=critique.overall_score,
            critique_lesson=critique.lesson,
            revised=ctx.revised,
            revision_count=ctx.revision_count,
            phases=ctx.log.summaries(),
        )
