"""
Integration tests for the deep work pipeline state machine.
"""

import asyncio

import pytest

from ..core.errors import PhaseStoreError
from ..llm.gateway import ModelResponse, ModelTier
from ..pipeline.orchestrator import DeepWorkPipeline, ExecuteRequest, PipelineRunConfig
from ..pipeline.recorder import PhaseRecorder
from .conftest import FakeGateway, critique_json

TASK = "Summarize Q3 competitor pricing"
PERSONA = "You are a pricing analyst."
LOW_SCORES = {"completeness": 4, "accuracy": 2, "actionability": 4, "depth": 4}


def make_request(task_id="task-1", **config):
    return ExecuteRequest(
        task_description=TASK,
        persona_prompt=PERSONA,
        tier=ModelTier.STANDARD,
        config=PipelineRunConfig(**config),
        task_id=task_id,
    )


def names(result):
    return [p.name for p in result.phases]


class TestFullPipeline:

    @pytest.mark.asyncio
    async def test_happy_path(self, pipeline, gateway, phase_store):
        result = await pipeline.execute(make_request())

        assert result.success
        assert result.content.startswith("# Pricing summary")
        assert result.critique_score == 4.0
        assert result.critique_lesson == "Lead with the numbers."
        assert result.revised is False
        assert result.revision_count == 0
        assert names(result) == ["decompose", "research", "synthesize", "critique"]
        assert [p.order for p in result.phases] == [1, 2, 3, 4]
        assert gateway.phases_called == ["decompose", "gap_analysis", "synthesize", "critique"]

        stored = await phase_store.list_phases("task-1")
        assert [r.phase_name for r in stored] == names(result)

    @pytest.mark.asyncio
    async def test_phase_records_carry_tiers_and_metadata(self, pipeline, phase_store):
        await pipeline.execute(make_request())
        decompose, research, synthesize, critique = await phase_store.list_phases("task-1")

        assert decompose.model_tier == "tier1"
        assert decompose.metadata["search_queries"] == ["competitor pricing Q3 2026", "SaaS price changes 2026"]
        assert decompose.tokens_used == 30

        assert research.model_tier is None
        assert research.metadata["sources_found"] == 4
        assert research.metadata["substantive_sources"] == 4
        assert research.metadata["budget_used"]["fetches_used"] == 4
        assert len(research.metadata["structured_sources"]) == 4
        assert research.content.splitlines()[0] == (
            "[Page https://example.com/competitor-pricing-q3-2026/0]"
            "(https://example.com/competitor-pricing-q3-2026/0)"
        )

        assert synthesize.model_tier == "tier2"
        assert critique.score == 4.0
        assert critique.metadata["scores"]["accuracy"] == 4
        assert critique.metadata["citation_score"] == 0.0
        assert critique.metadata["citation_check"]["uncited_urls"] == ["https://example.com/a"]
        assert all(r.status == "ok" for r in (decompose, research, synthesize, critique))

    @pytest.mark.asyncio
    async def test_task_id_generated_when_missing(self, pipeline):
        result = await pipeline.execute(make_request(task_id=None))
        assert result.task_id

    @pytest.mark.asyncio
    async def test_approach_hints_reach_decomposer(self, pipeline, gateway):
        request = make_request()
        request.approach_hints = "Start from vendor pricing pages"
        await pipeline.execute(request)
        assert "Start from vendor pricing pages" in gateway.calls("decompose")[0].user_message

    @pytest.mark.asyncio
    async def test_synthesis_sees_research_budget(self, pipeline, gateway):
        await pipeline.execute(make_request())
        prompt = gateway.calls("synthesize")[0].user_message
        assert "RESEARCH BUDGET" in prompt
        assert "4/8 page fetches used" in prompt
        assert gateway.calls("synthesize")[0].system_prompt == PERSONA

    @pytest.mark.asyncio
    async def test_malformed_decompose_continues_with_task(self, pipeline, gateway, search_client, phase_store):
        gateway.queue("decompose", "no json here")
        result = await pipeline.execute(make_request())

        assert result.success
        assert search_client.queries[0] == TASK
        decompose = (await phase_store.list_phases("task-1"))[0]
        assert decompose.status == "fallback"


class TestSkipModes:

    @pytest.mark.asyncio
    async def test_skip_pipeline_single_record(self, pipeline, gateway, phase_store):
        result = await pipeline.execute(make_request(skip_pipeline=True))

        assert result.content == "Quick answer."
        assert result.critique_score is None
        assert names(result) == ["single-shot"]
        assert len(gateway.requests) == 1
        assert gateway.requests[0].tier == ModelTier.STANDARD
        assert len(await phase_store.list_phases("task-1")) == 1

    @pytest.mark.asyncio
    async def test_skip_pipeline_error(self, pipeline, gateway, phase_store):
        gateway.queue("single_shot", ModelResponse.failure("model offline"))
        result = await pipeline.execute(make_request(skip_pipeline=True))

        assert result.content is None
        assert result.error == "Single-shot failed: model offline"
        assert result.critique_score is None
        records = await phase_store.list_phases("task-1")
        assert len(records) == 1
        assert records[0].status == "failed"

    @pytest.mark.asyncio
    async def test_skip_research(self, pipeline, gateway, search_client, fetch_client):
        result = await pipeline.execute(make_request(skip_research=True))

        assert result.success
        assert names(result) == ["decompose", "synthesize", "critique"]
        assert [p.order for p in result.phases] == [1, 2, 3]
        assert search_client.queries == []
        assert fetch_client.fetched == []
        assert "RESEARCH BUDGET" not in gateway.calls("synthesize")[0].user_message
        assert "citation_score" not in gateway.calls("critique")[0].user_message


class TestFatalErrors:

    @pytest.mark.asyncio
    async def test_decompose_error_aborts(self, pipeline, gateway, search_client, phase_store):
        gateway.queue("decompose", ModelResponse.failure("model offline"))
        result = await pipeline.execute(make_request())

        assert result.content is None
        assert result.error == "Decompose failed: model offline"
        assert result.critique_score is None
        assert names(result) == ["decompose"]
        assert result.phases[0].status == "failed"
        assert search_client.queries == []
        assert gateway.phases_called == ["decompose"]

    @pytest.mark.asyncio
    async def test_synthesize_error_keeps_earlier_phases(self, pipeline, gateway, phase_store):
        gateway.queue("synthesize", ModelResponse.failure("context length exceeded"))
        result = await pipeline.execute(make_request())

        assert result.content is None
        assert result.error == "Synthesize failed: context length exceeded"
        assert names(result) == ["decompose", "research", "synthesize"]
        assert [p.status for p in result.phases] == ["ok", "ok", "failed"]
        assert gateway.calls("critique") == []
        assert len(await phase_store.list_phases("task-1")) == 3

    @pytest.mark.asyncio
    async def test_gateway_exception_is_a_gateway_error(self, pipeline, gateway):
        gateway.queue("synthesize", TimeoutError("read timed out"))
        result = await pipeline.execute(make_request())
        assert result.error.startswith("Synthesize failed: TimeoutError")


class TestRevisionLoop:

    @pytest.mark.asyncio
    async def test_low_dimension_triggers_revision(self, pipeline, gateway, phase_store):
        gateway.queue("critique", critique_json(LOW_SCORES, gaps=["No sources for competitor B"]))
        result = await pipeline.execute(make_request())

        assert result.revised is True
        assert result.revision_count == 1
        assert result.content.startswith("# Pricing summary (revised)")
        assert result.critique_score == 4.0
        assert names(result) == ["decompose", "research", "synthesize", "critique", "revise", "critique"]
        assert [p.order for p in result.phases] == [1, 2, 3, 4, 5, 6]
        assert "No sources for competitor B" in gateway.calls("revise")[0].user_message
        assert gateway.calls("revise")[0].tier == ModelTier.STANDARD

    @pytest.mark.asyncio
    async def test_revision_cap(self, pipeline, gateway):
        low = critique_json(LOW_SCORES)
        gateway.queue("critique", low, low, low, low)
        result = await pipeline.execute(make_request())

        assert len(gateway.calls("critique")) == 3
        assert len(gateway.calls("revise")) == 2
        assert result.revision_count == 2
        assert result.revised is True
        assert result.critique_score == 3.5
        critique_orders = [p.order for p in result.phases if p.name == "critique"]
        revise_orders = [p.order for p in result.phases if p.name == "revise"]
        assert critique_orders == [4, 6, 8]
        assert revise_orders == [5, 7]

    @pytest.mark.asyncio
    async def test_revise_error_after_success_keeps_revised(self, pipeline, gateway):
        low = critique_json(LOW_SCORES)
        gateway.queue("critique", low, low)
        gateway.queue("revise", "First revision with more data.", ModelResponse.failure("HTTP 500"))
        result = await pipeline.execute(make_request())

        assert result.success
        assert result.revised is True
        assert result.revision_count == 1
        assert result.content == "First revision with more data."
        assert result.critique_score == 3.5
        assert len(gateway.calls("critique")) == 2
        assert result.phases[-1].name == "revise"
        assert result.phases[-1].status == "failed"

    @pytest.mark.asyncio
    async def test_first_revise_error_keeps_synthesis(self, pipeline, gateway):
        gateway.queue("critique", critique_json(LOW_SCORES))
        gateway.queue("revise", ModelResponse.failure("HTTP 500"))
        result = await pipeline.execute(make_request())

        assert result.success
        assert result.revised is False
        assert result.content.startswith("# Pricing summary\n")
        assert len(gateway.calls("critique")) == 1

    @pytest.mark.asyncio
    async def test_good_critique_skips_revision(self, pipeline, gateway):
        result = await pipeline.execute(make_request())
        assert gateway.calls("revise") == []
        assert result.revised is False

    @pytest.mark.asyncio
    async def test_malformed_critique_is_neutral(self, pipeline, gateway, phase_store):
        gateway.queue("critique", "The deliverable is fine.")
        result = await pipeline.execute(make_request())

        first = [r for r in await phase_store.list_phases("task-1") if r.phase_name == "critique"][0]
        assert first.score == 3.0
        assert first.status == "fallback"
        # a neutral 3.0 average is below 3.5
        assert result.revised is True

    @pytest.mark.asyncio
    async def test_each_revision_gets_a_fresh_citation_check(self, pipeline, gateway, phase_store):
        url = "https://example.com/competitor-pricing-q3-2026/0"
        gateway.queue("critique", critique_json(LOW_SCORES))
        gateway.queue("revise", f"Competitor A raised list prices by 12% in Q3, per {url} today.")
        await pipeline.execute(make_request())

        critiques = [r for r in await phase_store.list_phases("task-1") if r.phase_name == "critique"]
        assert critiques[0].metadata["citation_score"] == 0.0
        assert critiques[1].metadata["citation_score"] == 1.0
        assert critiques[1].metadata["citation_check"]["cited_urls"] == [url]

    @pytest.mark.asyncio
    async def test_citation_override(self, pipeline, gateway, phase_store):
        await pipeline.execute(make_request(citation_score_override=0.9))

        assert "citation_score: 0.9" in gateway.calls("critique")[0].user_message
        critique = (await phase_store.list_phases("task-1"))[-1]
        assert critique.metadata["citation_score"] == 0.9
        assert "citation_check" not in critique.metadata


class TestPhaseRecording:

    @pytest.mark.asyncio
    async def test_store_failures_never_fail_the_run(self, gateway, search_client, fetch_client, pipeline_settings):
        class BrokenStore:
            async def append(self, record):
                raise PhaseStoreError("connection refused")

            async def list_phases(self, task_id):
                return []

        pipeline = DeepWorkPipeline(gateway, search_client, fetch_client,
                                    recorder=PhaseRecorder(BrokenStore()), settings=pipeline_settings)
        result = await pipeline.execute(make_request())

        assert result.success
        assert names(result) == ["decompose", "research", "synthesize", "critique"]

    @pytest.mark.asyncio
    async def test_latest_critique(self, pipeline, gateway, recorder):
        gateway.queue("critique", critique_json(LOW_SCORES))
        await pipeline.execute(make_request())

        critique = await recorder.latest_critique("task-1")
        assert critique.phase_order == 6
        assert critique.score == 4.0
        assert critique.metadata["lesson"] == "Lead with the numbers."
        assert await recorder.latest_critique("unknown") is None

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_independent(self, pipeline, phase_store):
        first, second = await asyncio.gather(
            pipeline.execute(make_request(task_id="a")),
            pipeline.execute(make_request(task_id="b")),
        )

        assert first.success and second.success
        for task_id in ("a", "b"):
            orders = [r.phase_order for r in await phase_store.list_phases(task_id)]
            assert orders == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_result_to_dict(self, pipeline):
        data = (await pipeline.execute(make_request())).to_dict()
        assert data["error"] is None
        assert data["phases"][0] == {"name": "decompose", "order": 1, "duration_ms": data["phases"][0]["duration_ms"],
                                     "status": "ok"}
