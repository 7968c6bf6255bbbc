"""
Pytest configuration and fixtures for the deep work pipeline tests.
"""

import json
import re
from typing import Any, Dict, List, Optional

import pytest

from ..config.settings import PipelineSettings
from ..core.types import FetchResponse, SearchHit, SearchResponse
from ..llm.gateway import ModelRequest, ModelResponse, TokenUsage
from ..pipeline.orchestrator import DeepWorkPipeline
from ..pipeline.recorder import InMemoryPhaseStore, PhaseRecorder


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")


GOOD_SCORES = {"completeness": 4, "accuracy": 4, "actionability": 4, "depth": 4}


def critique_json(scores: Dict[str, Any], gaps: Optional[List[str]] = None, lesson: str = "Lead with the numbers.") -> str:
    values = [v for v in scores.values() if isinstance(v, (int, float))]
    return json.dumps({
        "scores": scores,
        "overallScore": round(sum(values) / len(values), 1) if values else 3.0,
        "gaps": gaps or [],
        "lesson": lesson,
    })


DEFAULT_CONTENT = {
    "decompose": json.dumps({
        "subQuestions": ["What do competitors charge?", "How did prices move in Q3?"],
        "searchQueries": ["competitor pricing Q3 2026", "SaaS price changes 2026"],
        "keyRequirements": ["Cite sources", "Include a comparison table"],
    }),
    "refine_queries": json.dumps({"refinedQueries": []}),
    "gap_analysis": json.dumps({"gaps": [], "additionalQueries": [], "sufficient": True}),
    "synthesize": "# Pricing summary\n\nCompetitor A raised list prices by 12% in Q3 (https://example.com/a).\n",
    "critique": critique_json(GOOD_SCORES),
    "revise": "# Pricing summary (revised)\n\nCompetitor A raised list prices by 12% in Q3 according to its pricing page.\n",
    "single_shot": "Quick answer.",
}


class FakeGateway:
    """
    Model gateway routed on caller_context["phase"].

    Queued items are consumed in order; once a phase's queue is empty the
    phase's default content is returned. An item may be a str, a dict
    (sent as JSON), a ModelResponse, or an Exception to raise.
    """

    def __init__(self):
        self.queues: Dict[str, List[Any]] = {}
        self.requests: List[ModelRequest] = []

    def queue(self, phase: str, *items):
        self.queues.setdefault(phase, []).extend(items)
        return self

    def calls(self, phase: str) -> List[ModelRequest]:
        return [r for r in self.requests if r.caller_context.get("phase") == phase]

    @property
    def phases_called(self) -> List[str]:
        return [r.caller_context.get("phase") for r in self.requests]

    async def call(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        phase = request.caller_context.get("phase", "")
        queue = self.queues.get(phase)
        item = queue.pop(0) if queue else DEFAULT_CONTENT.get(phase, "")

        if isinstance(item, Exception):
            raise item
        if isinstance(item, ModelResponse):
            return item
        if isinstance(item, dict):
            item = json.dumps(item)
        return ModelResponse(content=item, usage=TokenUsage(prompt_tokens=10, completion_tokens=20))


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class FakeSearchClient:
    """
    Returns `max_results` distinct example.com hits per query unless the
    query is scripted in `results` or listed in `errors`.
    """

    def __init__(self, results: Optional[Dict[str, List[str]]] = None, errors: Optional[Dict[str, str]] = None):
        self.results = results or {}
        self.errors = errors or {}
        self.queries: List[str] = []

    async def search(self, query: str, max_results: int) -> SearchResponse:
        self.queries.append(query)
        if query in self.errors:
            return SearchResponse(results=[], error=self.errors[query])
        if query in self.results:
            urls = self.results[query]
        else:
            urls = [f"https://example.com/{_slug(query)}/{i}" for i in range(max_results)]
        hits = [SearchHit(url=u, title=f"Result for {query}", snippet="snippet") for u in urls[:max_results]]
        return SearchResponse(results=hits)


class FakeFetchClient:
    """
    Returns `default_chars` characters per page unless the URL is scripted.
    Scripted values may be an int (content length), a str, or a FetchResponse.
    """

    def __init__(self, pages: Optional[Dict[str, Any]] = None, default_chars: int = 800):
        self.pages = pages or {}
        self.default_chars = default_chars
        self.fetched: List[str] = []

    async def fetch(self, url: str, max_chars: int) -> FetchResponse:
        self.fetched.append(url)
        page = self.pages.get(url, self.default_chars)
        if isinstance(page, FetchResponse):
            return page
        if isinstance(page, int):
            page = ("Pricing data point. " * (page // 20 + 1))[:page]
        return FetchResponse(title=f"Page {url}", content=page[:max_chars])


@pytest.fixture
def pipeline_settings():
    """Defaults, spelled out so tests read against concrete numbers"""
    return PipelineSettings(
        max_fetches_per_step=8,
        max_queries_per_step=4,
        max_urls_per_query=2,
        max_chars_per_page=6000,
        search_results_per_query=3,
        max_research_iterations=2,
        max_revisions=2,
        min_substantive_sources=3,
        substantive_threshold_chars=500,
        source_preview_chars=200,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def search_client():
    return FakeSearchClient()


@pytest.fixture
def fetch_client():
    return FakeFetchClient()


@pytest.fixture
def phase_store():
    return InMemoryPhaseStore()


@pytest.fixture
def recorder(phase_store):
    return PhaseRecorder(phase_store)


@pytest.fixture
def pipeline(gateway, search_client, fetch_client, recorder, pipeline_settings):
    return DeepWorkPipeline(
        gateway=gateway,
        search_client=search_client,
        fetch_client=fetch_client,
        recorder=recorder,
        settings=pipeline_settings,
    )
