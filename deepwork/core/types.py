# deepwork/core/types.py
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

CRITIQUE_DIMENSIONS = ("completeness", "accuracy", "actionability", "depth")


@dataclass
class ParseResult:
    """
    Outcome of parsing JSON out of model text.
    ok=False means `value` holds the caller's default, never a partial parse.
    """
    ok: bool
    value: Any
    error: Optional[str] = None


@dataclass
class Decomposition:
    """
    Sub-questions, search queries and quality requirements for one task.
    """
    sub_questions: List[str]
    search_queries: List[str]
    key_requirements: List[str]

    @classmethod
    def fallback(cls, task_description: str) -> "Decomposition":
        return cls(
            sub_questions=[task_description],
            search_queries=[task_description],
            key_requirements=[task_description],
        )


@dataclass
class Source:
    """
    A fetched web page kept for synthesis. `url` is unique within a research run.
    """
    url: str
    title: str
    content: str
    snippet: str = ""

    def is_substantive(self, threshold_chars: int) -> bool:
        return len(self.content or "") >= threshold_chars


@dataclass
class StructuredSource:
    """
    Compact per-source summary used for logging, prompts and citation checks.
    """
    url: str
    title: str
    char_count: int
    key_data_points: str

    @classmethod
    def from_source(cls, source: Source, preview_chars: int = 200) -> "StructuredSource":
        content = source.content or ""
        return cls(
            url=source.url,
            title=source.title or source.url,
            char_count=len(content),
            key_data_points=content[:preview_chars],
        )


@dataclass
class BudgetUsage:
    queries_used: int
    queries_max: int
    fetches_used: int
    fetches_max: int

    @property
    def fetches_remaining(self) -> int:
        return max(0, self.fetches_max - self.fetches_used)

    @property
    def exhausted(self) -> bool:
        return self.fetches_used >= self.fetches_max

    def summary(self) -> str:
        return (
            f"{self.queries_used}/{self.queries_max} search queries used, "
            f"{self.fetches_used}/{self.fetches_max} page fetches used"
        )


@dataclass
class GapAnalysis:
    gaps: List[str] = field(default_factory=list)
    additional_queries: List[str] = field(default_factory=list)
    sufficient: bool = True


@dataclass
class Critique:
    """
    Self-evaluation of a deliverable on the four rubric dimensions.
    """
    scores: Dict[str, float]
    overall_score: float
    gaps: List[str] = field(default_factory=list)
    lesson: Optional[str] = None

    @classmethod
    def neutral(cls) -> "Critique":
        return cls(
            scores={name: 3 for name in CRITIQUE_DIMENSIONS},
            overall_score=3.0,
            gaps=[],
            lesson=None,
        )

    def dimension_values(self) -> List[float]:
        values = (self.scores.get(name) for name in CRITIQUE_DIMENSIONS)
        return [v for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]

    def mean_score(self) -> float:
        values = self.dimension_values()
        if not values:
            return self.overall_score
        return sum(values) / len(values)

    def lowest_dimension_below(self, threshold: float) -> bool:
        return any(v < threshold for v in self.dimension_values())


@dataclass
class CitationCheck:
    cited_urls: List[str]
    uncited_urls: List[str]
    citation_score: float
    cited_claims: int
    total_factual_claims: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PhaseRecord:
    """
    One append-only audit entry for a single pipeline phase.
    """
    task_id: str
    phase_name: str
    phase_order: int
    content: Optional[str] = None
    model_tier: Optional[str] = None
    tokens_used: int = 0
    duration_ms: int = 0
    score: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> str:
        return self.metadata.get("status", "ok")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PhaseSummary:
    name: str
    order: int
    duration_ms: int
    status: str = "ok"


@dataclass
class PipelineResult:
    """
    Terminal artifact of a pipeline run.
    `content` is None exactly when `error` is set.
    """
    task_id: str
    content: Optional[str] = None
    critique_score: Optional[float] = None
    critique_lesson: Optional[str] = None
    revised: bool = False
    revision_count: int = 0
    phases: List[PhaseSummary] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SearchHit:
    """
    A single search hit from a provider (DuckDuckGo, Tavily).
    """
    url: str
    title: str
    snippet: str = ""
    source: str = ""   # provider name e.g. "ddg", "tavily"


@dataclass
class SearchResponse:
    results: List[SearchHit] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class FetchResponse:
    title: Optional[str] = None
    content: Optional[str] = None
    error: Optional[str] = None
