"""
Self-critique and revision.

The critic scores a deliverable on four anchored 1-5 dimensions at the
cheap tier and never fails: malformed or erroring critiques fall back to a
neutral 3.0. The reviser rewrites the deliverable at the business tier
against the critique's gaps and the original research.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..core.types import CRITIQUE_DIMENSIONS, Critique, Source
from ..core.utils import Timer, as_string_list, fail_open_call
from ..llm.gateway import ModelGateway, ModelRequest, ModelResponse, ModelTier, call_gateway
from .prompts import SYSTEM_CRITIC, build_critique_prompt, build_revise_prompt

logger = logging.getLogger(__name__)

DIMENSION_FLOOR = 3.0
AVERAGE_FLOOR = 3.5
LEGACY_SCORE_ALIASES = {"dataBacked": "accuracy"}


@dataclass
class CritiqueOutcome:
    critique: Critique
    response: ModelResponse
    ok: bool
    duration_ms: int = 0


@dataclass
class RevisionOutcome:
    content: Optional[str]
    response: ModelResponse
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.response.error is None and bool((self.content or "").strip())

    @property
    def error(self) -> Optional[str]:
        if self.response.error:
            return self.response.error
        if not (self.content or "").strip():
            return "empty revision"
        return None


def _as_score(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return min(5.0, max(1.0, number))


def normalize_scores(raw_scores: Any) -> Dict[str, float]:
    """
    Clamp numeric dimension scores to [1, 5], rename legacy keys, drop the rest.
    """
    if not isinstance(raw_scores, dict):
        return {}
    scores = dict(raw_scores)
    for legacy, current in LEGACY_SCORE_ALIASES.items():
        if legacy in scores:
            value = scores.pop(legacy)
            if current not in scores:
                scores[current] = value

    normalized: Dict[str, float] = {}
    for name in CRITIQUE_DIMENSIONS:
        score = _as_score(scores.get(name))
        if score is not None:
            normalized[name] = score
    return normalized


def critique_from_json(data: Dict[str, Any]) -> Critique:
    scores = normalize_scores(data.get("scores"))
    dimension_scores = list(scores.values())
    if dimension_scores:
        overall = round(sum(dimension_scores) / len(dimension_scores), 1)
    else:
        overall = _as_score(data.get("overallScore")) or 3.0

    lesson = data.get("lesson")
    lesson = str(lesson).strip() if lesson else None

    return Critique(
        scores=scores,
        overall_score=overall,
        gaps=as_string_list(data.get("gaps")),
        lesson=lesson or None,
    )


def needs_revision(critique: Critique) -> Tuple[bool, Optional[str]]:
    """
    Revise when ANY dimension is below 3.0 OR the mean is below 3.5.
    Either condition alone triggers.
    """
    if critique.lowest_dimension_below(DIMENSION_FLOOR):
        return True, f"dimension below {DIMENSION_FLOOR}"
    if critique.mean_score() < AVERAGE_FLOOR:
        return True, f"average below {AVERAGE_FLOOR}"
    return False, None


class Critic:
    def __init__(self, gateway: ModelGateway, critique_tier: ModelTier = ModelTier.CHEAP):
        self.gateway = gateway
        self.critique_tier = critique_tier

    async def critique(
        self,
        task_description: str,
        content: str,
        citation_score: Optional[float] = None,
        caller_context: Optional[Dict[str, Any]] = None,
    ) -> CritiqueOutcome:
        result = await fail_open_call(
            self.gateway,
            ModelRequest(
                system_prompt=SYSTEM_CRITIC,
                user_message=build_critique_prompt(task_description, content, citation_score),
                tier=self.critique_tier,
                caller_context={**(caller_context or {}), "phase": "critique"},
            ),
            parse=critique_from_json,
            default=Critique.neutral(),
            label="critique",
        )
        return CritiqueOutcome(
            critique=result.value,
            response=result.response,
            ok=result.ok,
            duration_ms=result.duration_ms,
        )

    async def revise(
        self,
        task_description: str,
        original_content: str,
        critique: Critique,
        sources: List[Source],
        persona_prompt: str,
        tier: ModelTier,
        caller_context: Optional[Dict[str, Any]] = None,
    ) -> RevisionOutcome:
        """
        Rewrite the deliverable against the critique. Failure is reported on
        the outcome; the caller keeps its last good content.
        """
        request = ModelRequest(
            system_prompt=persona_prompt,
            user_message=build_revise_prompt(task_description, original_content, critique, sources),
            tier=tier,
            caller_context={**(caller_context or {}), "phase": "revise"},
        )
        with Timer("revise", log=False) as timer:
            response = await call_gateway(self.gateway, request)
        return RevisionOutcome(content=response.content, response=response, duration_ms=timer.elapsed_ms)
