"""
Task decomposition: the first phase of every pipeline run.

Breaks a task into sub-questions, web search queries and quality
requirements with one cheap-tier model call. Malformed output never fails
the run; only a gateway error does.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.errors import DecomposeFailed
from ..core.types import Decomposition
from ..core.utils import Timer, as_string_list, parse_json_object
from ..llm.gateway import ModelGateway, ModelRequest, ModelResponse, ModelTier, call_gateway
from .prompts import SYSTEM_DECOMPOSER, build_decompose_prompt

logger = logging.getLogger(__name__)


@dataclass
class DecomposeOutcome:
    decomposition: Decomposition
    response: ModelResponse
    parsed_ok: bool
    duration_ms: int = 0


def decomposition_from_json(data: Dict[str, Any], task_description: str) -> Decomposition:
    """
    Build a Decomposition from model JSON, refilling empty lists with the task itself.
    """
    sub_questions = as_string_list(data.get("subQuestions"))
    search_queries = as_string_list(data.get("searchQueries"))
    return Decomposition(
        sub_questions=sub_questions or [task_description],
        search_queries=search_queries or [task_description],
        key_requirements=as_string_list(data.get("keyRequirements")),
    )


class Decomposer:
    def __init__(self, gateway: ModelGateway, tier: ModelTier = ModelTier.CHEAP):
        self.gateway = gateway
        self.tier = tier

    async def decompose(
        self,
        task_description: str,
        approach_hints: Optional[str] = None,
        caller_context: Optional[Dict[str, Any]] = None,
    ) -> DecomposeOutcome:
        """
        Decompose a task.

        Raises:
            DecomposeFailed: the model gateway returned an error
        """
        request = ModelRequest(
            system_prompt=SYSTEM_DECOMPOSER,
            user_message=build_decompose_prompt(task_description, approach_hints),
            tier=self.tier,
            caller_context={**(caller_context or {}), "phase": "decompose"},
        )

        with Timer("decompose", log=False) as timer:
            response = await call_gateway(self.gateway, request)

        if response.error:
            raise DecomposeFailed(response.error)

        parsed = parse_json_object(response.content, default=None)
        if parsed.ok:
            decomposition = decomposition_from_json(parsed.value, task_description)
        else:
            logger.info(f"Decompose returned non-JSON ({parsed.error}), using defaults")
            decomposition = Decomposition.fallback(task_description)

        return DecomposeOutcome(
            decomposition=decomposition,
            response=response,
            parsed_ok=parsed.ok,
            duration_ms=timer.elapsed_ms,
        )
