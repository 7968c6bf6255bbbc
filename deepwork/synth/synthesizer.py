"""
Deliverable synthesis: one business-tier call over the task, the persona
and everything research gathered.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.errors import SynthesizeFailed
from ..core.types import BudgetUsage, Source
from ..core.utils import Timer
from ..llm.gateway import ModelGateway, ModelRequest, ModelResponse, ModelTier, call_gateway
from .prompts import build_synthesize_prompt

logger = logging.getLogger(__name__)


@dataclass
class SynthesisOutcome:
    content: str
    response: ModelResponse
    duration_ms: int = 0


class Synthesizer:
    def __init__(self, gateway: ModelGateway, preview_chars: int = 200):
        self.gateway = gateway
        self.preview_chars = preview_chars

    async def synthesize(
        self,
        task_description: str,
        sources: List[Source],
        sub_questions: List[str],
        budget_used: Optional[BudgetUsage],
        persona_prompt: str,
        tier: ModelTier,
        caller_context: Optional[Dict[str, Any]] = None,
    ) -> SynthesisOutcome:
        """
        Produce the candidate deliverable.

        `budget_used` is None when research was skipped.

        Raises:
            SynthesizeFailed: the model gateway returned an error
        """
        request = ModelRequest(
            system_prompt=persona_prompt,
            user_message=build_synthesize_prompt(
                task_description, sources, sub_questions, budget_used, self.preview_chars
            ),
            tier=tier,
            caller_context={**(caller_context or {}), "phase": "synthesize"},
        )

        with Timer("synthesize", log=False) as timer:
            response = await call_gateway(self.gateway, request)

        if response.error:
            raise SynthesizeFailed(response.error)
        if not (response.content or "").strip():
            raise SynthesizeFailed("model returned an empty deliverable")

        return SynthesisOutcome(content=response.content, response=response, duration_ms=timer.elapsed_ms)
