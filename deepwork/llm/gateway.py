"""
Model gateway contract used by every pipeline phase.

The pipeline never talks to a model provider directly. It builds a
ModelRequest, names the tier it needs, and receives a ModelResponse whose
`error` field is set instead of an exception being raised.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class ModelTier(Enum):
    """Cost/capability classes of model calls"""
    CHEAP = "tier1"      # Meta-work: decomposition, query refinement, gap analysis, critique
    STANDARD = "tier2"   # Business deliverables
    PREMIUM = "tier3"    # High-stakes deliverables

    @classmethod
    def parse(cls, value: Any) -> "ModelTier":
        """Accept a ModelTier, its value ("tier2") or its name ("standard")"""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for tier in cls:
            if text in (tier.value, tier.name.lower()):
                return tier
        raise ValueError(f"Unknown model tier: {value!r}")


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total(self) -> int:
        return (self.prompt_tokens or 0) + (self.completion_tokens or 0)


@dataclass
class ModelRequest:
    system_prompt: str
    user_message: str
    tier: ModelTier
    caller_context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelResponse:
    """Structured response from a gateway call"""
    content: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: Optional[str] = None
    model: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: str) -> "ModelResponse":
        return cls(content="", error=error)


@runtime_checkable
class ModelGateway(Protocol):
    async def call(self, request: ModelRequest) -> ModelResponse:
        ...


async def call_gateway(gateway: ModelGateway, request: ModelRequest) -> ModelResponse:
    """
    Invoke the gateway, converting an unexpected exception into an error response.
    """
    try:
        response = await gateway.call(request)
    except Exception as e:
        logger.error(f"Model gateway raised during {request.caller_context.get('phase', 'call')}: {e}")
        return ModelResponse.failure(f"{type(e).__name__}: {e}")
    if response is None:
        return ModelResponse.failure("gateway returned no response")
    return response
