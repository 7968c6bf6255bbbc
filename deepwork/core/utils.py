# deepwork/core/utils.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, List, Optional
import json
import logging
import re
import time

from .types import ParseResult
from ..llm.gateway import ModelRequest, ModelResponse, call_gateway

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)

# ----- JSON-from-text parsing -----

def strip_code_fences(text: str) -> str:
    """
    Remove markdown code fences a model may wrap around JSON.
    """
    return _FENCE_RE.sub("", text or "").strip()


def parse_json_object(text: Optional[str], default: Any) -> ParseResult:
    """
    Parse a JSON object out of model output.
    Never raises: on any failure the result carries `default` and ok=False.
    """
    if not text or not text.strip():
        return ParseResult(ok=False, value=default, error="empty response")
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except (json.JSONDecodeError, ValueError) as e:
        return ParseResult(ok=False, value=default, error=f"invalid JSON: {e}")
    if not isinstance(parsed, dict):
        return ParseResult(ok=False, value=default, error=f"expected JSON object, got {type(parsed).__name__}")
    return ParseResult(ok=True, value=parsed)


def as_string_list(value: Any) -> List[str]:
    """
    Coerce a JSON field into a list of non-empty strings.
    """
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    out: List[str] = []
    for item in value:
        if item is None or isinstance(item, (dict, list)):
            continue
        text = str(item).strip()
        if text:
            out.append(text)
    return out

# ----- Fail-open meta-work calls -----

@dataclass
class MetaCallResult:
    """
    Result of a meta-work call that always carries a usable value.
    """
    value: Any
    ok: bool
    response: ModelResponse
    error: Optional[str] = None
    duration_ms: int = 0


async def fail_open_call(
    gateway: Any,
    request: ModelRequest,
    parse: Callable[[dict], Any],
    default: Any,
    label: str = "meta-work",
) -> MetaCallResult:
    """
    Run a cheap-tier meta-work call whose failure must never abort the run.

    `parse` turns the decoded JSON object into the call site's value; any
    gateway error, unparseable output or exception from `parse` yields
    `default` instead.
    """
    with Timer(label, log=False) as timer:
        response = await call_gateway(gateway, request)

    if response.error:
        logger.warning(f"{label} call failed, using default: {response.error}")
        return MetaCallResult(value=default, ok=False, response=response,
                              error=response.error, duration_ms=timer.elapsed_ms)

    parsed = parse_json_object(response.content, default=None)
    if not parsed.ok:
        logger.warning(f"{label} returned unusable output, using default: {parsed.error}")
        return MetaCallResult(value=default, ok=False, response=response,
                              error=parsed.error, duration_ms=timer.elapsed_ms)

    try:
        value = parse(parsed.value)
    except (TypeError, ValueError, KeyError) as e:
        logger.warning(f"{label} JSON had unexpected shape, using default: {e}")
        return MetaCallResult(value=default, ok=False, response=response,
                              error=str(e), duration_ms=timer.elapsed_ms)

    return MetaCallResult(value=value, ok=True, response=response, duration_ms=timer.elapsed_ms)

# ----- Simple timer -----

class Timer:
    """
    Context manager for measuring elapsed time.
    """
    def __init__(self, label: str = "Timer", log: bool = True):
        self.label = label
        self.log = log
        self.start = None
        self.elapsed = 0.0

    def __enter__(self):
        self.start = time.time()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.elapsed = time.time() - self.start
        if self.log:
            logger.info(f"{self.label} took {self.elapsed:.2f}s")

    @property
    def elapsed_ms(self) -> int:
        return int(self.elapsed * 1000)
