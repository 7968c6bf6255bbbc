# deepwork/config/settings.py
from __future__ import annotations
import os
from dataclasses import dataclass, field, replace
from typing import Dict


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


DEFAULT_USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# ---------- Pipeline budgets ----------
@dataclass(frozen=True)
class PipelineSettings:
    """
    Immutable limits for one pipeline instance. Use with_overrides() for a
    per-run variant instead of mutating.
    """
    max_fetches_per_step: int = 8        # global across every research round
    max_queries_per_step: int = 4        # queries consulted per round
    max_urls_per_query: int = 2
    max_chars_per_page: int = 6000
    search_results_per_query: int = 3
    max_research_iterations: int = 2     # gap-analysis iterations
    max_revisions: int = 2
    min_substantive_sources: int = 3
    substantive_threshold_chars: int = 500
    source_preview_chars: int = 200

    def __post_init__(self):
        for name in (
            "max_fetches_per_step", "max_queries_per_step", "max_urls_per_query",
            "max_chars_per_page", "search_results_per_query", "max_research_iterations",
            "max_revisions", "min_substantive_sources", "substantive_threshold_chars",
            "source_preview_chars",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    @property
    def max_queries_total(self) -> int:
        # initial round + refinement round + one round per gap iteration
        return self.max_queries_per_step * (2 + self.max_research_iterations)

    def with_overrides(self, **overrides) -> "PipelineSettings":
        return replace(self, **overrides)

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        d = cls()
        return cls(
            max_fetches_per_step=_env_int("DEEPWORK_MAX_FETCHES_PER_STEP", d.max_fetches_per_step),
            max_queries_per_step=_env_int("DEEPWORK_MAX_QUERIES_PER_STEP", d.max_queries_per_step),
            max_urls_per_query=_env_int("DEEPWORK_MAX_URLS_PER_QUERY", d.max_urls_per_query),
            max_chars_per_page=_env_int("DEEPWORK_MAX_CHARS_PER_PAGE", d.max_chars_per_page),
            search_results_per_query=_env_int("DEEPWORK_SEARCH_RESULTS_PER_QUERY", d.search_results_per_query),
            max_research_iterations=_env_int("DEEPWORK_MAX_RESEARCH_ITERATIONS", d.max_research_iterations),
            max_revisions=_env_int("DEEPWORK_MAX_REVISIONS", d.max_revisions),
            min_substantive_sources=_env_int("DEEPWORK_MIN_SUBSTANTIVE_SOURCES", d.min_substantive_sources),
            substantive_threshold_chars=_env_int("DEEPWORK_SUBSTANTIVE_THRESHOLD_CHARS", d.substantive_threshold_chars),
            source_preview_chars=_env_int("DEEPWORK_SOURCE_PREVIEW_CHARS", d.source_preview_chars),
        )

# ---------- Model gateway ----------
def _default_tier_models() -> Dict[str, str]:
    return {
        "tier1": os.getenv("DEEPWORK_TIER1_MODEL", "llama3.2:3b"),
        "tier2": os.getenv("DEEPWORK_TIER2_MODEL", "qwen2.5:7b"),
        "tier3": os.getenv("DEEPWORK_TIER3_MODEL", "qwen2.5:32b"),
    }


@dataclass(frozen=True)
class GatewaySettings:
    ollama_url: str = field(default_factory=lambda: os.getenv("OLLAMA_URL", "http://ollama:11434"))
    api_key: str = field(default_factory=lambda: os.getenv("OLLAMA_API_KEY", ""))
    tier_models: Dict[str, str] = field(default_factory=_default_tier_models)
    request_timeout_s: int = field(default_factory=lambda: _env_int("DEEPWORK_LLM_TIMEOUT_S", 120))
    temperature: float = 0.7

# ---------- Search / fetch ----------
@dataclass(frozen=True)
class SearchSettings:
    tavily_api_key: str = field(default_factory=lambda: os.getenv("TAVILY_API_KEY", ""))
    search_region: str = field(default_factory=lambda: os.getenv("SEARCH_REGION", "us-en"))
    safesearch: str = field(default_factory=lambda: os.getenv("SEARCH_SAFESEARCH", "moderate"))
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout_s: int = field(default_factory=lambda: _env_int("REQUESTS_TIMEOUT_S", 10))

# ---------- Root config ----------
@dataclass(frozen=True)
class Settings:
    pipeline: PipelineSettings = field(default_factory=PipelineSettings.from_env)
    gateway: GatewaySettings = field(default_factory=GatewaySettings)
    search: SearchSettings = field(default_factory=SearchSettings)
    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", ""))


def get_settings() -> Settings:
    """
    Factory so callers can do:
        from deepwork.config.settings import get_settings
        cfg = get_settings()
    """
    return Settings()
