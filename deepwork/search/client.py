# deepwork/search/client.py
from __future__ import annotations
from typing import List, Optional, Protocol, runtime_checkable
import logging

from ..config.settings import SearchSettings
from ..core.types import SearchResponse
from .providers.ddg import DDGProvider
from .providers.tavily import TavilyProvider

logger = logging.getLogger(__name__)


@runtime_checkable
class SearchClient(Protocol):
    async def search(self, query: str, max_results: int) -> SearchResponse:
        ...


class WebSearchClient:
    """
    Search client used by the research coordinator.

    Tries providers in order and returns the first non-empty result set.
    Tavily goes first when an API key exists; DuckDuckGo is always the
    last resort. Zero results is not an error.
    """

    def __init__(self, settings: Optional[SearchSettings] = None, providers: Optional[List] = None):
        self.cfg = settings or SearchSettings()
        if providers is None:
            providers = []
            tavily = TavilyProvider(settings=self.cfg)
            if tavily.configured:
                providers.append(tavily)
            providers.append(DDGProvider(settings=self.cfg))
        self.providers = providers

    async def search(self, query: str, max_results: int = 5) -> SearchResponse:
        errors: List[str] = []
        for provider in self.providers:
            response = await provider.search(query, max_results)
            if response.results:
                return SearchResponse(results=response.results[:max_results])
            if response.error:
                errors.append(f"{getattr(provider, 'name', type(provider).__name__)}: {response.error}")
                logger.info(f"Provider {getattr(provider, 'name', provider)} failed for '{query}', trying next")

        if errors and len(errors) == len(self.providers):
            return SearchResponse(results=[], error="; ".join(errors))
        return SearchResponse(results=[])
