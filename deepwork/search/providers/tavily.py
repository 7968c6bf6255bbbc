# deepwork/search/providers/tavily.py
from __future__ import annotations
from typing import List, Optional
import asyncio
import logging

from tavily import TavilyClient

from ...core.types import SearchHit, SearchResponse
from ...config.settings import SearchSettings

logger = logging.getLogger(__name__)


class TavilyProvider:
    """
    Tavily provider. If no API key is configured it reports an error and the
    search client falls back to DuckDuckGo.
    """

    name = "tavily"

    def __init__(self, settings: Optional[SearchSettings] = None):
        self.cfg = settings or SearchSettings()
        self.api_key = self.cfg.tavily_api_key
        self._client = TavilyClient(api_key=self.api_key) if self.api_key else None

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _search_sync(self, query: str, max_results: int) -> List[SearchHit]:
        resp = self._client.search(query, max_results=max_results)
        hits: List[SearchHit] = []
        for r in resp.get("results", []):
            url = r.get("url") or ""
            if not url:
                continue
            hits.append(SearchHit(
                url=url,
                title=r.get("title") or "",
                snippet=r.get("content") or "",
                source=self.name,
            ))
        return hits[:max_results]

    async def search(self, query: str, max_results: int = 5) -> SearchResponse:
        if not self.configured:
            return SearchResponse(results=[], error="Tavily API key missing")
        try:
            hits = await asyncio.to_thread(self._search_sync, query, max_results)
        except Exception as e:
            logger.warning(f"Tavily search failed for '{query}': {e}")
            return SearchResponse(results=[], error=str(e))
        logger.info(f"Tavily search '{query}': {len(hits)} results")
        return SearchResponse(results=hits)
