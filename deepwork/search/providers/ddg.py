# deepwork/search/providers/ddg.py
from __future__ import annotations
from typing import List, Optional
import asyncio
import logging

from ddgs import DDGS

from ...core.types import SearchHit, SearchResponse
from ...config.settings import SearchSettings

logger = logging.getLogger(__name__)


class DDGProvider:
    """
    DuckDuckGo (ddgs) provider. No API key required.
    """

    name = "ddg"

    def __init__(self, settings: Optional[SearchSettings] = None):
        self.cfg = settings or SearchSettings()

    def _search_sync(self, query: str, max_results: int) -> List[SearchHit]:
        out: List[SearchHit] = []
        with DDGS() as ddg:
            results = list(ddg.text(
                query,
                max_results=max_results,
                region=self.cfg.search_region,
                safesearch=self.cfg.safesearch,
            ))

        for r in results:
            url = r.get("href") or r.get("link") or ""
            if not url:
                continue
            out.append(SearchHit(
                url=url,
                title=r.get("title") or "",
                snippet=r.get("body") or "",
                source=self.name,
            ))
        return out[:max_results]

    async def search(self, query: str, max_results: int = 5) -> SearchResponse:
        try:
            hits = await asyncio.to_thread(self._search_sync, query, max_results)
        except Exception as e:
            logger.warning(f"DDG search failed for '{query}': {e}")
            return SearchResponse(results=[], error=str(e))
        logger.info(f"DuckDuckGo search '{query}': {len(hits)} results")
        return SearchResponse(results=hits)
