from __future__ import annotations
from typing import Optional, Protocol, runtime_checkable
import logging

import httpx
import trafilatura
from bs4 import BeautifulSoup

from ..config.settings import SearchSettings
from ..core.types import FetchResponse

logger = logging.getLogger(__name__)

_DROP_TAGS = ["script", "style", "noscript", "template"]


@runtime_checkable
class FetchClient(Protocol):
    async def fetch(self, url: str, max_chars: int) -> FetchResponse:
        ...


def html_to_text(raw_html: str) -> str:
    """
    Whole-page text used when trafilatura finds no main content.
    Each text node lands on its own line.
    """
    soup = BeautifulSoup(raw_html, "html.parser")
    for tag in soup.find_all(_DROP_TAGS):
        tag.decompose()
    return soup.get_text(separator="\n", strip=True)


def extract_title(raw_html: str) -> str:
    try:
        metadata = trafilatura.extract_metadata(raw_html)
        title = getattr(metadata, "title", None) if metadata is not None else None
        if title:
            return title.strip()
    except Exception as e:
        logger.debug(f"trafilatura.extract_metadata failed: {e}")
    soup = BeautifulSoup(raw_html, "html.parser")
    return soup.title.get_text(strip=True) if soup.title else ""


def extract_text(raw_html: str) -> str:
    """
    Main-content text via trafilatura, falling back to whole-page text.
    """
    text = ""
    try:
        text = trafilatura.extract(
            raw_html,
            include_comments=False,
            include_tables=True,
            include_formatting=False,
            favor_precision=True,
        ) or ""
    except Exception as e:
        logger.debug(f"trafilatura.extract failed: {e}")
    if not text:
        text = html_to_text(raw_html)
    return text


class HttpFetchClient:
    """
    GET a page with a browser User-Agent and return readable text capped at max_chars.
    Failures come back as FetchResponse.error, never as exceptions.
    """

    def __init__(self, settings: Optional[SearchSettings] = None, client: Optional[httpx.AsyncClient] = None):
        self.cfg = settings or SearchSettings()
        self._client = client

    def _headers(self):
        return {
            "User-Agent": self.cfg.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/json,text/plain",
        }

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, headers=self._headers(), follow_redirects=True)
        async with httpx.AsyncClient(timeout=self.cfg.request_timeout_s) as client:
            return await client.get(url, headers=self._headers(), follow_redirects=True)

    async def fetch(self, url: str, max_chars: int = 8000) -> FetchResponse:
        try:
            response = await self._get(url)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            return FetchResponse(error=f"{type(e).__name__}: {e}")

        if response.status_code >= 400:
            return FetchResponse(error=f"HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "")
        raw = response.text

        if "application/json" in content_type or "text/plain" in content_type:
            return FetchResponse(title=url, content=raw[:max_chars])

        title = extract_title(raw) or url
        text = extract_text(raw)
        return FetchResponse(title=title, content=text[:max_chars])
