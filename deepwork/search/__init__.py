"""
Web search clients: Tavily when configured, DuckDuckGo otherwise.
"""

from .client import SearchClient, WebSearchClient
from .providers.ddg import DDGProvider
from .providers.tavily import TavilyProvider

__all__ = ["SearchClient", "WebSearchClient", "DDGProvider", "TavilyProvider"]
