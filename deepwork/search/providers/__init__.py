from .ddg import DDGProvider
from .tavily import TavilyProvider

__all__ = ["DDGProvider", "TavilyProvider"]
