"""
Client package initialization.
Exports the LunarCrush client and shared HTTP plumbing.
"""
from lunarcrush_cache.clients.base import BaseAPIClient, RateLimiter, backoff_delay
from lunarcrush_cache.clients.lunarcrush import LunarCrushClient

__all__ = [
    "BaseAPIClient",
    "RateLimiter",
    "backoff_delay",
    "LunarCrushClient",
]
