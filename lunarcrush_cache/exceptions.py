"""
Exception hierarchy for the cache refresher.
"""
from typing import Optional


class CacheRefreshError(Exception):
    """Base class for all refresher errors."""


class ConfigurationError(CacheRefreshError):
    """Required settings are missing or invalid."""


class UpstreamError(CacheRefreshError):
    """LunarCrush request failed (non-2xx response or transport failure)."""

    def __init__(self, message: str, status_code: Optional[int] = None, path: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class RateLimitExhaustedError(UpstreamError):
    """Still rate limited (HTTP 429) after the last allowed attempt."""

    def __init__(self, path: str, attempts: int):
        super().__init__(
            f"API request failed: 429 (after {attempts} attempts) for {path}",
            status_code=429,
            path=path,
        )
        self.attempts = attempts


class UpstreamTimeoutError(UpstreamError):
    """Request did not complete within the configured timeout."""


class StoreWriteError(CacheRefreshError):
    """Writing one or more cache entries failed."""

    def __init__(self, message: str, cache_keys: Optional[list[str]] = None):
        super().__init__(message)
        self.cache_keys = cache_keys or []


class StatusRecordError(CacheRefreshError):
    """Writing the refresh status row failed."""
