"""
Run-scoped memo for the full coin list.

``/coins/list/v1`` feeds several views across the trends and market groups;
a ``CoinsSnapshot`` lives for exactly one refresh run so it is fetched once.
"""
import asyncio
from typing import Any, Optional

import structlog

from lunarcrush_cache.clients.lunarcrush import LunarCrushClient

logger = structlog.get_logger()


class CoinsSnapshot:
    """Fetches the coin list at most once; failures are not memoized."""

    def __init__(self, client: LunarCrushClient):
        self._client = client
        self._coins: Optional[dict[str, Any]] = None
        self._lock = asyncio.Lock()
        self.fetch_count = 0

    async def get_coins_list(self) -> dict[str, Any]:
        # Concurrent callers queue on the lock and reuse the first result.
        async with self._lock:
            if self._coins is None:
                self.fetch_count += 1
                self._coins = await self._client.fetch_coins_list()
                logger.debug("Fetched coin list", count=len(self._coins.get("data") or []))
            return self._coins
