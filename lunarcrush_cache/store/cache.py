"""
Cache store writers for the ``crypto_cache`` table.

Each view is upserted by ``cache_key``; a write fully replaces the previous
payload for that key. A group's views go through ``write_batch`` so they
land together or not at all.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

import asyncpg
import structlog

from lunarcrush_cache.database import Database
from lunarcrush_cache.exceptions import StoreWriteError
from lunarcrush_cache.models import CacheEntry, ViewPayload, utcnow

logger = structlog.get_logger()

UPSERT_CACHE_ENTRY = """
    INSERT INTO crypto_cache
        (cache_key, endpoint_url, data, updated_at, expires_at, response_status)
    VALUES
        ($1, $2, $3, $4, $5, $6)
    ON CONFLICT (cache_key) DO UPDATE SET
        endpoint_url = EXCLUDED.endpoint_url,
        data = EXCLUDED.data,
        updated_at = EXCLUDED.updated_at,
        expires_at = EXCLUDED.expires_at,
        response_status = EXCLUDED.response_status
"""


class BaseCacheStore(ABC):
    """Stamps views with TTL and persists them."""

    def __init__(self, ttl_seconds: int, clock: Callable[[], datetime] = utcnow):
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _stamp(self, views: Iterable[ViewPayload]) -> list[CacheEntry]:
        now = self._clock()
        return [
            CacheEntry.build(
                view.cache_key,
                view.endpoint_url,
                view.data,
                ttl_seconds=self.ttl_seconds,
                now=now,
            )
            for view in views
        ]

    async def write(self, cache_key: str, endpoint_url: str, data: Any) -> CacheEntry:
        """
        Upsert a single cache entry.

        Raises:
            StoreWriteError: If the entry could not be persisted
        """
        entries = await self.write_batch(
            [ViewPayload(cache_key=cache_key, endpoint_url=endpoint_url, data=data)]
        )
        return entries[0]

    async def write_batch(self, views: list[ViewPayload]) -> list[CacheEntry]:
        """
        Upsert several entries atomically.

        Raises:
            StoreWriteError: If any entry could not be persisted (none are)
        """
        if not views:
            return []

        entries = self._stamp(views)
        await self._persist(entries)
        logger.debug(
            "Cached views",
            cache_keys=[entry.cache_key for entry in entries],
            expires_at=entries[0].expires_at.isoformat(),
        )
        return entries

    @abstractmethod
    async def _persist(self, entries: list[CacheEntry]) -> None:
        """Write stamped entries; all or nothing."""


class PostgresCacheStore(BaseCacheStore):
    """Writes views into the shared Postgres ``crypto_cache`` table."""

    def __init__(self, db: Database, ttl_seconds: int, clock: Callable[[], datetime] = utcnow):
        super().__init__(ttl_seconds, clock)
        self.db = db

    async def _persist(self, entries: list[CacheEntry]) -> None:
        keys = [entry.cache_key for entry in entries]
        records = [
            (
                entry.cache_key,
                entry.endpoint_url,
                entry.data,
                entry.updated_at,
                entry.expires_at,
                entry.response_status,
            )
            for entry in entries
        ]
        try:
            async with self.db.transaction() as conn:
                await conn.executemany(UPSERT_CACHE_ENTRY, records)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error("Failed to cache views", cache_keys=keys, error=str(e))
            raise StoreWriteError(f"Failed to cache {', '.join(keys)}: {e}", keys) from e


class InMemoryCacheStore(BaseCacheStore):
    """Process-local store used for dry runs and tests."""

    def __init__(self, ttl_seconds: int, clock: Callable[[], datetime] = utcnow):
        super().__init__(ttl_seconds, clock)
        self.entries: dict[str, CacheEntry] = {}
        self.write_count = 0

    async def _persist(self, entries: list[CacheEntry]) -> None:
        self.entries.update({entry.cache_key: entry for entry in entries})
        self.write_count += len(entries)

    def get(self, cache_key: str) -> Optional[CacheEntry]:
        return self.entries.get(cache_key)
