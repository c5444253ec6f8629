"""
Store package initialization.
Exports cache writers and status recorders.
"""
from lunarcrush_cache.store.cache import (
    BaseCacheStore,
    InMemoryCacheStore,
    PostgresCacheStore,
)
from lunarcrush_cache.store.status import (
    BaseStatusRecorder,
    InMemoryStatusRecorder,
    PostgresStatusRecorder,
    StatusWriteResult,
)

__all__ = [
    # Cache entries
    "BaseCacheStore",
    "PostgresCacheStore",
    "InMemoryCacheStore",

    # Status row
    "BaseStatusRecorder",
    "PostgresStatusRecorder",
    "InMemoryStatusRecorder",
    "StatusWriteResult",
]
