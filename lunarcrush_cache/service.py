"""
Wiring of stores, recorder, and orchestrator for the trigger surfaces.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from lunarcrush_cache.config import Settings
from lunarcrush_cache.database import Database
from lunarcrush_cache.refresh.orchestrator import RefreshOrchestrator
from lunarcrush_cache.store import (
    InMemoryCacheStore,
    InMemoryStatusRecorder,
    PostgresCacheStore,
    PostgresStatusRecorder,
)


def build_orchestrator(settings: Settings, db: Database, **kwargs) -> RefreshOrchestrator:
    """Orchestrator writing to the Postgres cache tables."""
    return RefreshOrchestrator(
        settings,
        store=PostgresCacheStore(db, settings.cache_ttl_seconds),
        recorder=PostgresStatusRecorder(db),
        **kwargs,
    )


def build_dry_run_orchestrator(settings: Settings, **kwargs) -> RefreshOrchestrator:
    """Orchestrator that keeps views and status in memory."""
    return RefreshOrchestrator(
        settings,
        store=InMemoryCacheStore(settings.cache_ttl_seconds),
        recorder=InMemoryStatusRecorder(),
        **kwargs,
    )


@asynccontextmanager
async def refresh_service(
    settings: Settings,
    dry_run: bool = False,
    **kwargs,
) -> AsyncIterator[RefreshOrchestrator]:
    """Orchestrator with its database pool opened for the block."""
    if dry_run:
        yield build_dry_run_orchestrator(settings, **kwargs)
        return

    async with Database(settings) as db:
        yield build_orchestrator(settings, db, **kwargs)
