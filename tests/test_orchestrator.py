"""
Tests for a full refresh run: lifecycle, accounting, and failure isolation.
"""
import asyncio
from contextlib import asynccontextmanager

import httpx
import pytest

from lunarcrush_cache.clients.lunarcrush import CATEGORY_DEFI, COINS_LIST, topic_path
from lunarcrush_cache.models import RefreshState
from lunarcrush_cache.refresh.orchestrator import CANCELLED_MESSAGE, RefreshOrchestrator
from lunarcrush_cache.store import PostgresCacheStore

from conftest import FakeLunarCrush, make_client_factory

ALL_KEYS = {
    "trends_trending_coins", "trends_top_creators", "trends_hot_sectors", "trends_galaxy_leaders",
    "market_top_gainers", "market_crypto_category", "market_defi_category",
    "market_altrank_champions", "market_sentiment_leaders",
    "latest_bitcoin", "latest_ethereum", "latest_solana",
    "latest_crypto_news", "latest_crypto_posts",
}


def _orchestrator(settings, store, recorder, routes, sleep, **kwargs):
    fake = FakeLunarCrush(routes)
    orchestrator = RefreshOrchestrator(
        settings,
        store=store,
        recorder=recorder,
        client_factory=make_client_factory(fake, sleep),
        **kwargs,
    )
    return orchestrator, fake


async def test_complete_run(orchestrator, store, recorder, fake_upstream):
    result = await orchestrator.execute()

    assert result.status == RefreshState.COMPLETE
    assert result.success
    assert (result.successful_endpoints, result.failed_endpoints) == (14, 0)
    assert result.errors == []
    assert set(store.entries) == ALL_KEYS
    assert fake_upstream.calls(COINS_LIST) == 1
    assert [row.status for row in recorder.history] == ["updating", "complete"]
    assert recorder.current.successful_endpoints == 14
    assert recorder.current.last_full_update is not None
    assert result.to_response() == {
        "success": True,
        "status": "complete",
        "successfulEndpoints": 14,
        "failedEndpoints": 0,
        "errors": [],
    }


async def test_market_failure_gives_partial(settings, store, recorder, upstream_routes, sleep):
    upstream_routes[CATEGORY_DEFI] = (500, {"error": "boom"})
    orchestrator, _ = _orchestrator(settings, store, recorder, upstream_routes, sleep)

    result = await orchestrator.execute()

    assert result.status == RefreshState.PARTIAL
    assert (result.successful_endpoints, result.failed_endpoints) == (9, 5)
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Market: ")
    assert "500" in result.errors[0]
    assert set(store.entries) == {k for k in ALL_KEYS if not k.startswith("market_")}

    row = recorder.current
    assert row.status == "partial"
    assert (row.successful_endpoints, row.failed_endpoints) == (9, 5)
    assert "Market: " in row.error_message
    assert row.last_full_update is None


async def test_errors_joined_in_group_order(settings, store, recorder, upstream_routes, sleep):
    upstream_routes[CATEGORY_DEFI] = (500, {})
    upstream_routes[topic_path("solana")] = (404, {})
    orchestrator, _ = _orchestrator(settings, store, recorder, upstream_routes, sleep)

    result = await orchestrator.execute()

    assert (result.successful_endpoints, result.failed_endpoints) == (4, 10)
    assert [e.split(":")[0] for e in result.errors] == ["Market", "Latest"]
    assert result.error_message == "; ".join(result.errors)
    assert recorder.current.error_message == result.error_message


async def test_every_group_failing_is_partial_not_error(settings, store, recorder, sleep):
    orchestrator, _ = _orchestrator(settings, store, recorder, {}, sleep)

    result = await orchestrator.execute()

    assert result.status == RefreshState.PARTIAL
    assert (result.successful_endpoints, result.failed_endpoints) == (0, 14)
    assert store.entries == {}


class MarketRejectingDatabase:
    """Accepts every batch except the one carrying market views."""

    def __init__(self):
        self.written: list[str] = []

    @asynccontextmanager
    async def transaction(self):
        yield self

    async def executemany(self, query, records):
        keys = [record[0] for record in records]
        if any(key.startswith("market_") for key in keys):
            raise OSError("disk full")
        self.written.extend(keys)


async def test_store_failure_fails_only_its_group(settings, recorder, clock, fake_upstream, sleep):
    db = MarketRejectingDatabase()
    orchestrator = RefreshOrchestrator(
        settings,
        store=PostgresCacheStore(db, settings.cache_ttl_seconds, clock=clock),
        recorder=recorder,
        client_factory=make_client_factory(fake_upstream, sleep),
    )

    result = await orchestrator.execute()

    assert result.status == RefreshState.PARTIAL
    assert (result.successful_endpoints, result.failed_endpoints) == (9, 5)
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Market: Failed to cache market_top_gainers")
    assert "disk full" in result.errors[0]
    assert set(db.written) == {k for k in ALL_KEYS if not k.startswith("market_")}
    assert recorder.current.status == "partial"
    assert recorder.current.error_message == result.errors[0]


async def test_rate_limited_group_is_retried_then_succeeds(settings, store, recorder, upstream_routes, sleep):
    rate_limited = (429, {})
    upstream_routes[CATEGORY_DEFI] = [rate_limited, rate_limited, upstream_routes[CATEGORY_DEFI]]
    orchestrator, fake = _orchestrator(settings, store, recorder, upstream_routes, sleep)

    result = await orchestrator.execute()

    assert result.status == RefreshState.COMPLETE
    assert fake.calls(CATEGORY_DEFI) == 3
    assert sleep.delays == [10.0, 20.0]


async def test_parallel_groups(settings, store, recorder, upstream_routes, sleep):
    upstream_routes[CATEGORY_DEFI] = (500, {})
    orchestrator, fake = _orchestrator(
        settings, store, recorder, upstream_routes, sleep, parallel_groups=True
    )

    result = await orchestrator.execute()

    assert [g.name for g in result.groups] == ["Trends", "Market", "Latest"]
    assert (result.successful_endpoints, result.failed_endpoints) == (9, 5)
    assert fake.calls(COINS_LIST) == 1


async def test_fatal_error_outside_groups(settings, store, recorder):
    def broken_factory(settings):
        raise RuntimeError("client construction failed")

    orchestrator = RefreshOrchestrator(
        settings, store=store, recorder=recorder, client_factory=broken_factory
    )

    result = await orchestrator.execute()

    assert result.status == RefreshState.ERROR
    assert (result.successful_endpoints, result.failed_endpoints) == (0, 14)
    assert result.to_response() == {"success": False, "error": "client construction failed"}
    assert recorder.current.status == "error"
    assert recorder.current.failed_endpoints == 14
    assert recorder.current.error_message == "client construction failed"


async def test_status_write_failure_does_not_abort_run(orchestrator, recorder, store, monkeypatch):
    async def failing_write(row):
        raise OSError("status table unavailable")

    monkeypatch.setattr(recorder, "_write", failing_write)

    result = await orchestrator.execute()

    assert result.status == RefreshState.COMPLETE
    assert result.status_recorded is False
    assert set(store.entries) == ALL_KEYS


async def test_cancellation_records_error_and_reraises(settings, store, recorder, upstream_routes, sleep):
    started = asyncio.Event()

    async def hang(request: httpx.Request) -> httpx.Response:
        started.set()
        await asyncio.sleep(30)
        return httpx.Response(200, json={"data": []})

    upstream_routes[COINS_LIST] = hang
    orchestrator, _ = _orchestrator(settings, store, recorder, upstream_routes, sleep)

    task = asyncio.create_task(orchestrator.execute())
    await asyncio.wait_for(started.wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert recorder.current.status == "error"
    assert recorder.current.error_message == CANCELLED_MESSAGE
    assert recorder.current.failed_endpoints == 14


async def test_each_run_fetches_coins_again(orchestrator, fake_upstream):
    await orchestrator.execute()
    await orchestrator.execute()

    assert fake_upstream.calls(COINS_LIST) == 2
