"""
Shared pytest fixtures for the cache refresher tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Union

import httpx
import pytest

from lunarcrush_cache.clients.lunarcrush import LunarCrushClient
from lunarcrush_cache.config import Settings
from lunarcrush_cache.refresh.orchestrator import RefreshOrchestrator
from lunarcrush_cache.store import InMemoryCacheStore, InMemoryStatusRecorder

API_PREFIX = "/api4/public"

Route = Union[tuple[int, Any], list[tuple[int, Any]], Callable[[httpx.Request], httpx.Response]]


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        lunarcrush_api_key="test-key",
        database_url="postgresql://cache@localhost:5432/cache",
        database_service_key="service-secret",
        lunarcrush_rate_limit_rps=1000.0,
        lunarcrush_burst=50,
        api_timeout_seconds=5.0,
    )


# ============================================================================
# Fake upstream
# ============================================================================

class FakeLunarCrush:
    """
    httpx transport answering LunarCrush paths from a route table.

    A route is ``(status, body)``, a list of those consumed one per request
    (the last one repeats), or a callable taking the request.
    """

    def __init__(self, routes: dict[str, Route]):
        self.routes = dict(routes)
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(API_PREFIX)
        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        if isinstance(route, list):
            status, body = route.pop(0) if len(route) > 1 else route[0]
        else:
            status, body = route
        return httpx.Response(status, json=body)

    def calls(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path.removeprefix(API_PREFIX) == path)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


def make_client_factory(fake: FakeLunarCrush, sleep: RecordingSleep) -> Callable[[Settings], LunarCrushClient]:
    def factory(settings: Settings) -> LunarCrushClient:
        return LunarCrushClient(settings, transport=fake.transport, sleep=sleep)
    return factory


# ============================================================================
# Mock data
# ============================================================================

@pytest.fixture
def coins_body() -> dict:
    return {
        "data": [
            {"id": 1, "symbol": "BTC", "interactions_24h": 5, "galaxy_score": 72,
             "percent_change_24h": 2.5, "alt_rank": 3, "sentiment": 81},
            {"id": 2, "symbol": "ETH", "interactions_24h": 0, "galaxy_score": 59,
             "percent_change_24h": -1.2, "alt_rank": None, "sentiment": 0},
            {"id": 3, "symbol": "SOL", "interactions_24h": -1, "galaxy_score": 64,
             "percent_change_24h": 7.1, "alt_rank": 1, "sentiment": 77},
            {"id": 4, "symbol": "DOGE", "interactions_24h": 100, "galaxy_score": None,
             "percent_change_24h": 0, "alt_rank": 40, "sentiment": 90},
        ]
    }


@pytest.fixture
def creators_body() -> dict:
    return {
        "data": [
            {"creator_id": "a", "creator_name": "Binance Exchange"},
            {"creator_id": "b", "creator_name": "Example DAO"},
            {"creator_id": "c", "creator_name": "cointelegraph"},
            {"creator_id": "d", "creator_name": None},
        ]
    }


@pytest.fixture
def post_body() -> dict:
    return {
        "data": [
            {
                "id": i,
                "post_type": "news",
                "post_title": f"Headline {i}",
                "post_link": f"https://example.com/{i}",
                "post_image": None,
                "post_created": 1700000000 + i,
                "post_sentiment": 3.2,
                "creator_id": "x",
                "creator_name": "writer",
                "creator_display_name": "Writer",
                "creator_followers": 1000,
                "creator_avatar": None,
                "interactions_24h": 10,
                "interactions_total": 50,
                "extra_field": "dropped",
            }
            for i in range(20)
        ]
    }


@pytest.fixture
def upstream_routes(coins_body, creators_body, post_body) -> dict[str, Route]:
    """Healthy responses for every endpoint the refresh reads."""
    return {
        "/coins/list/v1": (200, coins_body),
        "/category/cryptocurrencies/creators/v1": (200, creators_body),
        "/categories/list/v1": (200, {"data": [{"category": f"cat{i}"} for i in range(12)]}),
        "/category/cryptocurrencies/v1": (200, {"data": {"category": "cryptocurrencies", "num_posts": 42}}),
        "/category/defi/v1": (200, {"data": {"category": "defi", "num_posts": 7}}),
        "/topic/bitcoin/v1": (200, {"data": {"topic": "bitcoin", "interactions_24h": 9}}),
        "/topic/ethereum/v1": (200, {"data": {"topic": "ethereum"}}),
        "/topic/solana/v1": (200, {"data": {}}),
        "/category/cryptocurrencies/news/v1": (200, post_body),
        "/category/cryptocurrencies/posts/v1": (200, post_body),
    }


@pytest.fixture
def fake_upstream(upstream_routes) -> FakeLunarCrush:
    return FakeLunarCrush(upstream_routes)


# ============================================================================
# Stores and orchestrator
# ============================================================================

class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store(settings, clock) -> InMemoryCacheStore:
    return InMemoryCacheStore(settings.cache_ttl_seconds, clock=clock)


@pytest.fixture
def recorder(clock) -> InMemoryStatusRecorder:
    return InMemoryStatusRecorder(clock=clock)


@pytest.fixture
def orchestrator(settings, store, recorder, fake_upstream, sleep) -> RefreshOrchestrator:
    return RefreshOrchestrator(
        settings,
        store=store,
        recorder=recorder,
        client_factory=make_client_factory(fake_upstream, sleep),
    )
