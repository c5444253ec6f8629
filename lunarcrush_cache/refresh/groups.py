"""
Group refreshers: trends, market, and latest.

A group fans out its upstream calls concurrently, derives its views, and
writes them as one batch. Any failure fails the whole group and nothing of it
is written. Each group counts as a fixed number of logical endpoints (one per
view) for status accounting.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable

import structlog

from lunarcrush_cache.clients.lunarcrush import (
    CATEGORIES_LIST,
    CATEGORY_CREATORS,
    CATEGORY_CRYPTO,
    CATEGORY_DEFI,
    CATEGORY_NEWS,
    CATEGORY_POSTS,
    COINS_LIST,
    LunarCrushClient,
    topic_path,
)
from lunarcrush_cache.models import ViewPayload
from lunarcrush_cache.refresh import views
from lunarcrush_cache.refresh.coins import CoinsSnapshot
from lunarcrush_cache.store.cache import BaseCacheStore

logger = structlog.get_logger()

Payload = dict[str, Any]


async def gather_fail_fast(*aws: Awaitable[Any]) -> list[Any]:
    """
    Run awaitables concurrently and return their results in order.

    The first failure cancels the calls still in flight and is re-raised.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except Exception:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class GroupRefresher(ABC):
    """Base class for one bundle of upstream calls and derived views."""

    NAME: str
    VIEW_COUNT: int

    def __init__(self, client: LunarCrushClient, coins: CoinsSnapshot, store: BaseCacheStore):
        self.client = client
        self.coins = coins
        self.store = store

    async def refresh(self) -> int:
        """
        Fetch, derive, and cache every view of the group.

        Returns:
            Number of logical endpoints refreshed (``VIEW_COUNT``)

        Raises:
            UpstreamError: An upstream call failed (nothing written)
            StoreWriteError: The batch write failed
        """
        log = logger.bind(group=self.NAME)
        log.info("Caching group data")

        payloads = await self.fetch()
        derived = self.derive(*payloads)
        await self.store.write_batch(derived)

        log.info("Group data cached", views=len(derived))
        return self.VIEW_COUNT

    @abstractmethod
    async def fetch(self) -> list[Payload]:
        """Issue the group's upstream calls concurrently."""

    @abstractmethod
    def derive(self, *payloads: Payload) -> list[ViewPayload]:
        """Build the group's views from raw payloads."""


# =============================================================================
# TRENDS
# =============================================================================

class TrendsRefresher(GroupRefresher):
    """Trending coins, top creators, hot sectors, galaxy leaders."""

    NAME = "Trends"
    VIEW_COUNT = 4

    async def fetch(self) -> list[Payload]:
        return await gather_fail_fast(
            self.coins.get_coins_list(),
            self.client.fetch_creators(),
            self.client.fetch_categories(),
        )

    def derive(self, coins_body: Payload, creators_body: Payload, categories_body: Payload) -> list[ViewPayload]:
        coins = views.records(coins_body)
        return [
            ViewPayload(
                cache_key="trends_trending_coins",
                endpoint_url=COINS_LIST,
                data=views.trending_coins(coins),
            ),
            ViewPayload(
                cache_key="trends_top_creators",
                endpoint_url=CATEGORY_CREATORS,
                data=views.top_creators(views.records(creators_body)),
            ),
            ViewPayload(
                cache_key="trends_hot_sectors",
                endpoint_url=CATEGORIES_LIST,
                data=views.hot_sectors(views.data_list(categories_body)),
            ),
            ViewPayload(
                cache_key="trends_galaxy_leaders",
                endpoint_url=COINS_LIST,
                data=views.galaxy_leaders(coins),
            ),
        ]


# =============================================================================
# MARKET
# =============================================================================

class MarketRefresher(GroupRefresher):
    """Top gainers, category snapshots, AltRank and sentiment leaders."""

    NAME = "Market"
    VIEW_COUNT = 5

    async def fetch(self) -> list[Payload]:
        return await gather_fail_fast(
            self.coins.get_coins_list(),
            self.client.fetch_category(CATEGORY_CRYPTO),
            self.client.fetch_category(CATEGORY_DEFI),
        )

    def derive(self, coins_body: Payload, crypto_body: Payload, defi_body: Payload) -> list[ViewPayload]:
        coins = views.records(coins_body)
        return [
            ViewPayload(
                cache_key="market_top_gainers",
                endpoint_url=COINS_LIST,
                data=views.top_gainers(coins),
            ),
            ViewPayload(
                cache_key="market_crypto_category",
                endpoint_url=CATEGORY_CRYPTO,
                data=views.passthrough(crypto_body),
            ),
            ViewPayload(
                cache_key="market_defi_category",
                endpoint_url=CATEGORY_DEFI,
                data=views.passthrough(defi_body),
            ),
            ViewPayload(
                cache_key="market_altrank_champions",
                endpoint_url=COINS_LIST,
                data=views.altrank_champions(coins),
            ),
            ViewPayload(
                cache_key="market_sentiment_leaders",
                endpoint_url=COINS_LIST,
                data=views.sentiment_leaders(coins),
            ),
        ]


# =============================================================================
# LATEST
# =============================================================================

class LatestRefresher(GroupRefresher):
    """Topic snapshots for the majors plus recent news and posts."""

    NAME = "Latest"
    VIEW_COUNT = 5
    TOPICS = ("bitcoin", "ethereum", "solana")

    async def fetch(self) -> list[Payload]:
        return await gather_fail_fast(
            *(self.client.fetch_topic(topic) for topic in self.TOPICS),
            self.client.fetch_category(CATEGORY_NEWS),
            self.client.fetch_category(CATEGORY_POSTS),
        )

    def derive(self, *payloads: Payload) -> list[ViewPayload]:
        *topic_bodies, news_body, posts_body = payloads
        topic_views = [
            ViewPayload(
                cache_key=f"latest_{topic}",
                endpoint_url=topic_path(topic),
                data=views.single_record(body),
            )
            for topic, body in zip(self.TOPICS, topic_bodies)
        ]
        return topic_views + [
            ViewPayload(
                cache_key="latest_crypto_news",
                endpoint_url=CATEGORY_NEWS,
                data=views.crypto_news(views.data_list(news_body)),
            ),
            ViewPayload(
                cache_key="latest_crypto_posts",
                endpoint_url=CATEGORY_POSTS,
                data=views.crypto_posts(views.data_list(posts_body)),
            ),
        ]


GROUP_REFRESHERS: tuple[type[GroupRefresher], ...] = (
    TrendsRefresher,
    MarketRefresher,
    LatestRefresher,
)

TOTAL_LOGICAL_ENDPOINTS = sum(group.VIEW_COUNT for group in GROUP_REFRESHERS)
