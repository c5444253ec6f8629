"""
LunarCrush public API client.
Only the endpoints the cache refresh reads are covered.
"""
from typing import Any, Optional

from lunarcrush_cache.clients.base import BaseAPIClient

# =============================================================================
# ENDPOINTS
# =============================================================================

COINS_LIST = "/coins/list/v1"
CATEGORY_CREATORS = "/category/cryptocurrencies/creators/v1"
CATEGORIES_LIST = "/categories/list/v1"
CATEGORY_CRYPTO = "/category/cryptocurrencies/v1"
CATEGORY_DEFI = "/category/defi/v1"
CATEGORY_NEWS = "/category/cryptocurrencies/news/v1"
CATEGORY_POSTS = "/category/cryptocurrencies/posts/v1"


def topic_path(topic: str) -> str:
    """Path of a topic summary, e.g. ``/topic/bitcoin/v1``."""
    return f"/topic/{topic}/v1"


class LunarCrushClient(BaseAPIClient):
    """
    Client for the LunarCrush v4 public API.

    Auth: ``key`` query parameter on every request.
    Responses carry their payload under a top-level ``data`` field.
    """

    SOURCE = "lunarcrush"

    @property
    def base_url(self) -> str:
        return self._settings.lunarcrush_api_base_url

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": "LunarCrushCache/1.0",
        }

    def _get_auth_params(self) -> dict[str, str]:
        return {"key": self._settings.lunarcrush_api_key}

    async def request(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Fetch one endpoint and return the parsed JSON body.

        Raises:
            UpstreamError: non-2xx status (other than 429) or transport failure
            RateLimitExhaustedError: still 429 after the last attempt
            UpstreamTimeoutError: no response within the timeout
        """
        body = await self.get(path, params=params)
        return body if isinstance(body, dict) else {"data": body}

    # =========================================================================
    # ENDPOINT HELPERS
    # =========================================================================

    async def fetch_coins_list(self) -> dict[str, Any]:
        return await self.request(COINS_LIST)

    async def fetch_creators(self) -> dict[str, Any]:
        return await self.request(CATEGORY_CREATORS)

    async def fetch_categories(self) -> dict[str, Any]:
        return await self.request(CATEGORIES_LIST)

    async def fetch_category(self, path: str) -> dict[str, Any]:
        return await self.request(path)

    async def fetch_topic(self, topic: str) -> dict[str, Any]:
        return await self.request(topic_path(topic))
