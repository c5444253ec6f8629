"""
Pure view derivations over LunarCrush payloads.

Every function takes raw API bodies (or their ``data`` lists) and returns a
new list; inputs are never mutated. Missing or non-numeric metrics never pass
a numeric filter and sort as 0. Sorting is stable, so ties keep API order.
"""
import math
from typing import Any, Iterable, Optional

TOP_N = 10
HOT_SECTORS_LIMIT = 8
NEWS_LIMIT = 15
POSTS_LIMIT = 10
GALAXY_SCORE_THRESHOLD = 60
ALT_RANK_SENTINEL = 999999

# Exchanges and media outlets, matched as lower-cased substrings of creator_name.
CREATOR_BLACKLIST = (
    "mexc", "etoro", "power slap", "powerslap", "krsna", "coinex", "kucoin", "luno",
    "binance", "coinbase", "kraken", "espn", "fox news", "cnn", "nbc",
    "abc", "cbs", "okx", "bybit", "gate.io", "huobi", "bitgetglobal", "cryptocom",
    "bitget", "crypto.com", "bitcoinmagazine", "fantompro1", "cointelegraph",
)

POST_FIELDS = (
    "id",
    "post_type",
    "post_title",
    "post_link",
    "post_image",
    "post_created",
    "post_sentiment",
    "creator_id",
    "creator_name",
    "creator_display_name",
    "creator_followers",
    "creator_avatar",
    "interactions_24h",
    "interactions_total",
)

Record = dict[str, Any]


# =============================================================================
# HELPERS
# =============================================================================

def _data(payload: Optional[dict[str, Any]]) -> Any:
    return payload.get("data") if isinstance(payload, dict) else None


def data_list(payload: Optional[dict[str, Any]]) -> list[Any]:
    """The ``data`` list of an API body exactly as sent, or an empty list."""
    data = _data(payload)
    return list(data) if isinstance(data, list) else []


def records(payload: Optional[dict[str, Any]]) -> list[Record]:
    """The dict items of the ``data`` list, for views that filter and sort."""
    return [item for item in data_list(payload) if isinstance(item, dict)]


def single_record(payload: Optional[dict[str, Any]]) -> Optional[Any]:
    """The ``data`` value of an API body, or None when it is missing or falsy.

    Empty objects and lists are kept.
    """
    data = _data(payload)
    return data if _truthy(data) else None


def passthrough(payload: Optional[dict[str, Any]]) -> Any:
    """The ``data`` value unchanged, or an empty list when missing or falsy."""
    data = _data(payload)
    return data if _truthy(data) else []


def number(value: Any) -> Optional[float]:
    """Numeric value of a metric, or None when missing/non-numeric."""
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value)
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(result) else result


def _truthy(value: Any) -> bool:
    # Only None, False, zero, NaN and "" count as empty; {} and [] are values.
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _top_by(items: Iterable[Record], field: str, limit: int = TOP_N) -> list[Record]:
    """Sort descending by a metric (missing as 0) and keep the first ``limit``."""
    ranked = sorted(items, key=lambda item: number(item.get(field)) or 0, reverse=True)
    return ranked[:limit]


def _positive(item: Record, field: str) -> bool:
    value = number(item.get(field))
    return value is not None and value > 0


# =============================================================================
# TRENDS VIEWS
# =============================================================================

def trending_coins(coins: list[Record]) -> list[Record]:
    """Coins with social interactions in the last 24h, most active first."""
    return _top_by((c for c in coins if _positive(c, "interactions_24h")), "interactions_24h")


def is_blacklisted_creator(creator: Record) -> bool:
    name = creator.get("creator_name")
    if not isinstance(name, str):
        return False
    lowered = name.lower()
    return any(blocked in lowered for blocked in CREATOR_BLACKLIST)


def top_creators(creators: list[Record]) -> list[Record]:
    return [c for c in creators if not is_blacklisted_creator(c)][:TOP_N]


def hot_sectors(categories: list[Any]) -> list[Any]:
    return list(categories[:HOT_SECTORS_LIMIT])


def galaxy_leaders(coins: list[Record]) -> list[Record]:
    def qualifies(coin: Record) -> bool:
        score = number(coin.get("galaxy_score"))
        return score is not None and score >= GALAXY_SCORE_THRESHOLD

    return _top_by(filter(qualifies, coins), "galaxy_score")


# =============================================================================
# MARKET VIEWS
# =============================================================================

def top_gainers(coins: list[Record]) -> list[Record]:
    return _top_by((c for c in coins if _positive(c, "percent_change_24h")), "percent_change_24h")


def altrank_champions(coins: list[Record]) -> list[Record]:
    """Coins with an AltRank, best (lowest) rank first."""
    ranked = sorted(
        (c for c in coins if _truthy(c.get("alt_rank"))),
        key=lambda c: number(c.get("alt_rank")) or ALT_RANK_SENTINEL,
    )
    return ranked[:TOP_N]


def sentiment_leaders(coins: list[Record]) -> list[Record]:
    return _top_by((c for c in coins if _truthy(c.get("sentiment"))), "sentiment")


# =============================================================================
# LATEST VIEWS
# =============================================================================

def project_post(post: Any) -> Record:
    """Keep the fixed post/creator field subset; missing fields become None."""
    source = post if isinstance(post, dict) else {}
    return {field: source.get(field) for field in POST_FIELDS}


def crypto_news(news: list[Any]) -> list[Record]:
    return [project_post(article) for article in news[:NEWS_LIMIT]]


def crypto_posts(posts: list[Any]) -> list[Record]:
    return [project_post(post) for post in posts[:POSTS_LIMIT]]
