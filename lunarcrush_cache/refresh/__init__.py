"""
Refresh package initialization.
Exports group refreshers and the run orchestrator.
"""
from lunarcrush_cache.refresh.coins import CoinsSnapshot
from lunarcrush_cache.refresh.groups import (
    GROUP_REFRESHERS,
    TOTAL_LOGICAL_ENDPOINTS,
    GroupRefresher,
    LatestRefresher,
    MarketRefresher,
    TrendsRefresher,
)
from lunarcrush_cache.refresh.orchestrator import (
    GroupOutcome,
    RefreshOrchestrator,
    RunResult,
)

__all__ = [
    "CoinsSnapshot",

    # Groups
    "GroupRefresher",
    "TrendsRefresher",
    "MarketRefresher",
    "LatestRefresher",
    "GROUP_REFRESHERS",
    "TOTAL_LOGICAL_ENDPOINTS",

    # Orchestrator
    "RefreshOrchestrator",
    "RunResult",
    "GroupOutcome",
]
