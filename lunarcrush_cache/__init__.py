"""
LunarCrush Cache package.
Refreshes pre-aggregated LunarCrush views into a shared Postgres cache.
"""
from lunarcrush_cache.config import Settings, get_settings, load_settings
from lunarcrush_cache.models import RefreshState

__version__ = "1.0.0"
__all__ = ["get_settings", "load_settings", "Settings", "RefreshState"]
