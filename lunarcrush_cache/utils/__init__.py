"""
Utility functions and helpers.
"""
from lunarcrush_cache.utils.logging import LogContext, setup_logging

__all__ = [
    "setup_logging",
    "LogContext",
]
