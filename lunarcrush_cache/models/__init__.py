"""
Pydantic models for cache rows and refresh bookkeeping.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class RefreshState(str, Enum):
    """Lifecycle states of the status row."""
    UPDATING = "updating"
    COMPLETE = "complete"
    PARTIAL = "partial"
    ERROR = "error"


STATUS_ROW_ID = 1
SUCCESS_RESPONSE_STATUS = "success"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# CACHE MODELS
# =============================================================================

class CacheEntry(BaseModel):
    """One named, pre-aggregated view stored in ``crypto_cache``."""

    cache_key: str
    endpoint_url: str
    data: Any = None
    updated_at: datetime
    expires_at: datetime
    response_status: str = SUCCESS_RESPONSE_STATUS

    @classmethod
    def build(
        cls,
        cache_key: str,
        endpoint_url: str,
        data: Any,
        ttl_seconds: int,
        now: Optional[datetime] = None,
    ) -> "CacheEntry":
        """Stamp a view with write time and expiry."""
        now = now or utcnow()
        return cls(
            cache_key=cache_key,
            endpoint_url=endpoint_url,
            data=data,
            updated_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at


class ViewPayload(BaseModel):
    """A derived view that has not been stamped yet."""

    cache_key: str
    endpoint_url: str
    data: Any = None


# =============================================================================
# STATUS MODELS
# =============================================================================

class RefreshStatus(BaseModel):
    """The single ``crypto_cache_status`` row."""

    id: int = STATUS_ROW_ID
    status: RefreshState
    successful_endpoints: int = 0
    failed_endpoints: int = 0
    error_message: Optional[str] = None
    last_full_update: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        use_enum_values = True
