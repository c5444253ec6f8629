"""
Status recorder for the single ``crypto_cache_status`` row.

Status bookkeeping is best-effort: ``record`` never raises, it returns a
``StatusWriteResult`` the caller can log.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import structlog

from lunarcrush_cache.database import Database
from lunarcrush_cache.exceptions import StatusRecordError
from lunarcrush_cache.models import STATUS_ROW_ID, RefreshState, RefreshStatus, utcnow

logger = structlog.get_logger()

# last_full_update is only supplied on complete runs; keep the stored value otherwise.
UPSERT_STATUS = """
    INSERT INTO crypto_cache_status
        (id, status, successful_endpoints, failed_endpoints,
         error_message, last_full_update, updated_at)
    VALUES
        ($1, $2, $3, $4, $5, $6, $7)
    ON CONFLICT (id) DO UPDATE SET
        status = EXCLUDED.status,
        successful_endpoints = EXCLUDED.successful_endpoints,
        failed_endpoints = EXCLUDED.failed_endpoints,
        error_message = EXCLUDED.error_message,
        last_full_update = COALESCE(EXCLUDED.last_full_update, crypto_cache_status.last_full_update),
        updated_at = EXCLUDED.updated_at
"""

SELECT_STATUS = """
    SELECT id, status, successful_endpoints, failed_endpoints,
           error_message, last_full_update, updated_at
    FROM crypto_cache_status
    WHERE id = $1
"""


@dataclass
class StatusWriteResult:
    """Outcome of a status write."""
    status: RefreshState
    ok: bool
    error: Optional[StatusRecordError] = None


class BaseStatusRecorder(ABC):
    """Builds status rows and writes them without escalating failures."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    async def record(
        self,
        status: RefreshState,
        successful: int = 0,
        failed: int = 0,
        message: Optional[str] = None,
    ) -> StatusWriteResult:
        now = self._clock()
        row = RefreshStatus(
            status=status,
            successful_endpoints=successful,
            failed_endpoints=failed,
            error_message=message,
            last_full_update=now if status == RefreshState.COMPLETE else None,
            updated_at=now,
        )

        try:
            await self._write(row)
        except Exception as e:
            logger.error(
                "Failed to update cache status",
                status=RefreshState(status).value,
                error=str(e),
            )
            return StatusWriteResult(
                status=status,
                ok=False,
                error=StatusRecordError(f"Failed to update cache status: {e}"),
            )

        logger.debug("Recorded cache status", status=RefreshState(status).value)
        return StatusWriteResult(status=status, ok=True)

    @abstractmethod
    async def _write(self, row: RefreshStatus) -> None:
        """Persist the status row."""

    @abstractmethod
    async def fetch(self) -> Optional[RefreshStatus]:
        """Read the current status row, if any."""


class PostgresStatusRecorder(BaseStatusRecorder):
    """Upserts the fixed-id row in ``crypto_cache_status``."""

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow):
        super().__init__(clock)
        self.db = db

    async def _write(self, row: RefreshStatus) -> None:
        await self.db.execute(
            UPSERT_STATUS,
            row.id,
            RefreshState(row.status).value,
            row.successful_endpoints,
            row.failed_endpoints,
            row.error_message,
            row.last_full_update,
            row.updated_at,
        )

    async def fetch(self) -> Optional[RefreshStatus]:
        record = await self.db.fetchrow(SELECT_STATUS, STATUS_ROW_ID)
        if record is None:
            return None
        return RefreshStatus(**dict(record))


class InMemoryStatusRecorder(BaseStatusRecorder):
    """Keeps the status row (and every write) in memory."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        super().__init__(clock)
        self.current: Optional[RefreshStatus] = None
        self.history: list[RefreshStatus] = []

    async def _write(self, row: RefreshStatus) -> None:
        if row.last_full_update is None and self.current is not None:
            row = row.model_copy(update={"last_full_update": self.current.last_full_update})
        self.current = row
        self.history.append(row)

    async def fetch(self) -> Optional[RefreshStatus]:
        return self.current
