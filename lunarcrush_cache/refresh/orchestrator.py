"""
Refresh orchestrator: one full cache refresh run.

Run lifecycle: updating -> complete | partial | error.
Group failures are isolated and summarized; only errors outside the group
handlers (e.g. client construction) end the run as ``error``.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog

from lunarcrush_cache.clients.lunarcrush import LunarCrushClient
from lunarcrush_cache.config import Settings
from lunarcrush_cache.models import RefreshState
from lunarcrush_cache.refresh.coins import CoinsSnapshot
from lunarcrush_cache.refresh.groups import GROUP_REFRESHERS, GroupRefresher
from lunarcrush_cache.store.cache import BaseCacheStore
from lunarcrush_cache.store.status import BaseStatusRecorder, StatusWriteResult
from lunarcrush_cache.utils.logging import LogContext

logger = structlog.get_logger()

ClientFactory = Callable[[Settings], LunarCrushClient]

CANCELLED_MESSAGE = "Refresh cancelled"


@dataclass
class GroupOutcome:
    """Result of refreshing one group."""
    name: str
    view_count: int
    success: bool
    error: Optional[str] = None

    @property
    def summary(self) -> Optional[str]:
        return f"{self.name}: {self.error}" if self.error else None


@dataclass
class RunResult:
    """Result of a refresh run."""
    run_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: RefreshState = RefreshState.UPDATING
    successful_endpoints: int = 0
    failed_endpoints: int = 0
    errors: list[str] = field(default_factory=list)
    groups: list[GroupOutcome] = field(default_factory=list)
    fatal_error: Optional[str] = None
    status_recorded: bool = True
    client_metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == RefreshState.COMPLETE

    @property
    def error_message(self) -> Optional[str]:
        return "; ".join(self.errors) if self.errors else None

    @property
    def duration_seconds(self) -> float:
        if not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_response(self) -> dict[str, Any]:
        """Body returned by the HTTP trigger."""
        if self.status == RefreshState.ERROR:
            return {"success": False, "error": self.fatal_error}
        return {
            "success": True,
            "status": self.status.value,
            "successfulEndpoints": self.successful_endpoints,
            "failedEndpoints": self.failed_endpoints,
            "errors": list(self.errors),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "status": self.status.value,
            "successful_endpoints": self.successful_endpoints,
            "failed_endpoints": self.failed_endpoints,
            "error_message": self.error_message,
            "groups": [
                {"name": g.name, "views": g.view_count, "success": g.success, "error": g.error}
                for g in self.groups
            ],
            "status_recorded": self.status_recorded,
            "duration_seconds": self.duration_seconds,
        }


class RefreshOrchestrator:
    """
    Sequences the group refreshers for one run.

    A new client and coin-list memo are built inside every ``execute()``;
    nothing upstream-related is shared between runs. Overlapping runs are not
    coordinated: the last writer wins on both cache and status rows.
    """

    def __init__(
        self,
        settings: Settings,
        store: BaseCacheStore,
        recorder: BaseStatusRecorder,
        client_factory: ClientFactory = LunarCrushClient,
        groups: tuple[type[GroupRefresher], ...] = GROUP_REFRESHERS,
        parallel_groups: Optional[bool] = None,
    ):
        self.settings = settings
        self.store = store
        self.recorder = recorder
        self._client_factory = client_factory
        self.groups = groups
        self.parallel_groups = (
            settings.parallel_groups if parallel_groups is None else parallel_groups
        )

    @property
    def total_endpoints(self) -> int:
        return sum(group.VIEW_COUNT for group in self.groups)

    async def _record(
        self,
        result: RunResult,
        status: RefreshState,
        successful: int = 0,
        failed: int = 0,
        message: Optional[str] = None,
    ) -> StatusWriteResult:
        outcome = await self.recorder.record(status, successful, failed, message)
        if not outcome.ok:
            result.status_recorded = False
            logger.warning("Status row not updated", status=status.value, error=str(outcome.error))
        return outcome

    async def _run_group(self, refresher: GroupRefresher) -> GroupOutcome:
        try:
            count = await refresher.refresh()
        except Exception as e:
            logger.error("Group caching failed", group=refresher.NAME, error=str(e))
            return GroupOutcome(
                name=refresher.NAME,
                view_count=refresher.VIEW_COUNT,
                success=False,
                error=str(e) or type(e).__name__,
            )
        return GroupOutcome(name=refresher.NAME, view_count=count, success=True)

    async def _run_groups(self, client: LunarCrushClient) -> list[GroupOutcome]:
        coins = CoinsSnapshot(client)
        refreshers = [group(client, coins, self.store) for group in self.groups]

        if self.parallel_groups:
            return list(await asyncio.gather(*(self._run_group(r) for r in refreshers)))
        return [await self._run_group(r) for r in refreshers]

    async def execute(self) -> RunResult:
        """
        Run every group once and finalize the status row.

        Returns:
            RunResult; ``status`` is ``error`` when the run failed outside
            the group handlers.

        Raises:
            asyncio.CancelledError: After recording ``error`` status.
        """
        result = RunResult(
            run_id=uuid.uuid4().hex[:12],
            started_at=datetime.now(timezone.utc),
        )

        with LogContext(run_id=result.run_id):
            logger.info(
                "Starting crypto data cache update",
                groups=[g.NAME for g in self.groups],
                parallel=self.parallel_groups,
            )
            await self._record(result, RefreshState.UPDATING)

            try:
                async with self._client_factory(self.settings) as client:
                    result.groups = await self._run_groups(client)
                    result.client_metrics = client.get_metrics()

                for outcome in result.groups:
                    if outcome.success:
                        result.successful_endpoints += outcome.view_count
                    else:
                        result.failed_endpoints += outcome.view_count
                        result.errors.append(outcome.summary)

                result.status = (
                    RefreshState.COMPLETE if result.failed_endpoints == 0 else RefreshState.PARTIAL
                )
                await self._record(
                    result,
                    result.status,
                    result.successful_endpoints,
                    result.failed_endpoints,
                    result.error_message,
                )
            except asyncio.CancelledError:
                logger.warning("Cache update cancelled")
                self._mark_fatal(result, CANCELLED_MESSAGE)
                await self._record(result, RefreshState.ERROR, 0, self.total_endpoints, CANCELLED_MESSAGE)
                raise
            except Exception as e:
                logger.exception("Critical cache update error", error=str(e))
                self._mark_fatal(result, str(e) or type(e).__name__)
                await self._record(
                    result, RefreshState.ERROR, 0, self.total_endpoints, result.fatal_error
                )
            finally:
                result.finished_at = datetime.now(timezone.utc)

            logger.info(
                "Cache update finished",
                status=result.status.value,
                successful=result.successful_endpoints,
                failed=result.failed_endpoints,
                duration_s=round(result.duration_seconds, 3),
            )

        return result

    def _mark_fatal(self, result: RunResult, message: str) -> None:
        result.status = RefreshState.ERROR
        result.fatal_error = message
        result.successful_endpoints = 0
        result.failed_endpoints = self.total_endpoints
        result.errors = [message]
