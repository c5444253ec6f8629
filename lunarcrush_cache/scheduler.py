"""
Scheduler: APScheduler-based periodic cache refresh.
"""
import asyncio
import signal
from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from lunarcrush_cache.config import Settings
from lunarcrush_cache.database import Database
from lunarcrush_cache.refresh.orchestrator import RefreshOrchestrator
from lunarcrush_cache.service import build_orchestrator

logger = structlog.get_logger()

REFRESH_JOB_ID = "refresh_crypto_cache"


class RefreshScheduler:
    """
    Runs the cache refresh every ``refresh_interval_minutes``.

    Scheduled runs never overlap (``max_instances=1``); a run that is still
    going when the next one is due makes the scheduler skip it.
    """

    def __init__(self, settings: Settings, orchestrator: RefreshOrchestrator):
        self.settings = settings
        self.orchestrator = orchestrator
        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            },
        )
        self._running = False

    def _setup_jobs(self):
        self.scheduler.add_job(
            self._run_refresh_job,
            trigger=IntervalTrigger(
                minutes=self.settings.refresh_interval_minutes,
                start_date=datetime.now(timezone.utc).replace(second=0, microsecond=0),
            ),
            id=REFRESH_JOB_ID,
            name="Refresh LunarCrush cache",
            replace_existing=True,
        )
        logger.info(
            "Scheduled cache refresh job",
            interval=f"{self.settings.refresh_interval_minutes}m",
        )

    async def _run_refresh_job(self):
        """Execute one scheduled refresh."""
        logger.info("Starting scheduled cache refresh")
        result = await self.orchestrator.execute()
        logger.info(
            "Completed scheduled cache refresh",
            run_id=result.run_id,
            status=result.status.value,
            successful=result.successful_endpoints,
            failed=result.failed_endpoints,
            duration=round(result.duration_seconds, 3),
        )

    def get_job_status(self) -> list[dict]:
        """Get status of all scheduled jobs."""
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self.scheduler.get_jobs()
        ]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self):
        """Start the scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._setup_jobs()
        self.scheduler.start()
        self._running = True
        logger.info("Scheduler started", jobs=len(self.scheduler.get_jobs()))

    def stop(self):
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running


async def run_scheduler(settings: Settings, stop_event: Optional[asyncio.Event] = None):
    """Run the scheduler as main process until SIGINT/SIGTERM."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    async with Database(settings) as db:
        if not await db.health_check():
            logger.error("Database health check failed, exiting")
            return

        orchestrator = build_orchestrator(settings, db)
        scheduler = RefreshScheduler(settings, orchestrator)

        logger.info(
            "Starting cache refresh scheduler",
            interval_minutes=settings.refresh_interval_minutes,
            run_on_startup=settings.run_refresh_on_startup,
        )
        scheduler.start()

        try:
            if settings.run_refresh_on_startup:
                logger.info("Running initial cache refresh on startup")
                await orchestrator.execute()

            await stop_event.wait()
        finally:
            scheduler.stop()
