"""
Tests for the periodic refresh scheduler.
"""
from lunarcrush_cache.scheduler import REFRESH_JOB_ID, RefreshScheduler


async def test_registers_single_interval_job(settings, orchestrator):
    scheduler = RefreshScheduler(settings, orchestrator)
    scheduler.start()
    try:
        jobs = scheduler.get_job_status()
        assert [job["id"] for job in jobs] == [REFRESH_JOB_ID]
        assert jobs[0]["next_run_time"] is not None

        job = scheduler.scheduler.get_job(REFRESH_JOB_ID)
        assert job.trigger.interval.total_seconds() == settings.refresh_interval_minutes * 60
        assert job.max_instances == 1
        assert scheduler.is_running
    finally:
        scheduler.stop()

    assert not scheduler.is_running


async def test_job_runs_one_refresh(settings, orchestrator, recorder):
    scheduler = RefreshScheduler(settings, orchestrator)

    await scheduler._run_refresh_job()

    assert [row.status for row in recorder.history] == ["updating", "complete"]
