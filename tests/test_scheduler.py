import asyncio
from datetime import datetime, time, timezone

import pytest

from core.scheduler import JobScheduler, parse_schedule, seconds_until
from core.tasks import prune_old_analytics, register_jobs, warm_summary_cache
from services.analytics import AnalyticsService


def test_parse_schedule():
    assert parse_schedule("03:00") == time(3, 0, tzinfo=timezone.utc)
    assert parse_schedule("4") == time(4, 0, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        parse_schedule("25:00")


def test_seconds_until_rolls_over_to_next_day():
    now = datetime(2024, 5, 1, 4, 0, tzinfo=timezone.utc)
    assert seconds_until(time(4, 30), now) == 30 * 60
    assert seconds_until(time(3, 0), now) == 23 * 3600
    assert seconds_until(time(4, 0), now) == 24 * 3600


def test_run_job_logs_failures_instead_of_raising(caplog):
    scheduler = JobScheduler()

    async def broken():
        raise RuntimeError("boom")

    job = scheduler.register("broken", "01:00", broken)
    asyncio.run(scheduler.run_job(job))

    assert "Error in scheduled job broken" in caplog.text


def test_register_jobs_uses_configured_times(settings, fake_analytics_repository):
    analytics = AnalyticsService(fake_analytics_repository)
    scheduler = register_jobs(JobScheduler(), analytics, settings)

    names = {job.name: job.at for job in scheduler.jobs}
    assert names == {
        "prune-analytics": parse_schedule(settings.PRUNE_SCHEDULE),
        "warm-summaries": parse_schedule(settings.WARM_SCHEDULE),
    }


def test_start_and_stop_cancel_job_tasks(fake_analytics_repository):
    scheduler = JobScheduler()
    calls = []

    async def job():
        calls.append(1)

    scheduler.register("noop", "00:00", job)

    async def scenario():
        scheduler.start()
        await asyncio.sleep(0)
        await scheduler.stop()

    asyncio.run(scenario())
    assert calls == []


def test_maintenance_tasks_report_results(fake_analytics_repository):
    analytics = AnalyticsService(fake_analytics_repository)

    async def scenario():
        return await prune_old_analytics(analytics), await warm_summary_cache(analytics)

    pruned, warmed = asyncio.run(scenario())
    assert pruned["status"] == "success"
    assert pruned["message"] == "Pruned 0 events and 0 sessions"
    assert warmed["message"] == "Warmed ranges [1, 7, 30]"
