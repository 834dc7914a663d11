import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


def parse_schedule(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock time (UTC)."""
    hours, _, minutes = value.partition(":")
    return time(hour=int(hours), minute=int(minutes or 0), tzinfo=timezone.utc)


def seconds_until(at: time, now: datetime | None = None) -> float:
    """Seconds from ``now`` until the next occurrence of ``at``."""
    now = now or datetime.now(timezone.utc)
    target = datetime.combine(now.date(), at.replace(tzinfo=None), tzinfo=timezone.utc)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


@dataclass
class DailyJob:
    name: str
    at: time
    func: Callable[[], Awaitable[object]]


class JobScheduler:
    """Runs each registered job once a day at its wall-clock time."""

    def __init__(self):
        self._jobs: list[DailyJob] = []
        self._tasks: list[asyncio.Task] = []

    @property
    def jobs(self) -> list[DailyJob]:
        return list(self._jobs)

    def register(self, name: str, at: time | str, func: Callable[[], Awaitable[object]]) -> DailyJob:
        if isinstance(at, str):
            at = parse_schedule(at)
        job = DailyJob(name=name, at=at, func=func)
        self._jobs.append(job)
        return job

    async def _run_forever(self, job: DailyJob):
        while True:
            await asyncio.sleep(seconds_until(job.at))
            await self.run_job(job)

    async def run_job(self, job: DailyJob):
        try:
            await job.func()
            logger.info(f"Scheduled job {job.name} completed")
        except Exception as e:
            logger.error(f"Error in scheduled job {job.name}: {e}", exc_info=True)

    def start(self):
        for job in self._jobs:
            self._tasks.append(asyncio.create_task(self._run_forever(job), name=f"job:{job.name}"))
        logger.info(f"Scheduler started with {len(self._jobs)} job(s)")

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
