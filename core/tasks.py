import logging

from core.config import Settings
from core.scheduler import JobScheduler
from services.analytics import AnalyticsService

logger = logging.getLogger(__name__)


async def prune_old_analytics(analytics: AnalyticsService):
    """
    Delete analytics rows past the retention horizon
    """
    result = await analytics.prune()
    return {
        "status": "success",
        "message": f"Pruned {result.events_deleted} events and {result.sessions_deleted} sessions",
    }


async def warm_summary_cache(analytics: AnalyticsService):
    """Precompute the commonly requested summary ranges"""
    warmed = await analytics.warm_summaries()
    return {"status": "success", "message": f"Warmed ranges {warmed}"}


def register_jobs(scheduler: JobScheduler, analytics: AnalyticsService, settings: Settings) -> JobScheduler:
    scheduler.register("prune-analytics", settings.PRUNE_SCHEDULE, lambda: prune_old_analytics(analytics))
    scheduler.register("warm-summaries", settings.WARM_SCHEDULE, lambda: warm_summary_cache(analytics))
    return scheduler
