from fastapi import APIRouter, Depends, Query, Request
import logging

from core.config import get_settings
from dependencies import AnalyticsDep, client_ip, rate_limit
from models import AnalyticsSummary, IngestAnalyticsEvents, IngestResult

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)


@router.post(
    "/events",
    response_model=IngestResult,
    dependencies=[Depends(rate_limit("analytics", settings.ANALYTICS_EVENTS_PER_MINUTE))],
)
async def ingest_events(payload: IngestAnalyticsEvents, request: Request, analytics: AnalyticsDep):
    """Queue a batch of client analytics events"""
    result = await analytics.record_events(payload, client_ip(request))
    logger.info(f"Ingested {result.count} analytics events")
    return result


@router.get("/summary", response_model=AnalyticsSummary)
async def get_summary(
    analytics: AnalyticsDep,
    range_days: str | None = None,
    range_days_alias: str | None = Query(None, alias="rangeDays"),
):
    """Rollup over the trailing window; invalid ranges fall back to the default"""
    return await analytics.get_summary(range_days if range_days is not None else range_days_alias)
