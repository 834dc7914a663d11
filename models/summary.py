from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class TypeCount(_Frozen):
    type: str
    count: int


class DailyCount(_Frozen):
    date: str
    count: int


class LocationCount(_Frozen):
    location: str
    count: int


class Totals(_Frozen):
    events: int
    unique_users: int


class SessionStats(_Frozen):
    count: int
    total_duration_ms: int
    average_duration_ms: int


class PlatformActivity(_Frozen):
    post_interactions: List[TypeCount]
    comment_likes: int


class OperationalMetrics(_Frozen):
    total_requests: int
    server_errors: int
    average_duration_ms: int
    p95_duration_ms: int


class AnalyticsSummary(_Frozen):
    range_days: int
    generated_at: datetime
    totals: Totals
    interaction_counts: List[TypeCount]
    sessions: SessionStats
    daily_active_users: List[DailyCount]
    platform_activity: PlatformActivity
    top_locations: List[LocationCount]
    operational_metrics: OperationalMetrics
