import asyncio
from collections import Counter, defaultdict
from datetime import datetime, timedelta
import logging
import math

from core.clock import as_utc, utcnow
from models.summary import (
    AnalyticsSummary, DailyCount, LocationCount, OperationalMetrics,
    PlatformActivity, SessionStats, Totals, TypeCount,
)
from repositories.analytics import AnalyticsRepository, RequestSample, SessionWindow
from services.geo import LocationResolver

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 7
MAX_RANGE_DAYS = 3650


def normalize_range(range_days, default: int = DEFAULT_RANGE_DAYS, maximum: int = MAX_RANGE_DAYS) -> int:
    """Coerce a window size to a whole number of days in ``[1, maximum]``."""
    try:
        value = float(range_days)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value) or value <= 0:
        return default
    return min(max(int(value), 1), maximum)


def session_stats(sessions: list[SessionWindow], now: datetime) -> SessionStats:
    durations = []
    for session in sessions:
        end = as_utc(session.ended_at) if session.ended_at else now
        duration = (end - as_utc(session.started_at)).total_seconds() * 1000
        if duration > 0:
            durations.append(duration)
    total = round(sum(durations))
    average = round(total / len(durations)) if durations else 0
    return SessionStats(count=len(sessions), total_duration_ms=total, average_duration_ms=average)


def daily_active_users(activity: list[tuple[datetime, str]]) -> list[DailyCount]:
    users_by_day: dict[str, set[str]] = defaultdict(set)
    for created_at, user_id in activity:
        if user_id:
            users_by_day[as_utc(created_at).date().isoformat()].add(user_id)
    return [DailyCount(date=day, count=len(users)) for day, users in sorted(users_by_day.items())]


def operational_metrics(samples: list[RequestSample]) -> OperationalMetrics:
    if not samples:
        return OperationalMetrics(total_requests=0, server_errors=0, average_duration_ms=0, p95_duration_ms=0)
    durations = sorted(sample.duration_ms for sample in samples)
    p95_index = max(math.ceil(0.95 * len(durations)) - 1, 0)
    return OperationalMetrics(
        total_requests=len(samples),
        server_errors=sum(1 for sample in samples if sample.status_code >= 500),
        average_duration_ms=round(sum(durations) / len(durations)),
        p95_duration_ms=durations[p95_index],
    )


class SummaryAggregator:
    """Computes a rollup over the trailing ``range_days`` window."""

    def __init__(
        self,
        repository: AnalyticsRepository,
        locations: LocationResolver,
        default_range_days: int = DEFAULT_RANGE_DAYS,
        top_locations: int = 20,
        max_range_days: int = MAX_RANGE_DAYS,
    ):
        self.repository = repository
        self.locations = locations
        self.default_range_days = default_range_days
        self.top_locations = top_locations
        self.max_range_days = max_range_days

    def normalize_range(self, range_days) -> int:
        return normalize_range(range_days, self.default_range_days, self.max_range_days)

    def location_counts(self, sessions: list[SessionWindow]) -> list[LocationCount]:
        visits = Counter(
            self.locations.resolve(session.ip_address, session.user_agent) for session in sessions
        )
        ranked = sorted(visits.items(), key=lambda item: (-item[1], item[0]))
        return [LocationCount(location=label, count=count) for label, count in ranked[:self.top_locations]]

    async def compute(self, range_days) -> AnalyticsSummary:
        range_days = self.normalize_range(range_days)
        now = utcnow()
        since = now - timedelta(days=range_days)

        # Independent read-only queries, each on its own session
        (
            total_events,
            unique_users,
            event_types,
            sessions,
            activity,
            post_interactions,
            comment_likes,
            request_samples,
        ) = await asyncio.gather(
            self.repository.count_events(since),
            self.repository.count_distinct_users(since),
            self.repository.count_events_by_type(since),
            self.repository.list_sessions(since),
            self.repository.list_user_activity(since),
            self.repository.count_post_interactions_by_type(since),
            self.repository.count_comment_likes(since),
            self.repository.list_request_samples(since),
        )

        summary = AnalyticsSummary(
            range_days=range_days,
            generated_at=now,
            totals=Totals(events=total_events, unique_users=unique_users),
            interaction_counts=[TypeCount(type=kind, count=count) for kind, count in event_types],
            sessions=session_stats(sessions, now),
            daily_active_users=daily_active_users(activity),
            platform_activity=PlatformActivity(
                post_interactions=[TypeCount(type=kind, count=count) for kind, count in post_interactions],
                comment_likes=comment_likes,
            ),
            top_locations=self.location_counts(sessions),
            operational_metrics=operational_metrics(request_samples),
        )
        logger.info(f"Computed analytics summary for {range_days} day(s): {total_events} event(s)")
        return summary
