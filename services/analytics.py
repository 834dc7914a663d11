import json
import logging
from typing import Any, Dict, Iterable, Optional

from core.clock import parse_timestamp, utcnow
from core.config import Settings
from models import AnalyticsEventInput, AnalyticsSummary, IngestAnalyticsEvents, IngestResult
from models.user import new_id
from repositories.analytics import AnalyticsRepository
from services.aggregator import SummaryAggregator
from services.event_buffer import EventBuffer
from services.geo import GeoLookup, LocationResolver
from services.retention import PruneResult, RetentionPruner
from services.sessions import SessionTracker
from services.summary_cache import SummaryCache

logger = logging.getLogger(__name__)

SESSION_END = "session_end"


class AnalyticsService:
    """
    Owns the ingestion buffer, session tracking, summary cache and pruning.

    One instance is built at startup and shared by every request; ``start``
    registers the flush timer and ``shutdown`` drains the buffer.
    """

    def __init__(
        self,
        repository: AnalyticsRepository,
        geo: Optional[GeoLookup] = None,
        batch_size: int = 50,
        flush_interval: float = 5.0,
        cache_ttl_seconds: float = 300,
        default_range_days: int = 7,
        warm_ranges: Iterable[int] = (1, 7, 30),
        retention_days: int = 180,
        top_locations: int = 20,
        max_range_days: int = 3650,
    ):
        warm_ranges = list(warm_ranges)
        self.repository = repository
        self.buffer = EventBuffer(
            repository.insert_events,
            batch_size=batch_size,
            flush_interval=flush_interval,
            on_flushed=self._on_flushed,
        )
        self.sessions = SessionTracker(repository)
        self.locations = LocationResolver(geo)
        self.aggregator = SummaryAggregator(
            repository, self.locations,
            default_range_days=default_range_days,
            top_locations=top_locations,
            max_range_days=max_range_days,
        )
        # Drain, not flush: records queued behind an in-flight flush must be included
        self.cache = SummaryCache(
            self.aggregator, self.buffer.drain,
            ttl_seconds=cache_ttl_seconds,
            keep_last_valid=[default_range_days, *warm_ranges],
        )
        self.pruner = RetentionPruner(
            repository, self.buffer.drain, self.cache.invalidate, retention_days=retention_days
        )
        self.warm_ranges = warm_ranges

    @classmethod
    def from_settings(cls, repository: AnalyticsRepository, settings: Settings,
                      geo: Optional[GeoLookup] = None) -> "AnalyticsService":
        return cls(
            repository,
            geo=geo,
            batch_size=settings.ANALYTICS_BATCH_SIZE,
            flush_interval=settings.ANALYTICS_FLUSH_INTERVAL_SECONDS,
            cache_ttl_seconds=settings.SUMMARY_CACHE_TTL_SECONDS,
            default_range_days=settings.SUMMARY_DEFAULT_RANGE_DAYS,
            warm_ranges=settings.SUMMARY_WARM_RANGES,
            retention_days=settings.ANALYTICS_RETENTION_DAYS,
            top_locations=settings.LOCATION_TOP_N,
            max_range_days=settings.SUMMARY_MAX_RANGE_DAYS,
        )

    # Lifecycle

    def start(self):
        self.buffer.start()
        logger.info("Analytics buffer started")

    async def shutdown(self):
        await self.buffer.shutdown()
        logger.info("Analytics buffer stopped")

    def _on_flushed(self, count: int):
        self.cache.invalidate()

    # Ingestion

    @staticmethod
    def sanitize_metadata(metadata: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not metadata:
            return None
        try:
            return json.loads(json.dumps(metadata, allow_nan=False))
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to serialize analytics metadata: {e}")
            return None

    @staticmethod
    def _coerce_timestamp(value: Optional[str]):
        parsed = parse_timestamp(value)
        if value and parsed is None:
            logger.warning(f"Invalid date received in analytics payload: {value}")
        return parsed

    def _to_record(self, event: AnalyticsEventInput, session_id: Optional[str],
                   user_id: Optional[str]) -> dict:
        return {
            "id": new_id(),
            "session_id": session_id,
            "user_id": event.user_id or user_id,
            "type": event.type,
            "target_type": event.target_type,
            "target_id": event.target_id,
            "duration_ms": event.duration_ms,
            "value": event.value,
            "event_metadata": self.sanitize_metadata(event.metadata),
            "created_at": self._coerce_timestamp(event.timestamp) or utcnow(),
        }

    async def record_events(self, payload: IngestAnalyticsEvents,
                            request_ip: Optional[str] = None) -> IngestResult:
        ended_at = self._coerce_timestamp(payload.ended_at)

        session_id = None
        if payload.session_key:
            session_id = await self.sessions.upsert_session(
                payload.session_key,
                user_id=payload.user_id,
                user_agent=payload.user_agent,
                ip_address=request_ip,
                started_at=self._coerce_timestamp(payload.started_at),
                ended_at=ended_at,
            )

        if not payload.events:
            return IngestResult(count=0, session_id=session_id)

        records = [self._to_record(event, session_id, payload.user_id) for event in payload.events]
        self.buffer.enqueue(records)

        immediate = ended_at is not None or any(record["type"] == SESSION_END for record in records)
        if immediate:
            try:
                await self.buffer.drain()
            except Exception as e:
                logger.error(f"Immediate analytics flush failed, events kept for retry: {e}", exc_info=True)
        elif self.buffer.should_flush():
            await self.buffer.flush_quietly("batch threshold")

        logger.debug(f"Accepted {len(records)} analytics event(s)")
        return IngestResult(count=len(records), session_id=session_id)

    async def record_canonical_event(
        self,
        type: str,
        user_id: Optional[str] = None,
        session_key: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        value: Optional[float] = None,
        duration_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record one server-side event through the buffered path; never raises."""
        try:
            await self.record_events(IngestAnalyticsEvents(
                session_key=session_key,
                user_id=user_id,
                events=[AnalyticsEventInput(
                    type=type,
                    user_id=user_id,
                    target_type=target_type,
                    target_id=target_id,
                    value=value,
                    duration_ms=duration_ms,
                    metadata=metadata,
                )],
            ))
        except Exception as e:
            logger.warning(f"Failed to record canonical analytics event {type}: {e}")

    # Summaries and maintenance

    async def get_summary(self, range_days) -> AnalyticsSummary:
        return await self.cache.get(range_days)

    def invalidate_summary_cache(self):
        self.cache.invalidate()

    async def warm_summaries(self) -> list[int]:
        return await self.cache.warm(self.warm_ranges)

    async def prune(self) -> PruneResult:
        return await self.pruner.prune()
