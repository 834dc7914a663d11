from dataclasses import dataclass
import logging
import time
from typing import Awaitable, Callable, Iterable

from core.metrics import summary_cache_requests
from models.summary import AnalyticsSummary
from services.aggregator import SummaryAggregator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    summary: AnalyticsSummary
    expires_at: float


class SummaryCache:
    """TTL cache of summaries keyed by window size in days."""

    def __init__(
        self,
        aggregator: SummaryAggregator,
        flush: Callable[[], Awaitable[int]],
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
        keep_last_valid: Iterable[int] = (),
    ):
        self.aggregator = aggregator
        self._flush = flush
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[int, CacheEntry] = {}
        # Bumped by invalidate(); a compute that started under an older generation is not stored
        self._generation = 0
        # Survives invalidation, served when the pre-read flush fails. Only the
        # default and warm ranges are kept so arbitrary client ranges cannot pile up.
        self._last_valid_keys = {aggregator.normalize_range(days) for days in keep_last_valid}
        self._last_valid: dict[int, AnalyticsSummary] = {}

    def __contains__(self, range_days: int) -> bool:
        entry = self._entries.get(range_days)
        return entry is not None and entry.expires_at > self._clock()

    async def get(self, range_days) -> AnalyticsSummary:
        key = self.aggregator.normalize_range(range_days)
        entry = self._entries.get(key)
        if entry and entry.expires_at > self._clock():
            summary_cache_requests.labels(outcome="hit").inc()
            return entry.summary
        summary_cache_requests.labels(outcome="miss").inc()

        try:
            await self._flush()
        except Exception as e:
            stale = self._last_valid.get(key)
            if stale is not None:
                logger.warning(f"Flush before summary read failed, serving last summary for {key} day(s): {e}")
                return stale
            logger.warning(f"Flush before summary read failed, computing without pending events: {e}")

        return await self._refresh(key)

    async def _refresh(self, key: int) -> AnalyticsSummary:
        generation = self._generation
        summary = await self.aggregator.compute(key)
        if generation != self._generation:
            logger.debug(f"Cache invalidated while computing {key} day(s), result not stored")
            return summary

        now = self._clock()
        self._entries = {days: entry for days, entry in self._entries.items() if entry.expires_at > now}
        self._entries[key] = CacheEntry(summary=summary, expires_at=now + self.ttl_seconds)
        if key in self._last_valid_keys:
            self._last_valid[key] = summary
        return summary

    def invalidate(self):
        self._generation += 1
        if self._entries:
            logger.debug(f"Invalidating {len(self._entries)} cached summary range(s)")
        self._entries.clear()

    async def warm(self, ranges: Iterable[int]) -> list[int]:
        """Recompute and cache the given ranges regardless of demand."""
        try:
            await self._flush()
        except Exception as e:
            logger.warning(f"Flush before summary warm-up failed: {e}")

        warmed = []
        for range_days in ranges:
            key = self.aggregator.normalize_range(range_days)
            try:
                await self._refresh(key)
                warmed.append(key)
            except Exception as e:
                logger.error(f"Failed to warm analytics summary for {key} day(s): {e}", exc_info=True)
        logger.info(f"Warmed analytics summaries for ranges {warmed}")
        return warmed
