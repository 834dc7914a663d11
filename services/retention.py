from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Awaitable, Callable

from core.clock import utcnow
from repositories.analytics import AnalyticsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PruneResult:
    cutoff: datetime
    events_deleted: int
    sessions_deleted: int


class RetentionPruner:
    def __init__(
        self,
        repository: AnalyticsRepository,
        flush: Callable[[], Awaitable[int]],
        invalidate: Callable[[], None],
        retention_days: int = 180,
    ):
        self.repository = repository
        self._flush = flush
        self._invalidate = invalidate
        self.retention_days = retention_days

    async def prune(self) -> PruneResult:
        """Delete events and closed sessions older than the retention horizon."""
        try:
            await self._flush()
        except Exception as e:
            logger.warning(f"Flush before analytics pruning failed: {e}")

        cutoff = utcnow() - timedelta(days=self.retention_days)
        try:
            events_deleted = await self.repository.delete_events_before(cutoff)
            sessions_deleted = await self.repository.delete_sessions_before(cutoff)
        finally:
            self._invalidate()

        logger.info(
            f"Pruned {events_deleted} analytics event(s) and {sessions_deleted} session(s) "
            f"older than {cutoff.isoformat()}"
        )
        return PruneResult(cutoff=cutoff, events_deleted=events_deleted, sessions_deleted=sessions_deleted)
