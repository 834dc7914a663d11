from datetime import datetime
import logging
import math
from typing import Callable, Optional

from models import RequestMetric
from repositories.analytics import AnalyticsRepository

logger = logging.getLogger(__name__)


class RequestMetricsRecorder:
    def __init__(self, repository: AnalyticsRepository, on_recorded: Optional[Callable[[], None]] = None):
        self.repository = repository
        self._on_recorded = on_recorded

    async def record(
        self,
        status_code: int,
        duration_ms: float,
        route: Optional[str] = None,
        method: Optional[str] = None,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> bool:
        """Persist one completed request; failures are logged, never raised."""
        if not math.isfinite(duration_ms) or duration_ms < 0:
            return False

        metric = RequestMetric(
            route=route,
            method=method,
            status_code=status_code,
            duration_ms=round(duration_ms),
            user_id=user_id,
            request_id=request_id,
        )
        if occurred_at:
            metric.occurred_at = occurred_at

        try:
            await self.repository.insert_request_metric(metric)
        except Exception as e:
            logger.warning(f"Failed to persist request metric: {e}")
            return False

        if self._on_recorded:
            self._on_recorded()
        return True
