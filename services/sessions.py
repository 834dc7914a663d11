from datetime import datetime
import logging
from typing import Optional

from core.clock import utcnow
from core.exceptions import DuplicateKeyError
from repositories.analytics import AnalyticsRepository

logger = logging.getLogger(__name__)


class SessionTracker:
    def __init__(self, repository: AnalyticsRepository):
        self.repository = repository

    async def upsert_session(
        self,
        session_key: str,
        user_id: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        started_at: Optional[datetime] = None,
        ended_at: Optional[datetime] = None,
    ) -> str:
        """Create or partially update a session by key and return its id.

        Fields left as None are not touched on an existing session.
        """
        patch = {
            field: value
            for field, value in (
                ("user_id", user_id),
                ("user_agent", user_agent),
                ("ip_address", ip_address),
                ("ended_at", ended_at),
            )
            if value is not None
        }
        started_at = started_at or utcnow()

        try:
            return await self.repository.upsert_session(session_key, started_at, patch)
        except DuplicateKeyError:
            # A concurrent request created the same key first; update its row instead
            logger.warning(f"Duplicate analytics session key received: {session_key}")
            return await self.repository.upsert_session(session_key, started_at, patch)
