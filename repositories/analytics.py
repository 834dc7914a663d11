from dataclasses import dataclass
from datetime import datetime
import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import DuplicateKeyError
from models import AnalyticsEvent, AnalyticsSession, CommentLike, PostInteraction, RequestMetric

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionWindow:
    started_at: datetime
    ended_at: datetime | None
    ip_address: str | None
    user_agent: str | None


@dataclass(frozen=True)
class RequestSample:
    status_code: int
    duration_ms: int


def insert_ignoring_duplicates(session: AsyncSession, table):
    """INSERT ... ON CONFLICT DO NOTHING for the bound dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(table).on_conflict_do_nothing()
    if dialect == "sqlite":
        return sqlite_insert(table).on_conflict_do_nothing()
    raise NotImplementedError(f"Duplicate-skipping insert not supported for {dialect}")


class AnalyticsRepository:
    """Persistence for analytics events, sessions and request metrics."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # Writes

    async def insert_events(self, records: list[dict]) -> int:
        if not records:
            return 0
        table = AnalyticsEvent.__table__
        async with self._session_factory() as session:
            stmt = insert_ignoring_duplicates(session, table).returning(table.c.id)
            result = await session.execute(stmt, records)
            inserted = len(result.all())
            await session.commit()
        return inserted

    async def find_session_id(self, session_key: str) -> str | None:
        async with self._session_factory() as session:
            return await session.scalar(
                select(AnalyticsSession.id).where(AnalyticsSession.session_key == session_key)
            )

    async def upsert_session(self, session_key: str, started_at: datetime, patch: dict) -> str:
        """Create the session, or apply only the supplied fields to the existing row."""
        async with self._session_factory() as session:
            existing = await session.scalar(
                select(AnalyticsSession).where(AnalyticsSession.session_key == session_key)
            )
            if existing:
                for field, value in patch.items():
                    setattr(existing, field, value)
                await session.commit()
                return existing.id

            row = AnalyticsSession(session_key=session_key, started_at=started_at, **patch)
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateKeyError(f"Analytics session {session_key} already exists") from e
            return row.id

    async def insert_request_metric(self, metric: RequestMetric) -> None:
        async with self._session_factory() as session:
            session.add(metric)
            await session.commit()

    async def delete_events_before(self, cutoff: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(AnalyticsEvent).where(AnalyticsEvent.created_at < cutoff)
            )
            await session.commit()
            return result.rowcount or 0

    async def delete_sessions_before(self, cutoff: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(AnalyticsSession).where(
                    AnalyticsSession.started_at < cutoff,
                    or_(AnalyticsSession.ended_at == None, AnalyticsSession.ended_at < cutoff),  # noqa: E711
                )
            )
            await session.commit()
            return result.rowcount or 0

    # Reads used by the summary aggregator

    async def count_events(self, since: datetime) -> int:
        async with self._session_factory() as session:
            return await session.scalar(
                select(func.count()).select_from(AnalyticsEvent).where(AnalyticsEvent.created_at >= since)
            ) or 0

    async def count_distinct_users(self, since: datetime) -> int:
        async with self._session_factory() as session:
            return await session.scalar(
                select(func.count(func.distinct(AnalyticsEvent.user_id))).where(
                    AnalyticsEvent.created_at >= since,
                    AnalyticsEvent.user_id != None,  # noqa: E711
                )
            ) or 0

    async def count_events_by_type(self, since: datetime) -> list[tuple[str, int]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AnalyticsEvent.type, func.count())
                .where(AnalyticsEvent.created_at >= since)
                .group_by(AnalyticsEvent.type)
                .order_by(AnalyticsEvent.type)
            )
            return [(event_type, count) for event_type, count in result.all()]

    async def list_sessions(self, since: datetime) -> list[SessionWindow]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    AnalyticsSession.started_at,
                    AnalyticsSession.ended_at,
                    AnalyticsSession.ip_address,
                    AnalyticsSession.user_agent,
                ).where(
                    or_(AnalyticsSession.started_at >= since, AnalyticsSession.ended_at >= since)
                )
            )
            return [SessionWindow(*row) for row in result.all()]

    async def list_user_activity(self, since: datetime) -> list[tuple[datetime, str]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AnalyticsEvent.created_at, AnalyticsEvent.user_id).where(
                    AnalyticsEvent.created_at >= since,
                    AnalyticsEvent.user_id != None,  # noqa: E711
                )
            )
            return [(created_at, user_id) for created_at, user_id in result.all()]

    async def count_post_interactions_by_type(self, since: datetime) -> list[tuple[str, int]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PostInteraction.type, func.count())
                .where(PostInteraction.created_at >= since)
                .group_by(PostInteraction.type)
                .order_by(PostInteraction.type)
            )
            return [(getattr(kind, "value", kind), count) for kind, count in result.all()]

    async def count_comment_likes(self, since: datetime) -> int:
        async with self._session_factory() as session:
            return await session.scalar(
                select(func.count()).select_from(CommentLike).where(CommentLike.created_at >= since)
            ) or 0

    async def list_request_samples(self, since: datetime) -> list[RequestSample]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RequestMetric.status_code, RequestMetric.duration_ms).where(
                    RequestMetric.occurred_at >= since
                )
            )
            return [RequestSample(*row) for row in result.all()]
