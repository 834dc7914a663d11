from datetime import timedelta
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import utcnow
from models import Notification, NotificationType

logger = logging.getLogger(__name__)

LIKE_DEDUP_WINDOW = timedelta(hours=1)


class NotificationService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def notify(
        self,
        recipient_id: str,
        actor_id: str,
        event_type: NotificationType,
        post_id: str | None = None,
        comment_id: str | None = None,
    ) -> Notification | None:
        """Persist a notification; self-notifications and repeated unread likes are suppressed."""
        if recipient_id == actor_id:
            return None

        async with self._session_factory() as session:
            if event_type == NotificationType.POST_LIKE and post_id:
                recent = await session.scalar(
                    select(func.count()).select_from(Notification).where(
                        Notification.user_id == recipient_id,
                        Notification.type == NotificationType.POST_LIKE,
                        Notification.post_id == post_id,
                        Notification.read == False,  # noqa: E712
                        Notification.created_at >= utcnow() - LIKE_DEDUP_WINDOW,
                    )
                )
                if recent:
                    return None

            notification = Notification(
                user_id=recipient_id,
                actor_id=actor_id,
                type=event_type,
                post_id=post_id,
                comment_id=comment_id,
            )
            session.add(notification)
            await session.commit()
            logger.info(f"Notified {recipient_id} of {event_type.value} by {actor_id}")
            return notification
