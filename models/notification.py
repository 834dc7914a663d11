from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from core.clock import utcnow
from .user import new_id


class NotificationType(str, Enum):
    POST_LIKE = "POST_LIKE"
    POST_COMMENT = "POST_COMMENT"
    COMMENT_REPLY = "COMMENT_REPLY"


class Notification(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    actor_id: str = Field(foreign_key="user.id", ondelete="CASCADE")
    type: NotificationType
    post_id: str | None = Field(default=None, foreign_key="post.id", ondelete="CASCADE")
    comment_id: str | None = Field(default=None, foreign_key="comment.id", ondelete="CASCADE")
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
