from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from core.clock import utcnow
from .user import new_id


class InteractionType(str, Enum):
    LIKE = "LIKE"
    SHARE = "SHARE"
    REPOST = "REPOST"

    @property
    def counter(self) -> str:
        """Name of the Post column this interaction increments."""
        return {
            InteractionType.LIKE: "likes",
            InteractionType.SHARE: "shares",
            InteractionType.REPOST: "reposts",
        }[self]


class PostInteraction(SQLModel, table=True):
    __tablename__ = "post_interaction"
    __table_args__ = (
        UniqueConstraint("user_id", "post_id", "type", name="uq_post_interaction_user_post_type"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    post_id: str = Field(foreign_key="post.id", index=True, ondelete="CASCADE")
    type: InteractionType
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)


class SavedPost(SQLModel, table=True):
    __tablename__ = "saved_post"

    user_id: str = Field(foreign_key="user.id", primary_key=True, ondelete="CASCADE")
    post_id: str = Field(foreign_key="post.id", primary_key=True, ondelete="CASCADE")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class InteractionResult(SQLModel):
    type: InteractionType
    count: int


class LikeResult(SQLModel):
    liked: bool
    count: int


class SaveResult(SQLModel):
    saved: bool
    count: int
