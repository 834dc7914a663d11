from datetime import datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from core.clock import utcnow
from .user import new_id


class CommentBase(SQLModel):
    body: str
    parent_id: str | None = Field(default=None, foreign_key="comment.id")


class Comment(CommentBase, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    post_id: str = Field(foreign_key="post.id", index=True, ondelete="CASCADE")
    author_id: str = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class CommentLike(SQLModel, table=True):
    __tablename__ = "comment_like"
    __table_args__ = (UniqueConstraint("user_id", "comment_id", name="uq_comment_like_user_comment"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    comment_id: str = Field(foreign_key="comment.id", index=True, ondelete="CASCADE")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)


class CommentCreate(SQLModel):
    body: str
    parent_id: str | None = None


class CommentPublic(CommentBase):
    id: str
    post_id: str
    author_id: str
    created_at: datetime
