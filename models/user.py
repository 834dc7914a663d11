from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from core.clock import utcnow


def new_id() -> str:
    return str(uuid4())


class UserFollow(SQLModel, table=True):
    follower_id: str = Field(
        foreign_key="user.id",
        primary_key=True,
        ondelete="CASCADE"
    )
    followed_id: str = Field(
        foreign_key="user.id",
        primary_key=True,
        ondelete="CASCADE"
    )


class UserBase(SQLModel):
    username: str = Field(index=True, unique=True)
    avatar_url: str | None = Field(default=None)


class User(UserBase, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
