from datetime import datetime

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from core.clock import utcnow
from .user import new_id


class PostBase(SQLModel):
    body: str
    title: str | None = Field(default=None)
    image_url: str | None = Field(default=None)


class Post(PostBase, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    author_id: str = Field(foreign_key="user.id", index=True, ondelete="CASCADE")
    # Differs from author_id when the row is a repost copy of another user's post
    original_author_id: str = Field(foreign_key="user.id", index=True)
    repost_of_id: str | None = Field(default=None, foreign_key="post.id", index=True)
    lounge_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)

    # Engagement counters
    likes: int = Field(default=0)
    shares: int = Field(default=0)
    reposts: int = Field(default=0)

    # Moderation
    flagged: bool = Field(default=False, index=True)
    flagged_categories: list[str] | None = Field(default=None, sa_column=Column(JSON))

    @property
    def is_repost(self) -> bool:
        """True for copies of another user's post; self-reposts are shown as the author's own."""
        return self.original_author_id != self.author_id


class PostCreate(PostBase):
    lounge_id: str | None = None
    image_base64: str | None = None


class PostPublic(PostBase):
    id: str
    author_id: str
    original_author_id: str
    lounge_id: str | None
    created_at: datetime
    likes: int
    shares: int
    reposts: int
    flagged: bool


class FeedPost(SQLModel):
    id: str
    author_id: str
    username: str
    avatar_url: str | None = None
    title: str | None = None
    image_url: str | None = None
    caption: str
    timestamp: datetime
    stars: int
    comments: int
    shares: int
    reposts: int
    saves: int
    liked_by_me: bool = False
    reposted_by_me: bool = False
    saved_by_me: bool = False
    reposted_by: str | None = None
    score: float


class FeedResponse(SQLModel):
    posts: list[FeedPost]
    total: int
    page: int
    limit: int
