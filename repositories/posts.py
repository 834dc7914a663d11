from dataclasses import dataclass
from enum import Enum
import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import CounterUpdateError
from models import (
    Comment, CommentLike, InteractionType, Notification, Post,
    PostInteraction, SavedPost, User, UserFollow,
)

logger = logging.getLogger(__name__)


class InsertOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass
class FeedCandidate:
    post: Post
    author: User
    original_author: User
    comment_count: int = 0
    save_count: int = 0
    liked_by_viewer: bool = False
    reposted_by_viewer: bool = False
    saved_by_viewer: bool = False


class PostRepository:
    """Persistence for posts, their interactions, saves and comments."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_post(self, post_id: str) -> Post | None:
        async with self._session_factory() as session:
            return await session.get(Post, post_id)

    async def get_comment(self, comment_id: str) -> Comment | None:
        async with self._session_factory() as session:
            return await session.get(Comment, comment_id)

    async def add(self, row):
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return row

    async def fetch_feed_candidates(
        self,
        viewer_id: str | None,
        take: int,
        following_only: bool = False,
    ) -> list[FeedCandidate]:
        """Most recent visible posts plus counts and the viewer's interaction flags."""
        query = (
            select(Post)
            .where(Post.lounge_id == None, Post.flagged == False)  # noqa: E711,E712
            .order_by(Post.created_at.desc(), Post.id)
            .limit(take)
        )
        if following_only:
            query = query.where(
                Post.author_id.in_(
                    select(UserFollow.followed_id).where(UserFollow.follower_id == viewer_id)
                )
            )

        async with self._session_factory() as session:
            posts = (await session.scalars(query)).all()
            if not posts:
                return []
            post_ids = [post.id for post in posts]

            user_ids = {post.author_id for post in posts} | {post.original_author_id for post in posts}
            users = {
                user.id: user
                for user in (await session.scalars(select(User).where(User.id.in_(user_ids)))).all()
            }

            comment_counts = dict((await session.execute(
                select(Comment.post_id, func.count())
                .where(Comment.post_id.in_(post_ids))
                .group_by(Comment.post_id)
            )).all())
            save_counts = dict((await session.execute(
                select(SavedPost.post_id, func.count())
                .where(SavedPost.post_id.in_(post_ids))
                .group_by(SavedPost.post_id)
            )).all())

            viewer_interactions: set[tuple[str, InteractionType]] = set()
            viewer_saves: set[str] = set()
            if viewer_id:
                rows = (await session.execute(
                    select(PostInteraction.post_id, PostInteraction.type).where(
                        PostInteraction.user_id == viewer_id,
                        PostInteraction.post_id.in_(post_ids),
                    )
                )).all()
                viewer_interactions = {(post_id, InteractionType(kind)) for post_id, kind in rows}
                viewer_saves = set((await session.scalars(
                    select(SavedPost.post_id).where(
                        SavedPost.user_id == viewer_id,
                        SavedPost.post_id.in_(post_ids),
                    )
                )).all())

        candidates = []
        for post in posts:
            author = users.get(post.author_id)
            original_author = users.get(post.original_author_id, author)
            if author is None:
                logger.warning(f"Skipping post {post.id}: author {post.author_id} not found")
                continue
            candidates.append(FeedCandidate(
                post=post,
                author=author,
                original_author=original_author,
                comment_count=comment_counts.get(post.id, 0),
                save_count=save_counts.get(post.id, 0),
                liked_by_viewer=(post.id, InteractionType.LIKE) in viewer_interactions,
                reposted_by_viewer=(post.id, InteractionType.REPOST) in viewer_interactions,
                saved_by_viewer=post.id in viewer_saves,
            ))
        return candidates

    # Interactions

    async def record_interaction(self, user_id: str, post_id: str, kind: InteractionType) -> InsertOutcome:
        """Insert the interaction and bump its post counter in one transaction."""
        counter = kind.counter
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    session.add(PostInteraction(user_id=user_id, post_id=post_id, type=kind))
                    await session.flush()
                    result = await session.execute(
                        update(Post)
                        .where(Post.id == post_id)
                        .values({counter: getattr(Post, counter) + 1})
                    )
                    if not result.rowcount:
                        raise CounterUpdateError(f"Post {post_id} has no {counter} counter to update")
            except IntegrityError:
                return InsertOutcome.ALREADY_EXISTS
        return InsertOutcome.CREATED

    async def remove_interaction(self, user_id: str, post_id: str, kind: InteractionType) -> bool:
        """Delete the interaction and decrement its counter; False when there was nothing to delete."""
        counter = kind.counter
        column = getattr(Post, counter)
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(PostInteraction).where(
                        PostInteraction.user_id == user_id,
                        PostInteraction.post_id == post_id,
                        PostInteraction.type == kind,
                    )
                )
                if not result.rowcount:
                    return False
                await session.execute(
                    update(Post)
                    .where(Post.id == post_id, column > 0)
                    .values({counter: column - 1})
                )
        return True

    async def read_counter(self, post_id: str, counter: str) -> int | None:
        async with self._session_factory() as session:
            return await session.scalar(select(getattr(Post, counter)).where(Post.id == post_id))

    # Saves

    async def insert_save(self, user_id: str, post_id: str) -> InsertOutcome:
        async with self._session_factory() as session:
            session.add(SavedPost(user_id=user_id, post_id=post_id))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return InsertOutcome.ALREADY_EXISTS
        return InsertOutcome.CREATED

    async def delete_save(self, user_id: str, post_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SavedPost).where(SavedPost.user_id == user_id, SavedPost.post_id == post_id)
            )
            await session.commit()
            return bool(result.rowcount)

    async def count_saves(self, post_id: str) -> int:
        async with self._session_factory() as session:
            return await session.scalar(
                select(func.count()).select_from(SavedPost).where(SavedPost.post_id == post_id)
            ) or 0

    # Cascading delete

    async def delete_post_cascade(self, post_id: str) -> int:
        """Delete a post, its repost copies and everything hanging off them in one transaction."""
        async with self._session_factory() as session:
            async with session.begin():
                copy_ids = (await session.scalars(
                    select(Post.id).where(Post.repost_of_id == post_id)
                )).all()
                post_ids = [*copy_ids, post_id]
                comment_ids = select(Comment.id).where(Comment.post_id.in_(post_ids))

                await session.execute(delete(CommentLike).where(CommentLike.comment_id.in_(comment_ids)))
                await session.execute(delete(Notification).where(Notification.post_id.in_(post_ids)))
                await session.execute(delete(Notification).where(Notification.comment_id.in_(comment_ids)))
                await session.execute(delete(Comment).where(Comment.post_id.in_(post_ids)))
                await session.execute(delete(PostInteraction).where(PostInteraction.post_id.in_(post_ids)))
                await session.execute(delete(SavedPost).where(SavedPost.post_id.in_(post_ids)))
                await session.execute(delete(Post).where(Post.id.in_(copy_ids)))
                await session.execute(delete(Post).where(Post.id == post_id))
        return len(post_ids)
