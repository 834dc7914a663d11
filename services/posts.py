import logging
from typing import Awaitable, Callable, Optional

from core.exceptions import (
    ConflictError, CounterUpdateError, NotFoundError, PermissionDeniedError,
    RepostCreationError, ValidationError,
)
from models import (
    Comment, CommentCreate, InteractionResult, InteractionType, LikeResult,
    NotificationType, Post, PostCreate, SaveResult,
)
from repositories.posts import InsertOutcome, PostRepository
from services.moderation import AllowAllModeration, ModerationClient, flagged_categories
from services.notifications import NotificationService

logger = logging.getLogger(__name__)

# Signature of AnalyticsService.record_canonical_event
EventRecorder = Callable[..., Awaitable[None]]


class PostService:
    """Post creation and the like / share / repost / save state machines."""

    def __init__(
        self,
        posts: PostRepository,
        notifications: NotificationService,
        moderation: Optional[ModerationClient] = None,
        record_event: Optional[EventRecorder] = None,
    ):
        self.posts = posts
        self.notifications = notifications
        self.moderation = moderation or AllowAllModeration()
        self.record_event = record_event

    async def _get_post(self, post_id: str) -> Post:
        post = await self.posts.get_post(post_id)
        if not post:
            raise NotFoundError("Post not found")
        return post

    async def _notify(self, recipient_id: str, actor_id: str, event_type: NotificationType,
                      post_id: str, comment_id: str | None = None):
        try:
            await self.notifications.notify(recipient_id, actor_id, event_type, post_id, comment_id)
        except Exception as e:
            logger.warning(f"Failed to notify {recipient_id} of {event_type.value}: {e}")

    async def _track(self, user_id: str, event_type: str, post_id: str, **extra):
        if self.record_event:
            await self.record_event(
                type=event_type, user_id=user_id, target_type="post", target_id=post_id, **extra
            )

    async def create_post(self, user_id: str, data: PostCreate) -> Post:
        body = (data.body or "").strip()
        if not body:
            raise ValidationError("Post body is required")

        texts = [text for text in (body, (data.title or "").strip()) if text]
        images = [data.image_base64] if data.image_base64 else []
        categories = flagged_categories(await self.moderation.check(texts, images))

        post = Post(
            author_id=user_id,
            original_author_id=user_id,
            body=body,
            title=data.title,
            image_url=data.image_url,
            lounge_id=data.lounge_id,
            flagged=bool(categories),
            flagged_categories=categories or None,
        )
        await self.posts.add(post)
        if categories:
            logger.warning(f"Post {post.id} by {user_id} flagged for {', '.join(categories)}")
        else:
            logger.info(f"Post created (id={post.id})")
        return post

    async def toggle_like(self, user_id: str, post_id: str) -> LikeResult:
        post = await self._get_post(post_id)

        outcome = await self.posts.record_interaction(user_id, post_id, InteractionType.LIKE)
        if outcome == InsertOutcome.CREATED:
            liked = True
            await self._notify(post.author_id, user_id, NotificationType.POST_LIKE, post_id)
        else:
            # Already liked: a repeat toggle is an unlike
            await self.posts.remove_interaction(user_id, post_id, InteractionType.LIKE)
            liked = False

        count = await self.posts.read_counter(post_id, InteractionType.LIKE.counter) or 0
        logger.info(f"Like toggled on post {post_id} by {user_id}: liked={liked}, total={count}")
        await self._track(user_id, "post.like" if liked else "post.unlike", post_id, value=count)
        return LikeResult(liked=liked, count=count)

    async def interact(self, user_id: str, post_id: str, kind: InteractionType) -> InteractionResult:
        """Record a one-way SHARE or REPOST; repeating it is a conflict."""
        if kind == InteractionType.LIKE:
            raise ValidationError("Likes are toggled, not recorded")
        post = await self._get_post(post_id)
        if kind == InteractionType.REPOST and post.repost_of_id:
            # Reposting a copy reposts its root post
            post = await self._get_post(post.repost_of_id)
            post_id = post.id

        try:
            outcome = await self.posts.record_interaction(user_id, post_id, kind)
        except CounterUpdateError:
            logger.error(f"Failed to increment {kind.counter} on {post_id}", exc_info=True)
            raise
        if outcome == InsertOutcome.ALREADY_EXISTS:
            logger.warning(f"Duplicate {kind.value} by {user_id} on {post_id}")
            raise ConflictError(f"Already {kind.value.lower()}d")

        if kind == InteractionType.REPOST:
            await self._create_repost_copy(post, user_id)

        count = await self.posts.read_counter(post_id, kind.counter)
        if count is None:
            raise NotFoundError("Post not found")
        logger.info(f"Post {post_id} has now {count} {kind.counter}")
        await self._track(user_id, f"post.{kind.value.lower()}", post_id, value=count)
        return InteractionResult(type=kind, count=count)

    async def _create_repost_copy(self, original: Post, user_id: str) -> Post:
        copy = Post(
            author_id=user_id,
            original_author_id=original.original_author_id,
            repost_of_id=original.repost_of_id or original.id,
            body=original.body,
            title=original.title,
            image_url=original.image_url,
            lounge_id=original.lounge_id,
        )
        try:
            await self.posts.add(copy)
        except Exception as e:
            logger.error(f"Failed to create repost copy of {original.id} for {user_id}", exc_info=True)
            raise RepostCreationError("Could not create repost") from e
        return copy

    async def save_post(self, user_id: str, post_id: str) -> SaveResult:
        await self._get_post(post_id)
        await self.posts.insert_save(user_id, post_id)
        return SaveResult(saved=True, count=await self.posts.count_saves(post_id))

    async def unsave_post(self, user_id: str, post_id: str) -> SaveResult:
        await self._get_post(post_id)
        await self.posts.delete_save(user_id, post_id)
        return SaveResult(saved=False, count=await self.posts.count_saves(post_id))

    async def add_comment(self, user_id: str, post_id: str, data: CommentCreate) -> Comment:
        body = (data.body or "").strip()
        if not body:
            raise ValidationError("Comment body is required")
        post = await self._get_post(post_id)

        parent = None
        if data.parent_id:
            parent = await self.posts.get_comment(data.parent_id)
            if not parent or parent.post_id != post_id:
                raise ValidationError("Parent comment does not belong to this post")

        comment = await self.posts.add(
            Comment(post_id=post_id, author_id=user_id, body=body, parent_id=data.parent_id)
        )
        if parent:
            await self._notify(parent.author_id, user_id, NotificationType.COMMENT_REPLY, post_id, comment.id)
        else:
            await self._notify(post.author_id, user_id, NotificationType.POST_COMMENT, post_id, comment.id)
        await self._track(user_id, "comment.create", post_id)
        return comment

    async def delete_post(self, user_id: str, post_id: str) -> int:
        post = await self._get_post(post_id)
        if post.author_id != user_id:
            raise PermissionDeniedError("Not authorized to delete this post")
        deleted = await self.posts.delete_post_cascade(post_id)
        logger.info(f"Post {post_id} deleted with {deleted - 1} repost copy(ies)")
        return deleted
