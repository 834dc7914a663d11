from typing import Literal

from fastapi import APIRouter, Depends, Query
import logging

from core.config import get_settings
from dependencies import CurrentUserDep, FeedDep, PostServiceDep, ViewerDep, rate_limit
from models import (
    BasicResponse, CommentCreate, CommentPublic, FeedResponse, InteractionResult,
    InteractionType, LikeResult, PostCreate, PostPublic, SaveResult,
)

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)


@router.get("/feed", response_model=FeedResponse)
async def get_feed(
    feed: FeedDep,
    viewer_id: ViewerDep,
    page: int = Query(1),
    limit: int = Query(settings.FEED_DEFAULT_LIMIT),
    mode: Literal["foryou", "following"] = "foryou",
) -> FeedResponse:
    """Ranked feed; anonymous viewers get the same ranking without personal flags"""
    logger.info(f"Fetching feed (mode={mode}, page={page}, limit={limit})")
    result = await feed.get_feed(viewer_id, page, limit, mode)
    logger.info(f"Feed retrieved: {len(result.posts)} post(s)")
    return result


@router.post(
    "",
    response_model=PostPublic,
    status_code=201,
    dependencies=[Depends(rate_limit("posts", settings.POSTS_PER_MINUTE))],
)
async def create_post(post: PostCreate, user_id: CurrentUserDep, posts: PostServiceDep):
    """Create a post; flagged content is stored hidden rather than rejected"""
    return await posts.create_post(user_id, post)


@router.delete("/{post_id}", response_model=BasicResponse)
async def delete_post(post_id: str, user_id: CurrentUserDep, posts: PostServiceDep):
    """Delete one of your posts with its comments, interactions and repost copies"""
    await posts.delete_post(user_id, post_id)
    return BasicResponse(message="Post deleted")


@router.post(
    "/{post_id}/like",
    response_model=LikeResult,
    dependencies=[Depends(rate_limit("likes", settings.LIKES_PER_MINUTE))],
)
async def toggle_like(post_id: str, user_id: CurrentUserDep, posts: PostServiceDep):
    """Like the post, or unlike it when already liked"""
    return await posts.toggle_like(user_id, post_id)


@router.post("/{post_id}/share", response_model=InteractionResult)
async def share_post(post_id: str, user_id: CurrentUserDep, posts: PostServiceDep):
    return await posts.interact(user_id, post_id, InteractionType.SHARE)


@router.post("/{post_id}/repost", response_model=InteractionResult)
async def repost_post(post_id: str, user_id: CurrentUserDep, posts: PostServiceDep):
    return await posts.interact(user_id, post_id, InteractionType.REPOST)


@router.post("/{post_id}/save", response_model=SaveResult)
async def save_post(post_id: str, user_id: CurrentUserDep, posts: PostServiceDep):
    return await posts.save_post(user_id, post_id)


@router.delete("/{post_id}/save", response_model=SaveResult)
async def unsave_post(post_id: str, user_id: CurrentUserDep, posts: PostServiceDep):
    return await posts.unsave_post(user_id, post_id)


@router.post("/{post_id}/comments", response_model=CommentPublic, status_code=201)
async def add_comment(post_id: str, comment: CommentCreate, user_id: CurrentUserDep, posts: PostServiceDep):
    return await posts.add_comment(user_id, post_id, comment)
