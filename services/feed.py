from datetime import datetime, timezone
import logging

from core.metrics import feed_ranking_latency
from models import FeedPost, FeedResponse
from repositories.posts import FeedCandidate, PostRepository
from services.engagement import HALF_LIFE_HOURS, age_in_hours, score

logger = logging.getLogger(__name__)

FEED_MODES = ("foryou", "following")


class FeedRanker:
    """Ranks the most recent posts by time-decayed engagement and pages the result."""

    def __init__(
        self,
        posts: PostRepository,
        half_life_hours: float = HALF_LIFE_HOURS,
        max_candidates: int = 500,
        max_limit: int = 100,
    ):
        self.posts = posts
        self.half_life_hours = half_life_hours
        self.max_candidates = max_candidates
        self.max_limit = max_limit

    def score_candidate(self, candidate: FeedCandidate, now: datetime) -> float:
        post = candidate.post
        return score(
            age_in_hours(post.created_at, now),
            comments=candidate.comment_count,
            likes=post.likes,
            shares=post.shares,
            reposts=post.reposts,
            half_life_hours=self.half_life_hours,
        )

    def to_feed_post(self, candidate: FeedCandidate, post_score: float) -> FeedPost:
        post = candidate.post
        # Repost copies show the original author's identity
        display = candidate.original_author
        return FeedPost(
            id=post.id,
            author_id=display.id,
            username=display.username,
            avatar_url=display.avatar_url,
            title=post.title,
            image_url=post.image_url,
            caption=post.body,
            timestamp=post.created_at,
            stars=post.likes,
            comments=candidate.comment_count,
            shares=post.shares,
            reposts=post.reposts,
            saves=candidate.save_count,
            liked_by_me=candidate.liked_by_viewer,
            reposted_by_me=candidate.reposted_by_viewer,
            saved_by_me=candidate.saved_by_viewer,
            reposted_by=candidate.author.username if post.is_repost else None,
            score=post_score,
        )

    def rank(self, candidates: list[FeedCandidate], now: datetime | None = None) -> list[FeedPost]:
        now = now or datetime.now(timezone.utc)
        scored = [(self.score_candidate(candidate, now), candidate) for candidate in candidates]
        # sorted() is stable, so equal scores keep recency order
        scored = sorted(scored, key=lambda item: item[0], reverse=True)
        return [self.to_feed_post(candidate, post_score) for post_score, candidate in scored]

    async def get_feed(
        self,
        viewer_id: str | None,
        page: int = 1,
        limit: int = 20,
        mode: str = "foryou",
    ) -> FeedResponse:
        page = max(page, 1)
        limit = min(max(limit, 1), self.max_limit)
        following_only = mode == "following"

        if following_only and not viewer_id:
            return FeedResponse(posts=[], total=0, page=page, limit=limit)

        with feed_ranking_latency.time():
            take = min(page * limit, self.max_candidates)
            candidates = await self.posts.fetch_feed_candidates(viewer_id, take, following_only)
            ranked = self.rank(candidates)

        start = (page - 1) * limit
        logger.debug(f"Ranked {len(candidates)} candidate(s) for page {page} (mode={mode})")
        return FeedResponse(
            posts=ranked[start:start + limit],
            total=len(candidates),
            page=page,
            limit=limit,
        )
