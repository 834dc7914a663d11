from datetime import datetime, timezone

from core.clock import as_utc

HALF_LIFE_HOURS = 6.0
FRESHNESS_BONUS = 10.0

WEIGHTS = {
    'comment': 3.0,
    'like': 1.0,
    'share': 2.0,
    'repost': 2.0,
}


def recency_weight(age_hours: float, half_life_hours: float = HALF_LIFE_HOURS) -> float:
    """Exponential decay that halves every ``half_life_hours``."""
    return 2 ** (-max(age_hours, 0.0) / half_life_hours)


def engagement(comments: int, likes: int, shares: int, reposts: int) -> float:
    return (
        comments * WEIGHTS['comment'] +
        likes * WEIGHTS['like'] +
        shares * WEIGHTS['share'] +
        reposts * WEIGHTS['repost']
    )


def score(
    age_hours: float,
    comments: int = 0,
    likes: int = 0,
    shares: int = 0,
    reposts: int = 0,
    half_life_hours: float = HALF_LIFE_HOURS,
) -> float:
    """
    Relevance score of a post.

    Engagement counts more while the post is fresh, and the additive freshness
    bonus gives brand-new posts visibility before anyone has interacted.
    """
    weight = recency_weight(age_hours, half_life_hours)
    return engagement(comments, likes, shares, reposts) * (1 + weight) + FRESHNESS_BONUS * weight


def age_in_hours(created_at: datetime, now: datetime | None = None) -> float:
    now = now or datetime.now(timezone.utc)
    return max((now - as_utc(created_at)).total_seconds() / 3600, 0.0)
