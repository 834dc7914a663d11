from datetime import datetime, timedelta, timezone

import pytest

from services.engagement import age_in_hours, engagement, recency_weight, score


def test_brand_new_post_without_engagement_scores_ten():
    assert score(0) == 10


def test_recency_weight_halves_every_six_hours():
    assert recency_weight(0) == 1
    assert recency_weight(6) == pytest.approx(0.5)
    assert recency_weight(12) == pytest.approx(0.25)


def test_engagement_weights_comments_highest():
    assert engagement(comments=1, likes=0, shares=0, reposts=0) == 3
    assert engagement(comments=0, likes=1, shares=0, reposts=0) == 1
    assert engagement(comments=0, likes=0, shares=1, reposts=0) == 2
    assert engagement(comments=0, likes=0, shares=0, reposts=1) == 2


@pytest.mark.parametrize("counts", [
    {},
    {"likes": 4},
    {"comments": 2, "shares": 1, "reposts": 3},
])
def test_score_strictly_decreases_with_age(counts):
    ages = [0, 1, 3, 6, 24, 72]
    scores = [score(age, **counts) for age in ages]
    assert all(earlier > later for earlier, later in zip(scores, scores[1:]))


@pytest.mark.parametrize("field", ["comments", "likes", "shares", "reposts"])
def test_score_strictly_increases_with_each_counter(field):
    base = {"comments": 1, "likes": 1, "shares": 1, "reposts": 1}
    bumped = {**base, field: base[field] + 1}
    for age in (0, 5, 48):
        assert score(age, **bumped) > score(age, **base)


def test_score_without_engagement_decays_toward_zero_but_stays_positive():
    old = score(24 * 30)
    assert 0 < old < 1e-10


def test_score_formula():
    # engagement 3*2 + 5 + 2*1 + 2*0 = 13, recency 0.5
    assert score(6, comments=2, likes=5, shares=1) == pytest.approx(13 * 1.5 + 5)


def test_age_in_hours_accepts_naive_timestamps():
    now = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
    assert age_in_hours(datetime(2024, 5, 1, 9), now) == pytest.approx(3)
    assert age_in_hours(now + timedelta(hours=1), now) == 0
