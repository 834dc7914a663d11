from datetime import timedelta

from sqlalchemy import select

from core.clock import utcnow
from models import AnalyticsEvent, CommentLike, InteractionType, Post, PostInteraction, RequestMetric, User
from repositories.analytics import AnalyticsRepository
from repositories.posts import InsertOutcome, PostRepository


def test_insert_events_skips_duplicate_ids(run_with_db, make_event):
    async def scenario(session_factory):
        repository = AnalyticsRepository(session_factory)
        now = utcnow()
        first = await repository.insert_events([
            make_event("e1", "click", now, "u1"),
            make_event("e2", "view", now, "u2"),
        ])
        second = await repository.insert_events([
            make_event("e2", "view", now, "u2"),
            make_event("e3", "view", now, "u1"),
        ])
        assert (first, second) == (2, 1)
        assert await repository.count_events(now - timedelta(minutes=1)) == 3
        assert await repository.count_distinct_users(now - timedelta(minutes=1)) == 2
        assert await repository.count_events_by_type(now - timedelta(minutes=1)) == [("click", 1), ("view", 2)]
        assert await repository.insert_events([]) == 0

    run_with_db(scenario)


def test_event_metadata_is_stored_as_json(run_with_db, make_event):
    async def scenario(session_factory):
        repository = AnalyticsRepository(session_factory)
        record = make_event("e1", "click", utcnow())
        record["event_metadata"] = {"button": "share", "position": 2}
        await repository.insert_events([record])

        async with session_factory() as session:
            event = await session.scalar(select(AnalyticsEvent).where(AnalyticsEvent.id == "e1"))
        assert event.event_metadata == {"button": "share", "position": 2}
        # Anonymous events are left out of daily active users
        assert await repository.list_user_activity(utcnow() - timedelta(minutes=1)) == []

    run_with_db(scenario)


def test_upsert_session_patches_only_given_fields(run_with_db):
    async def scenario(session_factory):
        repository = AnalyticsRepository(session_factory)
        started = utcnow() - timedelta(minutes=10)
        session_id = await repository.upsert_session(
            "key-1", started, {"user_agent": "Mozilla/5.0", "ip_address": "203.0.113.7"}
        )
        same_id = await repository.upsert_session("key-1", utcnow(), {"ended_at": utcnow()})

        assert same_id == session_id
        assert await repository.find_session_id("key-1") == session_id
        [window] = await repository.list_sessions(started - timedelta(minutes=1))
        assert window.user_agent == "Mozilla/5.0"
        assert window.ip_address == "203.0.113.7"
        assert window.ended_at is not None

    run_with_db(scenario)


def test_prune_deletes_old_events_and_closed_sessions(run_with_db, make_event):
    async def scenario(session_factory):
        repository = AnalyticsRepository(session_factory)
        now = utcnow()
        cutoff = now - timedelta(days=180)
        await repository.insert_events([
            make_event("old", "click", now - timedelta(days=200)),
            make_event("new", "click", now - timedelta(days=1)),
        ])
        await repository.upsert_session("old-closed", now - timedelta(days=200),
                                        {"ended_at": now - timedelta(days=199)})
        await repository.upsert_session("old-open", now - timedelta(days=200), {})
        await repository.upsert_session("recent-end", now - timedelta(days=200), {"ended_at": now})
        await repository.upsert_session("new", now, {})

        assert await repository.delete_events_before(cutoff) == 1
        assert await repository.delete_sessions_before(cutoff) == 2
        assert await repository.find_session_id("recent-end") is not None
        assert await repository.find_session_id("new") is not None

    run_with_db(scenario)


def test_platform_activity_and_request_samples(run_with_db):
    async def scenario(session_factory):
        repository = AnalyticsRepository(session_factory)
        posts = PostRepository(session_factory)
        await posts.add(User(id="u1", username="one"))
        await posts.add(User(id="u2", username="two"))
        post = await posts.add(Post(author_id="u1", original_author_id="u1", body="hello"))
        await posts.record_interaction("u2", post.id, InteractionType.LIKE)
        await posts.record_interaction("u2", post.id, InteractionType.SHARE)
        await posts.record_interaction("u1", post.id, InteractionType.LIKE)
        await posts.add(CommentLike(user_id="u1", comment_id="c1"))
        await repository.insert_request_metric(RequestMetric(status_code=200, duration_ms=12))
        await repository.insert_request_metric(RequestMetric(status_code=500, duration_ms=40))

        since = utcnow() - timedelta(minutes=1)
        assert await repository.count_post_interactions_by_type(since) == [("LIKE", 2), ("SHARE", 1)]
        assert await repository.count_comment_likes(since) == 1
        samples = await repository.list_request_samples(since)
        assert sorted((sample.status_code, sample.duration_ms) for sample in samples) == [(200, 12), (500, 40)]

    run_with_db(scenario)


def test_record_interaction_is_idempotent(run_with_db):
    async def scenario(session_factory):
        posts = PostRepository(session_factory)
        await posts.add(User(id="u1", username="one"))
        post = await posts.add(Post(author_id="u1", original_author_id="u1", body="hello"))

        first = await posts.record_interaction("u1", post.id, InteractionType.SHARE)
        second = await posts.record_interaction("u1", post.id, InteractionType.SHARE)

        assert (first, second) == (InsertOutcome.CREATED, InsertOutcome.ALREADY_EXISTS)
        assert await posts.read_counter(post.id, "shares") == 1
        assert await posts.remove_interaction("u1", post.id, InteractionType.SHARE) is True
        assert await posts.remove_interaction("u1", post.id, InteractionType.SHARE) is False
        assert await posts.read_counter(post.id, "shares") == 0

    run_with_db(scenario)


def test_counter_never_goes_negative(run_with_db):
    async def scenario(session_factory):
        posts = PostRepository(session_factory)
        await posts.add(User(id="u1", username="one"))
        post = await posts.add(Post(author_id="u1", original_author_id="u1", body="hello"))
        await posts.add(PostInteraction(user_id="u1", post_id=post.id, type=InteractionType.LIKE))

        assert await posts.remove_interaction("u1", post.id, InteractionType.LIKE) is True
        assert await posts.read_counter(post.id, "likes") == 0

    run_with_db(scenario)
