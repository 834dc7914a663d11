import asyncio
import os
from datetime import datetime

os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_engine.db")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("ANALYTICS_FLUSH_INTERVAL_SECONDS", "3600")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine

from core.config import get_settings
from core.database import create_db_and_tables, create_session_factory
from repositories.analytics import RequestSample, SessionWindow


@pytest.fixture(scope="session")
def settings():
    return get_settings()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}"


@pytest.fixture
def run_with_db(database_url):
    """Run ``scenario(session_factory)`` on a fresh SQLite database in one event loop."""
    def run(scenario):
        async def main():
            engine = create_async_engine(database_url)
            await create_db_and_tables(engine)
            try:
                return await scenario(create_session_factory(engine))
            finally:
                await engine.dispose()
        return asyncio.run(main())
    return run


@pytest.fixture
def client(settings, database_url, monkeypatch):
    monkeypatch.setattr(settings, "DATABASE_URL", database_url)
    from main import create_application

    app = create_application()
    with TestClient(app) as test_client:
        yield test_client


class FakeAnalyticsRepository:
    """In-memory stand-in for AnalyticsRepository that records every call."""

    def __init__(self):
        self.events: list[dict] = []
        self.sessions: dict[str, dict] = {}
        self.session_windows: list[SessionWindow] = []
        self.request_samples: list[RequestSample] = []
        self.calls: dict[str, int] = {}
        self.fail_inserts = 0
        self.duplicate_on_create = False

    def _called(self, name):
        self.calls[name] = self.calls.get(name, 0) + 1

    async def insert_events(self, records):
        self._called("insert_events")
        if self.fail_inserts:
            self.fail_inserts -= 1
            raise RuntimeError("database unavailable")
        await asyncio.sleep(0)
        known = {event["id"] for event in self.events}
        fresh = [record for record in records if record["id"] not in known]
        self.events.extend(fresh)
        return len(fresh)

    async def find_session_id(self, session_key):
        session = self.sessions.get(session_key)
        return session["id"] if session else None

    async def upsert_session(self, session_key, started_at, patch):
        self._called("upsert_session")
        if self.duplicate_on_create:
            from core.exceptions import DuplicateKeyError
            self.duplicate_on_create = False
            self.sessions[session_key] = {"id": f"sess-{session_key}", "started_at": started_at}
            raise DuplicateKeyError(f"Analytics session {session_key} already exists")
        session = self.sessions.setdefault(session_key, {"id": f"sess-{session_key}", "started_at": started_at})
        session.update(patch)
        return session["id"]

    async def insert_request_metric(self, metric):
        self._called("insert_request_metric")
        self.request_samples.append(RequestSample(metric.status_code, metric.duration_ms))

    async def delete_events_before(self, cutoff):
        self._called("delete_events_before")
        before = len(self.events)
        self.events = [event for event in self.events if event["created_at"] >= cutoff]
        return before - len(self.events)

    async def delete_sessions_before(self, cutoff):
        self._called("delete_sessions_before")
        return 0

    async def count_events(self, since):
        self._called("count_events")
        return len([event for event in self.events if event["created_at"] >= since])

    async def count_distinct_users(self, since):
        return len({event["user_id"] for event in self.events
                    if event["user_id"] and event["created_at"] >= since})

    async def count_events_by_type(self, since):
        counts: dict[str, int] = {}
        for event in self.events:
            if event["created_at"] >= since:
                counts[event["type"]] = counts.get(event["type"], 0) + 1
        return sorted(counts.items())

    async def list_sessions(self, since):
        return list(self.session_windows)

    async def list_user_activity(self, since):
        return [(event["created_at"], event["user_id"]) for event in self.events
                if event["user_id"] and event["created_at"] >= since]

    async def count_post_interactions_by_type(self, since):
        return [("LIKE", 3), ("SHARE", 1)]

    async def count_comment_likes(self, since):
        return 5

    async def list_request_samples(self, since):
        return list(self.request_samples)


@pytest.fixture
def fake_analytics_repository():
    return FakeAnalyticsRepository()


def event_record(event_id: str, event_type: str, created_at: datetime, user_id: str | None = None) -> dict:
    return {
        "id": event_id,
        "session_id": None,
        "user_id": user_id,
        "type": event_type,
        "target_type": None,
        "target_id": None,
        "duration_ms": None,
        "value": None,
        "event_metadata": None,
        "created_at": created_at,
    }


@pytest.fixture
def make_event():
    return event_record
