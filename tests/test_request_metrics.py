import asyncio
import math

from services.request_metrics import RequestMetricsRecorder


def test_records_rounded_duration_and_invalidates(fake_analytics_repository):
    invalidations = []
    recorder = RequestMetricsRecorder(fake_analytics_repository, on_recorded=lambda: invalidations.append(1))

    recorded = asyncio.run(recorder.record(status_code=502, duration_ms=12.6, route="/posts/feed", method="GET"))

    assert recorded is True
    assert [(s.status_code, s.duration_ms) for s in fake_analytics_repository.request_samples] == [(502, 13)]
    assert invalidations == [1]


def test_ignores_invalid_durations(fake_analytics_repository):
    recorder = RequestMetricsRecorder(fake_analytics_repository)

    async def scenario():
        return [await recorder.record(status_code=200, duration_ms=value) for value in (-1, math.nan, math.inf)]

    assert asyncio.run(scenario()) == [False, False, False]
    assert fake_analytics_repository.request_samples == []


def test_persistence_failure_is_swallowed(fake_analytics_repository):
    async def broken(metric):
        raise RuntimeError("database unavailable")

    fake_analytics_repository.insert_request_metric = broken
    invalidations = []
    recorder = RequestMetricsRecorder(fake_analytics_repository, on_recorded=lambda: invalidations.append(1))

    assert asyncio.run(recorder.record(status_code=200, duration_ms=5)) is False
    assert invalidations == []
