import asyncio

import pytest

from services.event_buffer import EventBuffer


class RecordingSink:
    def __init__(self, fail_times=0, delay=0):
        self.batches = []
        self.fail_times = fail_times
        self.delay = delay

    async def __call__(self, batch):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times:
            self.fail_times -= 1
            raise RuntimeError("insert failed")
        self.batches.append([record["id"] for record in batch])
        return len(batch)


def records(*ids):
    return [{"id": record_id} for record_id in ids]


def test_enqueue_empty_is_a_no_op():
    buffer = EventBuffer(RecordingSink())
    assert buffer.enqueue([]) == 0
    assert len(buffer) == 0


def test_flush_writes_pending_records_in_order():
    sink = RecordingSink()
    flushed = []
    buffer = EventBuffer(sink, on_flushed=flushed.append)
    buffer.enqueue(records("a", "b"))
    buffer.enqueue(records("c"))

    assert asyncio.run(buffer.flush()) == 3
    assert sink.batches == [["a", "b", "c"]]
    assert flushed == [3]
    assert len(buffer) == 0


def test_flush_with_nothing_pending_skips_the_sink():
    sink = RecordingSink()
    buffer = EventBuffer(sink)
    assert asyncio.run(buffer.flush()) == 0
    assert sink.batches == []


def test_failed_batch_is_restored_ahead_of_new_records():
    sink = RecordingSink(fail_times=1, delay=0.01)
    buffer = EventBuffer(sink)

    async def scenario():
        buffer.enqueue(records("a", "b"))
        flush = asyncio.create_task(buffer.flush())
        await asyncio.sleep(0)
        buffer.enqueue(records("c"))
        with pytest.raises(RuntimeError):
            await flush
        assert len(buffer) == 3
        await buffer.flush()

    asyncio.run(scenario())
    assert sink.batches == [["a", "b", "c"]]


def test_concurrent_flushes_share_one_write():
    sink = RecordingSink(delay=0.01)
    buffer = EventBuffer(sink)

    async def scenario():
        buffer.enqueue(records("a", "b"))
        return await asyncio.gather(buffer.flush(), buffer.flush(), buffer.flush())

    results = asyncio.run(scenario())
    assert results == [2, 2, 2]
    assert sink.batches == [["a", "b"]]


def test_should_flush_at_batch_size():
    buffer = EventBuffer(RecordingSink(), batch_size=3)
    buffer.enqueue(records("a", "b"))
    assert not buffer.should_flush()
    buffer.enqueue(records("c"))
    assert buffer.should_flush()


def test_flush_quietly_keeps_records_on_failure():
    sink = RecordingSink(fail_times=1)
    buffer = EventBuffer(sink)
    buffer.enqueue(records("a"))

    assert asyncio.run(buffer.flush_quietly("test")) == 0
    assert len(buffer) == 1


def test_drain_waits_for_inflight_and_pending_records():
    sink = RecordingSink(delay=0.01)
    buffer = EventBuffer(sink)

    async def scenario():
        buffer.enqueue(records("a"))
        first = asyncio.create_task(buffer.flush())
        await asyncio.sleep(0)
        buffer.enqueue(records("b"))
        drained = await buffer.drain()
        await first
        return drained

    assert asyncio.run(scenario()) == 2
    assert sink.batches == [["a"], ["b"]]


def test_timer_flushes_in_the_background():
    sink = RecordingSink()
    buffer = EventBuffer(sink, flush_interval=0.01)

    async def scenario():
        buffer.start()
        buffer.enqueue(records("a"))
        for _ in range(50):
            if sink.batches:
                break
            await asyncio.sleep(0.01)
        await buffer.shutdown()

    asyncio.run(scenario())
    assert sink.batches == [["a"]]


def test_shutdown_performs_final_flush():
    sink = RecordingSink()
    buffer = EventBuffer(sink, flush_interval=3600)

    async def scenario():
        buffer.start()
        buffer.enqueue(records("a", "b"))
        await buffer.shutdown()

    asyncio.run(scenario())
    assert sink.batches == [["a", "b"]]
    assert len(buffer) == 0
