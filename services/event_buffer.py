import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.metrics import analytics_events_flushed, analytics_flush_failures

logger = logging.getLogger(__name__)


class EventBuffer:
    """
    In-memory queue of sanitized analytics records awaiting a bulk insert.

    Only one flush runs at a time: a flush requested while another is in
    flight joins it instead of submitting a second write. A failed batch is put
    back in front of whatever was enqueued meanwhile, so ordering survives the
    retry.
    """

    def __init__(
        self,
        sink: Callable[[list[dict]], Awaitable[int]],
        batch_size: int = 50,
        flush_interval: float = 5.0,
        on_flushed: Optional[Callable[[int], None]] = None,
    ):
        self._sink = sink
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self._on_flushed = on_flushed
        self._pending: list[dict] = []
        self._inflight: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def flushing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def enqueue(self, records: list[dict]) -> int:
        if records:
            self._pending.extend(records)
        return len(self._pending)

    def should_flush(self) -> bool:
        return len(self._pending) >= self.batch_size

    async def flush(self) -> int:
        """Persist the buffered records, or join the flush already in flight."""
        if self.flushing:
            return await asyncio.shield(self._inflight)
        if not self._pending:
            return 0

        batch, self._pending = self._pending, []
        self._inflight = asyncio.create_task(self._write(batch))
        return await asyncio.shield(self._inflight)

    async def _write(self, batch: list[dict]) -> int:
        try:
            inserted = await self._sink(batch)
        except Exception:
            self._pending = batch + self._pending
            analytics_flush_failures.inc()
            raise
        analytics_events_flushed.inc(inserted)
        logger.debug(f"Flushed {inserted} of {len(batch)} analytics event(s)")
        if inserted and self._on_flushed:
            self._on_flushed(inserted)
        return inserted

    async def flush_quietly(self, reason: str) -> int:
        try:
            return await self.flush()
        except Exception as e:
            logger.error(
                f"Failed to flush analytics events ({reason}), {len(self._pending)} kept for retry: {e}",
                exc_info=True,
            )
            return 0

    async def drain(self) -> int:
        """Flush until everything enqueued before the call has been written."""
        flushed = 0
        if self.flushing:
            flushed += await self.flush()
        if self._pending:
            flushed += await self.flush()
        return flushed

    async def _run_timer(self):
        while True:
            await asyncio.sleep(self.flush_interval)
            if self._pending:
                await self.flush_quietly("interval")

    def start(self):
        if self._timer is None:
            self._timer = asyncio.create_task(self._run_timer(), name="analytics-flush-timer")

    async def shutdown(self):
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        if self.flushing:
            try:
                await self._inflight
            except Exception as e:
                logger.error(f"In-flight analytics flush failed during shutdown: {e}")

        if self._pending:
            try:
                await self.flush()
            except Exception as e:
                logger.error(f"Final analytics flush failed, {len(self._pending)} event(s) lost: {e}", exc_info=True)
