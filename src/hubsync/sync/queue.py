"""Action queue -- buffers actions and flushes them to the sink in batches.

Producers call ``push`` without awaiting. A single worker task consumes the
inbox and is the only code that touches the buffer, so the
check-threshold-and-swap step can never run twice for the same actions.
Flushes run as background tasks; ``drain`` waits for the inbox, flushes the
remainder and waits for every outstanding flush.

Delivery is at-least-once: a failed flush is retried, and a batch that still
fails makes ``drain`` raise so the caller keeps its old watermarks.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from src.hubsync.core.monitoring import sink_flushes_total
from src.hubsync.sync.errors import SinkError
from src.hubsync.sync.schemas import Action
from src.hubsync.sync.sink import ActionSink

logger = structlog.get_logger(__name__)

FLUSH_THRESHOLD = 2000


class ActionQueue:
    """Unbounded producer queue with a threshold-flushed batch buffer.

    Args:
        sink: Destination for flushed batches.
        flush_threshold: Buffer size that, once exceeded, triggers a flush.
        sink_max_attempts: Attempts per batch before it counts as failed.
        sleep: Async sleep used between sink attempts; injectable for tests.
        log_context: Extra fields bound to every log line (e.g. hub_id).
    """

    def __init__(
        self,
        sink: ActionSink,
        flush_threshold: int = FLUSH_THRESHOLD,
        sink_max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log_context: dict[str, Any] | None = None,
    ) -> None:
        self._sink = sink
        self._flush_threshold = flush_threshold
        self._sink_max_attempts = sink_max_attempts
        self._sleep = sleep
        self._log = logger.bind(**(log_context or {}))

        self._inbox: asyncio.Queue[Action] = asyncio.Queue()
        self._buffer: list[Action] = []
        self._flushes: set[asyncio.Task[None]] = set()
        self._worker: asyncio.Task[None] | None = None
        self._failed_batches = 0
        self._failed_actions = 0

    async def __aenter__(self) -> ActionQueue:
        self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @property
    def buffered(self) -> int:
        """Actions sitting in the buffer, not yet handed to a flush."""
        return len(self._buffer)

    @property
    def pending(self) -> int:
        """Actions pushed but not yet processed by the worker."""
        return self._inbox.qsize()

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.get_running_loop().create_task(self._run())

    def push(self, action: Action) -> None:
        """Enqueue an action; never blocks."""
        self.start()
        self._inbox.put_nowait(action)

    async def join(self) -> None:
        """Wait until every pushed action is processed and every flush finished."""
        if self._worker is not None:
            await self._inbox.join()
        while self._flushes:
            await asyncio.gather(*list(self._flushes))

    async def drain(self) -> None:
        """Process everything pushed so far and flush the remaining buffer.

        Raises:
            SinkError: If any batch of this queue failed delivery.
        """
        await self.join()
        if self._buffer:
            self._schedule_flush()
        await self.join()

        if self._failed_batches:
            error = SinkError(self._failed_batches, self._failed_actions)
            self._failed_batches = 0
            self._failed_actions = 0
            raise error

    async def close(self) -> None:
        """Stop the worker. Unprocessed actions are dropped; drain first."""
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    async def _run(self) -> None:
        while True:
            action = await self._inbox.get()
            try:
                self._buffer.append(action)
                if len(self._buffer) > self._flush_threshold:
                    self._schedule_flush()
            finally:
                self._inbox.task_done()

    def _schedule_flush(self) -> None:
        batch = list(self._buffer)
        task = asyncio.get_running_loop().create_task(self._flush(batch))
        self._flushes.add(task)
        task.add_done_callback(self._flushes.discard)
        # Buffer is replaced only once the flush for its snapshot is issued
        self._buffer = []

    async def _flush(self, batch: list[Action]) -> None:
        self._log.info("queue.flushing", count=len(batch))
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._sink_max_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    await self._sink.emit(batch)
        except Exception:
            self._failed_batches += 1
            self._failed_actions += len(batch)
            sink_flushes_total.labels(status="failed").inc()
            self._log.error("queue.flush_failed", count=len(batch), exc_info=True)
            return

        sink_flushes_total.labels(status="delivered").inc()
