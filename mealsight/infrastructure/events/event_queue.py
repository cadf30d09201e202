"""Batching event queue.

Buffers analysis events and writes them to the event repository in
batches, when a batch fills up or after an idle interval, whichever
comes first. Writes always run in background tasks, so `enqueue` never
waits on the store. A failed write puts the batch back for the next
flush; the buffer is capped and drops its oldest events beyond the cap.
No ordering is guaranteed across batches.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Set

import structlog

from mealsight.domain.metrics.models import AnalysisEvent
from mealsight.domain.metrics.ports import IEventRepository

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_FLUSH_INTERVAL_S = 5.0
DEFAULT_MAX_PENDING = 1000


class BatchingEventQueue:
    """
    Fire-and-forget event queue with size and timer flush triggers.

    Owned by the application container, one per process. Call
    `shutdown()` on exit to drain pending events.

    Error handling: write failures are logged and the batch is requeued;
    nothing is raised to the caller of `enqueue`.

    Example:
        >>> queue = BatchingEventQueue(event_repository, batch_size=50)
        >>> await queue.enqueue(event)
        >>> await queue.flush_now()
        1
        >>> await queue.shutdown()
    """

    def __init__(
        self,
        repository: IEventRepository,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_interval_s: float = DEFAULT_FLUSH_INTERVAL_S,
        max_pending: int = DEFAULT_MAX_PENDING,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            repository: Event store
            batch_size: Pending count that triggers a background flush
            flush_interval_s: Idle time before a timed flush
            max_pending: Buffer cap; the oldest events are dropped beyond it
            sleep: Awaitable sleep used by the flush timer (injectable for tests)
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._repository = repository
        self.batch_size = batch_size
        self.flush_interval_s = flush_interval_s
        self.max_pending = max_pending
        self._sleep = sleep
        self._pending: List[AnalysisEvent] = []
        self._timer: Optional[asyncio.Task[None]] = None
        self._flushes: Set[asyncio.Task[int]] = set()
        self._lock = asyncio.Lock()
        self._closed = False
        self._dropped = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def dropped(self) -> int:
        """Events discarded because the buffer was full."""
        return self._dropped

    @property
    def closed(self) -> bool:
        return self._closed

    async def enqueue(self, event: AnalysisEvent) -> None:
        """
        Queue an event.

        Schedules a background flush when the batch is full, otherwise
        makes sure a flush timer is running. Never waits on the store.
        """
        if self._closed:
            logger.warning(
                "Event dropped, queue shut down",
                event_type=event.event_type.value,
                user_id=event.user_id,
            )
            return

        self._pending.append(event)
        self._trim()
        logger.debug("Event queued", event_type=event.event_type.value, pending=self.pending)

        if len(self._pending) >= self.batch_size and not self._flushes:
            self._schedule_flush()
        elif self._timer is None or self._timer.done():
            self._timer = asyncio.create_task(self._flush_after_interval())

    def _trim(self) -> None:
        overflow = len(self._pending) - self.max_pending
        if overflow <= 0:
            return

        del self._pending[:overflow]
        self._dropped += overflow
        logger.warning(
            "Event buffer full, oldest events dropped",
            dropped=overflow,
            max_pending=self.max_pending,
        )

    def _schedule_flush(self) -> None:
        task = asyncio.create_task(self.flush_now())
        self._flushes.add(task)
        task.add_done_callback(self._flushes.discard)

    async def _flush_after_interval(self) -> None:
        await self._sleep(self.flush_interval_s)
        await self.flush_now()

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    async def flush_now(self) -> int:
        """
        Write all pending events as one batch.

        Returns:
            Number of events written (0 if empty or the write failed)
        """
        async with self._lock:
            self._cancel_timer()

            if not self._pending:
                return 0

            batch = self._pending
            self._pending = []

            try:
                await self._repository.insert_many(batch)
            except Exception:
                # Requeue ahead of anything enqueued meanwhile
                self._pending = batch + self._pending
                self._trim()
                logger.error(
                    "Event flush failed, batch requeued",
                    batch_size=len(batch),
                    pending=self.pending,
                    exc_info=True,
                )
                if not self._closed and self._timer is None:
                    self._timer = asyncio.create_task(self._flush_after_interval())
                return 0

        logger.info("Flushed events", count=len(batch))
        return len(batch)

    async def shutdown(self) -> None:
        """Stop accepting events, wait for in-flight writes and drain what is pending."""
        self._closed = True
        self._cancel_timer()
        if self._flushes:
            await asyncio.gather(*self._flushes)
        await self.flush_now()
        self._cancel_timer()

        if self._pending:
            logger.error("Events lost on shutdown", count=self.pending)
