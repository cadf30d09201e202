"""Unit tests for the batching event queue."""

import asyncio
from typing import List
from unittest.mock import AsyncMock

import pytest

from mealsight.domain.metrics.models import AnalysisEvent, EventType
from mealsight.domain.shared.errors import RepositoryError
from mealsight.infrastructure.events.event_queue import BatchingEventQueue
from mealsight.infrastructure.persistence.in_memory import InMemoryEventRepository


class GatedSleep:
    """Flush timer sleep that only returns once released."""

    def __init__(self) -> None:
        self.calls: List[float] = []
        self.gate = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await self.gate.wait()


def _event(event_type: EventType = EventType.MEAL_SAVED) -> AnalysisEvent:
    return AnalysisEvent(user_id="user_123", event_type=event_type, event_data={"had_note": True})


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def repository() -> InMemoryEventRepository:
    return InMemoryEventRepository()


@pytest.fixture
def gated_sleep() -> GatedSleep:
    return GatedSleep()


class TestBatchingEventQueue:
    def test_invalid_batch_size(self, repository: InMemoryEventRepository) -> None:
        with pytest.raises(ValueError):
            BatchingEventQueue(repository, batch_size=0)

    @pytest.mark.asyncio
    async def test_flushes_when_batch_full(
        self, repository: InMemoryEventRepository, gated_sleep: GatedSleep
    ) -> None:
        queue = BatchingEventQueue(repository, batch_size=3, sleep=gated_sleep)

        await queue.enqueue(_event())
        await queue.enqueue(_event())
        assert repository.count() == 0
        assert queue.pending == 2

        await queue.enqueue(_event())
        await _settle()

        assert repository.count() == 3
        assert queue.pending == 0
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_flushes_after_interval(
        self, repository: InMemoryEventRepository, gated_sleep: GatedSleep
    ) -> None:
        queue = BatchingEventQueue(
            repository, batch_size=50, flush_interval_s=5.0, sleep=gated_sleep
        )

        await queue.enqueue(_event())
        await _settle()
        assert gated_sleep.calls == [5.0]
        assert repository.count() == 0

        gated_sleep.gate.set()
        await _settle()

        assert repository.count() == 1
        assert queue.pending == 0
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_failed_batch_requeued(self, gated_sleep: GatedSleep) -> None:
        repository = AsyncMock()
        repository.insert_many.side_effect = [RepositoryError("connection lost"), None]
        queue = BatchingEventQueue(repository, batch_size=1, sleep=gated_sleep)

        await queue.enqueue(_event())
        await _settle()
        assert queue.pending == 1

        assert await queue.flush_now() == 1
        assert queue.pending == 0
        assert repository.insert_many.await_count == 2
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_requeued_events_keep_their_place(self, gated_sleep: GatedSleep) -> None:
        repository = AsyncMock()
        repository.insert_many.side_effect = [RepositoryError("connection lost"), None]
        queue = BatchingEventQueue(repository, batch_size=1, sleep=gated_sleep)
        first = _event(EventType.AI_ANALYSIS_STARTED)

        await queue.enqueue(first)
        await _settle()
        await queue.enqueue(_event(EventType.AI_ANALYSIS_COMPLETED))
        await _settle()

        written = repository.insert_many.call_args.args[0]
        assert [e.event_type for e in written] == [
            EventType.AI_ANALYSIS_STARTED,
            EventType.AI_ANALYSIS_COMPLETED,
        ]
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_flush_empty(self, repository: InMemoryEventRepository) -> None:
        queue = BatchingEventQueue(repository)
        assert await queue.flush_now() == 0

    @pytest.mark.asyncio
    async def test_shutdown_drains_and_closes(
        self, repository: InMemoryEventRepository, gated_sleep: GatedSleep
    ) -> None:
        queue = BatchingEventQueue(repository, batch_size=50, sleep=gated_sleep)
        await queue.enqueue(_event())
        await queue.enqueue(_event())

        await queue.shutdown()

        assert queue.closed is True
        assert repository.count() == 2

        await queue.enqueue(_event())
        assert queue.pending == 0
        assert repository.count() == 2

    @pytest.mark.asyncio
    async def test_shutdown_with_failing_store(self, gated_sleep: GatedSleep) -> None:
        """Undeliverable events are reported, not raised."""
        repository = AsyncMock()
        repository.insert_many.side_effect = RepositoryError("connection lost")
        queue = BatchingEventQueue(repository, batch_size=50, sleep=gated_sleep)
        await queue.enqueue(_event())

        await queue.shutdown()

        assert queue.pending == 1


class SlowEventRepository:
    """Event store whose writes block until released."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.batches: List[List[AnalysisEvent]] = []

    async def insert_many(self, events: List[AnalysisEvent]) -> None:
        await self.release.wait()
        self.batches.append(list(events))


class TestBackpressure:
    @pytest.mark.asyncio
    async def test_enqueue_does_not_wait_on_store(self, gated_sleep: GatedSleep) -> None:
        repository = SlowEventRepository()
        queue = BatchingEventQueue(repository, batch_size=2, sleep=gated_sleep)

        for _ in range(4):
            await asyncio.wait_for(queue.enqueue(_event()), timeout=1.0)
            await _settle()

        assert repository.batches == []
        assert queue.pending == 2

        repository.release.set()
        await queue.shutdown()

        assert [len(batch) for batch in repository.batches] == [2, 2]
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_buffer_capped_while_store_down(self, gated_sleep: GatedSleep) -> None:
        repository = AsyncMock()
        repository.insert_many.side_effect = RepositoryError("connection lost")
        queue = BatchingEventQueue(repository, batch_size=1, max_pending=3, sleep=gated_sleep)

        for n in range(5):
            await queue.enqueue(
                AnalysisEvent(
                    user_id="user_123", event_type=EventType.MEAL_SAVED, event_data={"n": n}
                )
            )
            await _settle()

        assert queue.pending == 3
        assert queue.dropped == 2

        repository.insert_many.side_effect = None
        assert await queue.flush_now() == 3
        written = repository.insert_many.call_args.args[0]
        assert [e.event_data["n"] for e in written] == [2, 3, 4]
        await queue.shutdown()
