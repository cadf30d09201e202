"""
Event storage and delivery interfaces.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Protocol, Sequence, runtime_checkable

from mealsight.domain.metrics.models import AnalysisEvent, EventType


@runtime_checkable
class IEventRepository(Protocol):
    """
    Repository interface for analysis events.

    Example:
        >>> await repository.insert_many([event1, event2])
        >>> events = await repository.list_by_type(EventType.EDIT_COUNT, start, end)
    """

    async def insert_many(self, events: Sequence[AnalysisEvent]) -> None:
        """
        Store a batch of events.

        Raises:
            RepositoryError: On storage failure (batch is requeued by the caller)
        """
        ...

    async def list_by_type(
        self, event_type: EventType, start: datetime, end: datetime
    ) -> List[AnalysisEvent]:
        """Events of one type created in [start, end]."""
        ...


@runtime_checkable
class IEventSink(Protocol):
    """Fire-and-forget event delivery (e.g., a batching queue)."""

    async def enqueue(self, event: AnalysisEvent) -> None:
        """Accept an event for later delivery. Never raises."""
        ...
