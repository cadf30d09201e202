"""In-memory analysis event repository."""

from datetime import datetime
from typing import List, Sequence

from mealsight.domain.metrics.models import AnalysisEvent, EventType


class InMemoryEventRepository:
    """
    In-memory implementation of IEventRepository.

    Example:
        >>> repository = InMemoryEventRepository()
        >>> await repository.insert_many([event])
        >>> events = await repository.list_by_type(EventType.EDIT_COUNT, start, end)
    """

    def __init__(self) -> None:
        self._events: List[AnalysisEvent] = []

    async def insert_many(self, events: Sequence[AnalysisEvent]) -> None:
        self._events.extend(events)

    async def list_by_type(
        self, event_type: EventType, start: datetime, end: datetime
    ) -> List[AnalysisEvent]:
        return [
            e for e in self._events if e.event_type == event_type and start <= e.created_at <= end
        ]

    def count(self) -> int:
        """Number of stored events (test utility)."""
        return len(self._events)
