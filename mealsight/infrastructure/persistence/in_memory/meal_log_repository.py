"""In-memory meal log repository."""

from datetime import datetime
from typing import List, Optional

from mealsight.domain.learning.models import MealLogEntry


class InMemoryMealLogRepository:
    """
    In-memory implementation of IMealLogRepository.

    Example:
        >>> repository = InMemoryMealLogRepository()
        >>> await repository.insert(entry)
        >>> recent = await repository.list_recent_by_user("user123", limit=10)
    """

    def __init__(self) -> None:
        self._entries: List[MealLogEntry] = []

    async def insert(self, entry: MealLogEntry) -> None:
        self._entries.append(entry)

    async def list_recent_by_user(self, user_id: str, limit: int) -> List[MealLogEntry]:
        entries = [e for e in reversed(self._entries) if e.user_id == user_id]
        entries.sort(key=lambda e: e.logged_at, reverse=True)
        return entries[:limit]

    async def list_in_range(
        self, start: datetime, end: datetime, source: Optional[str] = None
    ) -> List[MealLogEntry]:
        return [
            e
            for e in self._entries
            if start <= e.logged_at <= end and (source is None or e.source == source)
        ]

    def count(self) -> int:
        """Number of stored meals (test utility)."""
        return len(self._entries)
