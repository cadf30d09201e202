"""In-memory correction repository.

Implements ICorrectionRepository for tests and local development.
Append-only: records are kept in insertion order.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from mealsight.domain.learning.models import CorrectionRecord, CorrectionType


class InMemoryCorrectionRepository:
    """
    In-memory implementation of ICorrectionRepository.

    Records are frozen models, so they are shared rather than copied.

    Example:
        >>> repository = InMemoryCorrectionRepository()
        >>> await repository.append(correction)
        >>> recent = await repository.list_recent_by_user("user123", limit=100)
    """

    def __init__(self) -> None:
        self._records: List[CorrectionRecord] = []

    def _newest_first(self, records: List[CorrectionRecord]) -> List[CorrectionRecord]:
        # Stable sort keeps the later insert first on equal timestamps
        return sorted(reversed(records), key=lambda r: r.created_at, reverse=True)

    async def append(self, correction: CorrectionRecord) -> None:
        self._records.append(correction)

    async def list_recent_by_user(self, user_id: str, limit: int) -> List[CorrectionRecord]:
        records = [r for r in self._records if r.user_id == user_id]
        return self._newest_first(records)[:limit]

    async def list_by_user_and_type(
        self, user_id: str, correction_type: CorrectionType, limit: int
    ) -> List[CorrectionRecord]:
        records = [
            r
            for r in self._records
            if r.user_id == user_id and r.correction_type == correction_type
        ]
        return self._newest_first(records)[:limit]

    async def list_in_range(
        self,
        start: datetime,
        end: datetime,
        correction_types: Optional[Sequence[CorrectionType]] = None,
    ) -> List[CorrectionRecord]:
        return [
            r
            for r in self._records
            if start <= r.created_at <= end
            and (correction_types is None or r.correction_type in correction_types)
        ]

    async def list_by_analysis_ids(self, analysis_ids: Sequence[str]) -> List[CorrectionRecord]:
        wanted = set(analysis_ids)
        return [r for r in self._records if r.analysis_id in wanted]

    async def list_recent(self, limit: int) -> List[CorrectionRecord]:
        return self._newest_first(self._records)[:limit]

    def count(self) -> int:
        """Number of stored corrections (test utility)."""
        return len(self._records)
