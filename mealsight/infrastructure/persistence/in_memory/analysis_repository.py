"""In-memory inference record repository.

Implements IAnalysisRepository for tests and local development.
"""

from copy import deepcopy
from datetime import datetime
from typing import Dict, List, Optional

from mealsight.domain.learning.models import AnalysisStatus, InferenceRecord


class InMemoryAnalysisRepository:
    """
    In-memory implementation of IAnalysisRepository.

    Thread safety: NOT thread-safe (single event loop only)
    Persistence: Data lost on process restart (in-memory only)

    Example:
        >>> repository = InMemoryAnalysisRepository()
        >>> await repository.insert(record)
        >>> retrieved = await repository.get_by_id(record.analysis_id)
    """

    def __init__(self) -> None:
        self._storage: Dict[str, InferenceRecord] = {}

    async def insert(self, record: InferenceRecord) -> None:
        # Deep copy so callers cannot mutate stored state
        self._storage[record.analysis_id] = deepcopy(record)

    async def get_by_id(self, analysis_id: str) -> Optional[InferenceRecord]:
        record = self._storage.get(analysis_id)
        return deepcopy(record) if record else None

    async def mark_confirmed(self, analysis_id: str, confirmed_at: datetime) -> bool:
        record = self._storage.get(analysis_id)
        if record is None:
            return False
        record.status = AnalysisStatus.CONFIRMED
        record.confirmed_at = confirmed_at
        return True

    async def attach_image_hash(self, analysis_id: str, image_hash: str) -> bool:
        record = self._storage.get(analysis_id)
        if record is None:
            return False
        record.image_hash = image_hash
        return True

    async def find_latest(
        self,
        user_id: str,
        image_hash: str,
        user_note: Optional[str],
        since: datetime,
    ) -> Optional[InferenceRecord]:
        matches = [
            r
            for r in self._storage.values()
            if r.user_id == user_id
            and r.image_hash == image_hash
            and r.user_note == user_note
            and r.created_at >= since
        ]
        if not matches:
            return None
        return deepcopy(max(matches, key=lambda r: r.created_at))

    async def list_by_user(self, user_id: str, since: datetime) -> List[InferenceRecord]:
        records = [
            r for r in self._storage.values() if r.user_id == user_id and r.created_at >= since
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return deepcopy(records)

    async def list_by_model_version(
        self, model_version: str, since: datetime
    ) -> List[InferenceRecord]:
        records = [
            r
            for r in self._storage.values()
            if r.model_version == model_version and r.created_at >= since
        ]
        return deepcopy(records)

    async def count_confirmed(self, start: datetime, end: datetime) -> int:
        return sum(
            1
            for r in self._storage.values()
            if r.status == AnalysisStatus.CONFIRMED and start <= r.created_at <= end
        )

    async def delete_older_than(self, user_id: str, cutoff: datetime) -> int:
        expired = [
            analysis_id
            for analysis_id, r in self._storage.items()
            if r.user_id == user_id and r.created_at < cutoff
        ]
        for analysis_id in expired:
            del self._storage[analysis_id]
        return len(expired)

    def clear(self) -> None:
        """Remove all records (test utility)."""
        self._storage.clear()

    def count(self) -> int:
        """Number of stored records (test utility)."""
        return len(self._storage)
