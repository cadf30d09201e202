"""
Repository interfaces for the learning loop.

The core needs only keyed lookup, insert, bounded range query and
delete-by-predicate; any store offering those can back these ports.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from mealsight.domain.learning.models import (
    CorrectionRecord,
    CorrectionType,
    InferenceRecord,
    MealLogEntry,
)


@runtime_checkable
class IAnalysisRepository(Protocol):
    """
    Repository interface for inference records.

    Inference records double as analysis cache entries.

    Example:
        >>> repository = InMemoryAnalysisRepository()
        >>> await repository.insert(record)
        >>> assert await repository.get_by_id(record.analysis_id) == record
    """

    async def insert(self, record: InferenceRecord) -> None:
        """
        Store a new inference record.

        Raises:
            RepositoryError: On storage failure
        """
        ...

    async def get_by_id(self, analysis_id: str) -> Optional[InferenceRecord]:
        """Retrieve a record by analysis id, or None."""
        ...

    async def mark_confirmed(self, analysis_id: str, confirmed_at: datetime) -> bool:
        """
        Mark a record confirmed by its user.

        Returns:
            True if the record existed
        """
        ...

    async def attach_image_hash(self, analysis_id: str, image_hash: str) -> bool:
        """
        Make a record findable by image hash.

        Returns:
            True if the record existed
        """
        ...

    async def find_latest(
        self,
        user_id: str,
        image_hash: str,
        user_note: Optional[str],
        since: datetime,
    ) -> Optional[InferenceRecord]:
        """
        Most recent record for (user, hash, note) created at or after `since`.

        Note matching is exact, and None only matches None.
        """
        ...

    async def list_by_user(self, user_id: str, since: datetime) -> List[InferenceRecord]:
        """Records of one user created at or after `since`, newest first."""
        ...

    async def list_by_model_version(
        self, model_version: str, since: datetime
    ) -> List[InferenceRecord]:
        """Records produced by a model version at or after `since`."""
        ...

    async def count_confirmed(self, start: datetime, end: datetime) -> int:
        """Count confirmed records created in [start, end]."""
        ...

    async def delete_older_than(self, user_id: str, cutoff: datetime) -> int:
        """
        Delete a user's records created before `cutoff`.

        Returns:
            Number of records deleted
        """
        ...


@runtime_checkable
class ICorrectionRepository(Protocol):
    """
    Repository interface for correction records (append-only).
    """

    async def append(self, correction: CorrectionRecord) -> None:
        """
        Append a correction.

        Raises:
            RepositoryError: On storage failure
        """
        ...

    async def list_recent_by_user(self, user_id: str, limit: int) -> List[CorrectionRecord]:
        """A user's most recent corrections, newest first."""
        ...

    async def list_by_user_and_type(
        self, user_id: str, correction_type: CorrectionType, limit: int
    ) -> List[CorrectionRecord]:
        """A user's most recent corrections of one type, newest first."""
        ...

    async def list_in_range(
        self,
        start: datetime,
        end: datetime,
        correction_types: Optional[Sequence[CorrectionType]] = None,
    ) -> List[CorrectionRecord]:
        """Corrections created in [start, end], optionally filtered by type."""
        ...

    async def list_by_analysis_ids(self, analysis_ids: Sequence[str]) -> List[CorrectionRecord]:
        """Corrections attached to any of the given analyses."""
        ...

    async def list_recent(self, limit: int) -> List[CorrectionRecord]:
        """Most recent corrections across all users, newest first."""
        ...


@runtime_checkable
class IMealLogRepository(Protocol):
    """
    Repository interface for saved meal logs.
    """

    async def insert(self, entry: MealLogEntry) -> None:
        """
        Store a saved meal.

        Raises:
            RepositoryError: On storage failure
        """
        ...

    async def list_recent_by_user(self, user_id: str, limit: int) -> List[MealLogEntry]:
        """A user's most recent meals, newest first."""
        ...

    async def list_in_range(
        self, start: datetime, end: datetime, source: Optional[str] = None
    ) -> List[MealLogEntry]:
        """Meals logged in [start, end], optionally filtered by source."""
        ...
