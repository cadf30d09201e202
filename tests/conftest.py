"""Shared test fixtures.

Everything here is in-memory: no network, no MongoDB, no real sleeps.
Time-dependent code gets a controllable clock and retry code gets a
recording sleep.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from mealsight.domain.learning.models import (
    CorrectionRecord,
    CorrectionType,
    InferenceRecord,
    MealLogEntry,
)
from mealsight.domain.recognition.models import DetectedFoodItem
from mealsight.infrastructure.config import Settings
from mealsight.infrastructure.persistence.factory import (
    Repositories,
    create_in_memory_repositories,
)

FIXED_NOW = datetime(2025, 11, 12, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Controllable clock: call it for the current time, advance() to move it."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


class RecordingSleep:
    """Awaitable sleep that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def build_item(
    name: str = "dal",
    confidence: float = 45.0,
    portion_grams: float = 200.0,
    calories: float = 230.0,
    protein_grams: float = 12.0,
    carbs_grams: float = 30.0,
    fat_grams: float = 6.0,
    **extra: Any,
) -> DetectedFoodItem:
    return DetectedFoodItem(
        name=name,
        confidence=confidence,
        portion_grams=portion_grams,
        calories=calories,
        protein_grams=protein_grams,
        carbs_grams=carbs_grams,
        fat_grams=fat_grams,
        **extra,
    )


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_item() -> Callable[..., DetectedFoodItem]:
    """Factory for DetectedFoodItem with dal-like defaults."""
    return build_item


@pytest.fixture
def make_correction(clock: Clock) -> Callable[..., CorrectionRecord]:
    """Factory for CorrectionRecord (a rename by default)."""

    def _make(
        original: str = "dal",
        corrected: str = "dal fry",
        user_id: str = "user_123",
        analysis_id: str = "analysis_000000000001",
        correction_type: CorrectionType = CorrectionType.NAME,
        original_portion: float = 200.0,
        corrected_portion: float = 200.0,
        original_calories: float = 230.0,
        corrected_calories: float = 230.0,
        created_at: Optional[datetime] = None,
    ) -> CorrectionRecord:
        return CorrectionRecord(
            analysis_id=analysis_id,
            user_id=user_id,
            original_item=build_item(
                name=original, portion_grams=original_portion, calories=original_calories
            ),
            corrected_item=build_item(
                name=corrected, portion_grams=corrected_portion, calories=corrected_calories
            ),
            correction_type=correction_type,
            created_at=created_at or clock(),
        )

    return _make


@pytest.fixture
def make_record(clock: Clock) -> Callable[..., InferenceRecord]:
    """Factory for InferenceRecord (one low-confidence dal by default)."""

    def _make(**overrides: Any) -> InferenceRecord:
        data: Dict[str, Any] = {
            "user_id": "user_123",
            "items": [build_item()],
            "overall_confidence": 45.0,
            "model_version": "gpt-4o",
            "latency_ms": 2300,
            "created_at": clock(),
        }
        data.update(overrides)
        return InferenceRecord(**data)

    return _make


@pytest.fixture
def make_meal_log(clock: Clock) -> Callable[..., MealLogEntry]:
    def _make(**overrides: Any) -> MealLogEntry:
        data: Dict[str, Any] = {
            "user_id": "user_123",
            "food_names": ["dal", "rice"],
            "logged_at": clock(),
        }
        data.update(overrides)
        return MealLogEntry(**data)

    return _make


@pytest.fixture
def repositories() -> Repositories:
    return create_in_memory_repositories()


@pytest.fixture
def settings() -> Settings:
    """In-memory storage with every event flushed immediately."""
    return Settings(
        openai_api_key=None,
        storage_backend="memory",
        event_batch_size=1,
        retry_initial_delay_ms=10,
        retry_max_delay_ms=40,
    )
