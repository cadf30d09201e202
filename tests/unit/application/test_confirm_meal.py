"""Unit tests for ConfirmMealCommandHandler."""

from datetime import timedelta
from typing import Any, Callable, List
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from mealsight.application.commands.confirm_meal import (
    ConfirmedItem,
    ConfirmMealCommand,
    ConfirmMealCommandHandler,
)
from mealsight.domain.confidence.save_gate import (
    ALL_LOW_CONFIDENCE_REASON,
    NO_ITEMS_REASON,
    SaveStatus,
)
from mealsight.domain.learning.models import AnalysisStatus, CorrectionType, InferenceRecord
from mealsight.domain.learning.service import LearningLoop
from mealsight.domain.metrics.models import AnalysisEvent, EventType
from mealsight.domain.metrics.tracker import MetricsTracker
from mealsight.domain.recognition.models import DetectedFoodItem
from mealsight.domain.shared.errors import (
    AnalysisNotFoundError,
    RepositoryError,
    SaveBlockedError,
    ValidationError,
)
from mealsight.infrastructure.persistence.factory import Repositories


@pytest.fixture
def dal(make_item: Callable[..., DetectedFoodItem]) -> DetectedFoodItem:
    return make_item(name="dal", confidence=45)


@pytest.fixture
def rice(make_item: Callable[..., DetectedFoodItem]) -> DetectedFoodItem:
    return make_item(
        name="rice",
        confidence=85,
        portion_grams=150,
        calories=200,
        protein_grams=4,
        carbs_grams=44,
        fat_grams=0.5,
    )


@pytest_asyncio.fixture
async def record(
    repositories: Repositories,
    make_record: Callable[..., InferenceRecord],
    dal: DetectedFoodItem,
    rice: DetectedFoodItem,
) -> InferenceRecord:
    record = make_record(items=[dal, rice], user_note="2 katoris dal")
    await repositories.analyses.insert(record)
    return record


@pytest.fixture
def sink() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def handler(repositories: Repositories, sink: AsyncMock, clock: Any) -> ConfirmMealCommandHandler:
    learning = LearningLoop(
        repositories.corrections, repositories.analyses, repositories.meal_logs, now=clock
    )
    tracker = MetricsTracker(
        repositories.corrections,
        repositories.analyses,
        repositories.events,
        repositories.meal_logs,
        sink=sink,
        now=clock,
    )
    return ConfirmMealCommandHandler(
        repositories.analyses, repositories.meal_logs, learning, tracker, now=clock
    )


def _events(sink: AsyncMock) -> List[AnalysisEvent]:
    return [call.args[0] for call in sink.enqueue.await_args_list]


class TestConfirmUnchanged:
    @pytest.mark.asyncio
    async def test_saves_with_warning(
        self,
        handler: ConfirmMealCommandHandler,
        record: InferenceRecord,
        repositories: Repositories,
        dal: DetectedFoodItem,
        rice: DetectedFoodItem,
        clock: Any,
    ) -> None:
        result = await handler.handle(
            ConfirmMealCommand(
                user_id="user_123",
                analysis_id=record.analysis_id,
                items=[ConfirmedItem(dal, 0), ConfirmedItem(rice, 1)],
            )
        )

        assert result.save_decision.status == SaveStatus.WARN
        assert result.save_decision.warning == "1 item has low confidence. Review recommended."
        assert result.corrections == []
        assert result.edit_count == 0

        stored = await repositories.analyses.get_by_id(record.analysis_id)
        assert stored is not None
        assert stored.status == AnalysisStatus.CONFIRMED
        assert stored.confirmed_at == clock()

        (entry,) = await repositories.meal_logs.list_recent_by_user("user_123", 10)
        assert entry.meal_log_id == result.meal_log_id
        assert entry.food_names == ["dal", "rice"]
        assert entry.context_note == "2 katoris dal"
        assert entry.analysis_id == record.analysis_id
        assert entry.source == "photo"

    @pytest.mark.asyncio
    async def test_events_recorded(
        self,
        handler: ConfirmMealCommandHandler,
        record: InferenceRecord,
        sink: AsyncMock,
        dal: DetectedFoodItem,
        rice: DetectedFoodItem,
    ) -> None:
        await handler.handle(
            ConfirmMealCommand(
                user_id="user_123",
                analysis_id=record.analysis_id,
                items=[ConfirmedItem(dal, 0), ConfirmedItem(rice, 1)],
            )
        )

        events = _events(sink)
        assert [e.event_type for e in events] == [
            EventType.EDIT_COUNT,
            EventType.CALORIES_ACCURACY,
            EventType.MEAL_SAVED,
        ]
        assert all(e.had_note for e in events)
        assert events[1].event_data["absolute_error"] == 0


class TestConfirmWithEdits:
    @pytest.mark.asyncio
    async def test_rename_creates_name_correction(
        self,
        handler: ConfirmMealCommandHandler,
        record: InferenceRecord,
        repositories: Repositories,
        dal: DetectedFoodItem,
        rice: DetectedFoodItem,
    ) -> None:
        result = await handler.handle(
            ConfirmMealCommand(
                user_id="user_123",
                analysis_id=record.analysis_id,
                items=[ConfirmedItem(dal.corrected(name="dal fry"), 0), ConfirmedItem(rice, 1)],
            )
        )

        (correction,) = result.corrections
        assert correction.correction_type == CorrectionType.NAME
        assert correction.original_name == "dal"
        assert correction.corrected_name == "dal fry"
        assert correction.analysis_id == record.analysis_id
        assert result.edit_count == 1

        stored = await repositories.corrections.list_recent_by_user("user_123", 10)
        assert [c.corrected_name for c in stored] == ["dal fry"]

    @pytest.mark.asyncio
    async def test_portion_edit_tracks_calorie_error(
        self,
        handler: ConfirmMealCommandHandler,
        record: InferenceRecord,
        sink: AsyncMock,
        dal: DetectedFoodItem,
        rice: DetectedFoodItem,
    ) -> None:
        bigger = dal.corrected(
            portion_grams=300, calories=345, protein_grams=18, carbs_grams=45, fat_grams=9
        )

        result = await handler.handle(
            ConfirmMealCommand(
                user_id="user_123",
                analysis_id=record.analysis_id,
                items=[ConfirmedItem(bigger, 0), ConfirmedItem(rice, 1)],
            )
        )

        assert result.corrections[0].correction_type == CorrectionType.PORTION
        accuracy = next(e for e in _events(sink) if e.event_type == EventType.CALORIES_ACCURACY)
        assert accuracy.event_data["ai_calories"] == 430
        assert accuracy.event_data["final_calories"] == 545
        assert accuracy.event_data["absolute_error"] == 115

    @pytest.mark.asyncio
    async def test_added_and_removed_items_count_as_edits(
        self,
        handler: ConfirmMealCommandHandler,
        record: InferenceRecord,
        make_item: Callable[..., DetectedFoodItem],
        rice: DetectedFoodItem,
    ) -> None:
        raita = make_item(name="raita", confidence=100, portion_grams=100, calories=60)

        result = await handler.handle(
            ConfirmMealCommand(
                user_id="user_123",
                analysis_id=record.analysis_id,
                items=[ConfirmedItem(rice, 1), ConfirmedItem(raita)],
            )
        )

        assert result.corrections == []
        assert result.edit_count == 2
        assert result.save_decision.status == SaveStatus.ALLOW

    @pytest.mark.asyncio
    async def test_time_to_save_tracked_with_capture_time(
        self,
        handler: ConfirmMealCommandHandler,
        record: InferenceRecord,
        sink: AsyncMock,
        dal: DetectedFoodItem,
        rice: DetectedFoodItem,
        clock: Any,
    ) -> None:
        await handler.handle(
            ConfirmMealCommand(
                user_id="user_123",
                analysis_id=record.analysis_id,
                items=[ConfirmedItem(dal, 0), ConfirmedItem(rice, 1)],
                photo_ref="photo_42",
                captured_at=clock() - timedelta(seconds=25),
            )
        )

        timing = next(e for e in _events(sink) if e.event_type == EventType.TIME_TO_SAVE)
        assert timing.event_data["photo_ref"] == "photo_42"
        assert timing.event_data["time_to_save_seconds"] == 25.0


class TestConfirmRejected:
    @pytest.mark.asyncio
    async def test_all_low_confidence_blocked(
        self,
        handler: ConfirmMealCommandHandler,
        record: InferenceRecord,
        repositories: Repositories,
        dal: DetectedFoodItem,
    ) -> None:
        with pytest.raises(SaveBlockedError) as exc_info:
            await handler.handle(
                ConfirmMealCommand(
                    user_id="user_123",
                    analysis_id=record.analysis_id,
                    items=[ConfirmedItem(dal, 0)],
                )
            )

        assert exc_info.value.reason == ALL_LOW_CONFIDENCE_REASON
        stored = await repositories.analyses.get_by_id(record.analysis_id)
        assert stored is not None
        assert stored.status == AnalysisStatus.ANALYZED
        assert repositories.meal_logs.count() == 0  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_no_items_blocked(
        self, handler: ConfirmMealCommandHandler, record: InferenceRecord
    ) -> None:
        with pytest.raises(SaveBlockedError) as exc_info:
            await handler.handle(
                ConfirmMealCommand(user_id="user_123", analysis_id=record.analysis_id, items=[])
            )

        assert exc_info.value.reason == NO_ITEMS_REASON

    @pytest.mark.asyncio
    async def test_unknown_analysis(self, handler: ConfirmMealCommandHandler) -> None:
        with pytest.raises(AnalysisNotFoundError):
            await handler.handle(
                ConfirmMealCommand(user_id="user_123", analysis_id="analysis_missing")
            )

    @pytest.mark.asyncio
    async def test_other_users_analysis(
        self, handler: ConfirmMealCommandHandler, record: InferenceRecord, rice: DetectedFoodItem
    ) -> None:
        with pytest.raises(AnalysisNotFoundError):
            await handler.handle(
                ConfirmMealCommand(
                    user_id="user_456",
                    analysis_id=record.analysis_id,
                    items=[ConfirmedItem(rice, 1)],
                )
            )

    @pytest.mark.asyncio
    async def test_unknown_item_index(
        self, handler: ConfirmMealCommandHandler, record: InferenceRecord, rice: DetectedFoodItem
    ) -> None:
        with pytest.raises(ValidationError):
            await handler.handle(
                ConfirmMealCommand(
                    user_id="user_123",
                    analysis_id=record.analysis_id,
                    items=[ConfirmedItem(rice, 5)],
                )
            )


class TestConfirmStorageFailure:
    @pytest.mark.asyncio
    async def test_meal_log_failure_leaves_no_side_effects(
        self,
        record: InferenceRecord,
        repositories: Repositories,
        sink: AsyncMock,
        dal: DetectedFoodItem,
        rice: DetectedFoodItem,
        clock: Any,
    ) -> None:
        meal_logs = AsyncMock()
        meal_logs.insert.side_effect = RepositoryError("connection lost")
        learning = LearningLoop(
            repositories.corrections, repositories.analyses, meal_logs, now=clock
        )
        tracker = MetricsTracker(
            repositories.corrections,
            repositories.analyses,
            repositories.events,
            meal_logs,
            sink=sink,
            now=clock,
        )
        handler = ConfirmMealCommandHandler(
            repositories.analyses, meal_logs, learning, tracker, now=clock
        )
        renamed = dal.model_copy(update={"name": "dal tadka"})

        with pytest.raises(RepositoryError):
            await handler.handle(
                ConfirmMealCommand(
                    user_id="user_123",
                    analysis_id=record.analysis_id,
                    items=[ConfirmedItem(renamed, 0), ConfirmedItem(rice, 1)],
                )
            )

        stored = await repositories.analyses.get_by_id(record.analysis_id)
        assert stored is not None
        assert stored.status == AnalysisStatus.ANALYZED
        assert repositories.corrections.count() == 0
        assert _events(sink) == []
