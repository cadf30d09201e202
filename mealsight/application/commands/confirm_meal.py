"""Confirm meal command and handler.

Step 2 of the photo flow: the user saves the (possibly edited) items.
The save gate runs first; edits become correction records for the
learning loop and quality events for the metrics tracker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog

from mealsight.domain.confidence.save_gate import SaveDecision, SaveGate
from mealsight.domain.learning.corrections import diff_items
from mealsight.domain.learning.models import CorrectionRecord, MealLogEntry
from mealsight.domain.learning.ports import IAnalysisRepository, IMealLogRepository
from mealsight.domain.learning.service import LearningLoop
from mealsight.domain.metrics.models import EventType
from mealsight.domain.metrics.tracker import MetricsTracker
from mealsight.domain.recognition.models import DetectedFoodItem
from mealsight.domain.shared.errors import (
    AnalysisNotFoundError,
    SaveBlockedError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConfirmedItem:
    """
    An item as the user saves it.

    Attributes:
        item: Final item
        original_index: Position of the AI item it was derived from,
            None for an item the user added
    """

    item: DetectedFoodItem
    original_index: Optional[int] = None


@dataclass(frozen=True)
class ConfirmMealCommand:
    """
    Command: confirm and save an analyzed meal.

    AI items not referenced by any confirmed item count as removed.

    Attributes:
        user_id: User ID (for authorization)
        analysis_id: Analysis being confirmed
        items: Final items
        photo_ref: Photo reference for time-to-save tracking
        captured_at: When the photo was taken (enables time-to-save)
    """

    user_id: str
    analysis_id: str
    items: List[ConfirmedItem] = field(default_factory=list)
    photo_ref: Optional[str] = None
    captured_at: Optional[datetime] = None


@dataclass(frozen=True)
class ConfirmMealResult:
    """
    Outcome of a successful save.

    Attributes:
        meal_log_id: Id of the logged meal
        save_decision: ALLOW or WARN verdict (with warning text)
        corrections: Correction records emitted for edited items
        edit_count: Edited, added and removed items
    """

    meal_log_id: str
    save_decision: SaveDecision
    corrections: List[CorrectionRecord]
    edit_count: int


class ConfirmMealCommandHandler:
    """Handler for ConfirmMealCommand."""

    def __init__(
        self,
        analyses: IAnalysisRepository,
        meal_logs: IMealLogRepository,
        learning: LearningLoop,
        tracker: MetricsTracker,
        save_gate: Optional[SaveGate] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            analyses: Inference record repository
            meal_logs: Meal log repository
            learning: Learning loop (correction sink)
            tracker: Metrics tracker (quality events)
            save_gate: Save verdict evaluator
            now: Clock (injectable for tests)
        """
        self._analyses = analyses
        self._meal_logs = meal_logs
        self._learning = learning
        self._tracker = tracker
        self._save_gate = save_gate or SaveGate()
        self._now = now

    async def handle(self, command: ConfirmMealCommand) -> ConfirmMealResult:
        """
        Execute meal confirmation.

        Flow:
        1. Load analysis and verify ownership
        2. Run the save gate on the final items
        3. Diff each edited item against its original (one correction each)
        4. Log the meal, then mark the analysis confirmed and store corrections
        5. Record quality events (edit count, calorie error, time to save)

        Args:
            command: ConfirmMealCommand

        Returns:
            ConfirmMealResult

        Raises:
            AnalysisNotFoundError: Unknown analysis or another user's analysis
            ValidationError: Item references a non-existent AI item
            SaveBlockedError: Save gate blocked (reason is user-facing)
            RepositoryError: Meal log could not be written (nothing else
                is recorded, so the call can be retried)
        """
        record = await self._analyses.get_by_id(command.analysis_id)
        if record is None or record.user_id != command.user_id:
            raise AnalysisNotFoundError(f"Analysis {command.analysis_id} not found")

        originals = record.items
        for confirmed in command.items:
            index = confirmed.original_index
            if index is not None and not 0 <= index < len(originals):
                raise ValidationError(
                    f"Item references unknown detected item {index} "
                    f"(analysis has {len(originals)})"
                )

        final_items = [confirmed.item for confirmed in command.items]
        decision = self._save_gate.evaluate(final_items)
        if not decision.can_save:
            reason = decision.reason or "Meal cannot be saved"
            logger.info(
                "Meal save blocked",
                user_id=command.user_id,
                analysis_id=command.analysis_id,
                reason=reason,
            )
            raise SaveBlockedError(reason)

        now = self._now()
        corrections: List[CorrectionRecord] = []
        referenced = set()
        added = 0

        for confirmed in command.items:
            if confirmed.original_index is None:
                added += 1
                continue

            referenced.add(confirmed.original_index)
            original = originals[confirmed.original_index]
            correction_type = diff_items(original, confirmed.item)
            if correction_type is None:
                continue

            corrections.append(
                CorrectionRecord(
                    analysis_id=record.analysis_id,
                    user_id=command.user_id,
                    original_item=original,
                    corrected_item=confirmed.item,
                    correction_type=correction_type,
                    created_at=now,
                )
            )

        removed = len(originals) - len(referenced)
        edit_count = len(corrections) + added + removed

        had_note = record.user_note is not None
        entry = MealLogEntry(
            user_id=command.user_id,
            source="photo",
            context_note=record.user_note,
            food_names=[item.name for item in final_items],
            analysis_id=record.analysis_id,
            logged_at=now,
        )
        # Nothing else is written unless the meal itself is logged
        await self._meal_logs.insert(entry)

        if not await self._analyses.mark_confirmed(record.analysis_id, now):
            logger.warning("Analysis vanished before confirmation", analysis_id=record.analysis_id)

        for correction in corrections:
            await self._learning.store_correction_feedback(correction)

        await self._tracker.track_edit_count(
            command.user_id, entry.meal_log_id, edit_count, had_note
        )
        await self._tracker.track_calories_accuracy(
            command.user_id,
            entry.meal_log_id,
            ai_calories=sum(item.calories for item in originals),
            final_calories=sum(item.calories for item in final_items),
            had_note=had_note,
        )
        if command.captured_at is not None:
            await self._tracker.track_meal_save_time(
                command.user_id,
                command.photo_ref or record.analysis_id,
                capture_time=command.captured_at,
                save_time=now,
                had_note=had_note,
            )
        await self._tracker.track(
            command.user_id,
            EventType.MEAL_SAVED,
            meal_log_id=entry.meal_log_id,
            analysis_id=record.analysis_id,
            item_count=len(final_items),
            edit_count=edit_count,
            had_note=had_note,
        )

        logger.info(
            "Meal confirmed",
            user_id=command.user_id,
            analysis_id=record.analysis_id,
            meal_log_id=entry.meal_log_id,
            item_count=len(final_items),
            corrections=len(corrections),
            edit_count=edit_count,
            status=decision.status.value,
        )

        return ConfirmMealResult(
            meal_log_id=entry.meal_log_id,
            save_decision=decision,
            corrections=corrections,
            edit_count=edit_count,
        )
