"""
Quality metrics tracker.

Evaluates the recognition pipeline from stored corrections and events:
name accuracy, portion RMSE, calorie MAE and edit rate, plus the note
A/B comparison (meals with a user note vs. without).
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

import structlog

from mealsight.domain.learning.corrections import changes_portion, renames_item
from mealsight.domain.learning.models import CorrectionType
from mealsight.domain.learning.ports import (
    IAnalysisRepository,
    ICorrectionRepository,
    IMealLogRepository,
)
from mealsight.domain.metrics.models import (
    AnalysisEvent,
    EditRateComparison,
    EvaluationMetrics,
    EventType,
    MAEComparison,
    SuccessMetrics,
    SuccessThresholds,
    TargetEvaluation,
    TargetGap,
    TimeToSaveComparison,
)
from mealsight.domain.metrics.ports import IEventRepository, IEventSink

logger = structlog.get_logger(__name__)

# ═══════════════════════════════════════════════════════════
# TARGETS
# ═══════════════════════════════════════════════════════════

NAME_ACCURACY_TARGET = 85.0
PORTION_RMSE_TARGET = 40.0
CALORIES_MAE_TARGET = 50.0
EDIT_RATE_TARGET = 35.0

EDIT_RATE_REDUCTION_THRESHOLD = 10.0
MAE_IMPROVEMENT_THRESHOLD = 8.0
TIME_TO_SAVE_IMPROVEMENT_THRESHOLD = 15.0
NOTE_USAGE_THRESHOLD = 60.0

DEFAULT_COMPARISON_WINDOW = timedelta(days=14)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def evaluate_against_targets(metrics: EvaluationMetrics) -> TargetEvaluation:
    """Compare a metrics snapshot with the quality targets.

    Accuracy must be at least 85; portion RMSE at most 40; calorie MAE
    at most 50; edit rate at most 35. Each miss is reported with its gap.
    """
    gaps: List[TargetGap] = []

    if metrics.name_top1_accuracy < NAME_ACCURACY_TARGET:
        gaps.append(
            TargetGap(
                metric="Name Accuracy",
                target=NAME_ACCURACY_TARGET,
                actual=metrics.name_top1_accuracy,
                gap=NAME_ACCURACY_TARGET - metrics.name_top1_accuracy,
            )
        )

    if metrics.portion_rmse > PORTION_RMSE_TARGET:
        gaps.append(
            TargetGap(
                metric="Portion RMSE",
                target=PORTION_RMSE_TARGET,
                actual=metrics.portion_rmse,
                gap=metrics.portion_rmse - PORTION_RMSE_TARGET,
            )
        )

    if metrics.calories_mae > CALORIES_MAE_TARGET:
        gaps.append(
            TargetGap(
                metric="Calories MAE",
                target=CALORIES_MAE_TARGET,
                actual=metrics.calories_mae,
                gap=metrics.calories_mae - CALORIES_MAE_TARGET,
            )
        )

    if metrics.edit_rate > EDIT_RATE_TARGET:
        gaps.append(
            TargetGap(
                metric="Edit Rate",
                target=EDIT_RATE_TARGET,
                actual=metrics.edit_rate,
                gap=metrics.edit_rate - EDIT_RATE_TARGET,
            )
        )

    return TargetEvaluation(meets_targets=not gaps, gaps=gaps)


def check_success_thresholds(metrics: SuccessMetrics) -> SuccessThresholds:
    """Check the note feature against its success thresholds."""
    return SuccessThresholds(
        edit_rate_met=metrics.edit_rate_reduction >= EDIT_RATE_REDUCTION_THRESHOLD,
        mae_met=metrics.calories_mae_improvement >= MAE_IMPROVEMENT_THRESHOLD,
        time_to_save_met=metrics.time_to_save_improvement >= TIME_TO_SAVE_IMPROVEMENT_THRESHOLD,
        note_usage_met=metrics.note_usage_rate >= NOTE_USAGE_THRESHOLD,
    )


class MetricsTracker:
    """
    Computes quality metrics and records quality events.

    Example:
        >>> tracker = MetricsTracker(corrections, analyses, events, meal_logs, queue)
        >>> metrics = await tracker.compute_metrics(start, end)
        >>> evaluation = evaluate_against_targets(metrics)
        >>> evaluation.meets_targets
        True
    """

    def __init__(
        self,
        corrections: ICorrectionRepository,
        analyses: IAnalysisRepository,
        events: IEventRepository,
        meal_logs: IMealLogRepository,
        sink: Optional[IEventSink] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._corrections = corrections
        self._analyses = analyses
        self._events = events
        self._meal_logs = meal_logs
        self._sink = sink
        self._now = now

    # ═══════════════════════════════════════════════════════════
    # PIPELINE QUALITY
    # ═══════════════════════════════════════════════════════════

    async def calculate_name_accuracy(self, start: datetime, end: datetime) -> float:
        """
        (confirmed - name corrections) / confirmed x 100; 0 with no sample.

        A rename counts whatever else was edited alongside it, so ALL
        corrections that change the name are included.
        """
        confirmed = await self._analyses.count_confirmed(start, end)
        if confirmed == 0:
            return 0.0

        corrections = await self._corrections.list_in_range(start, end)
        renamed = [c for c in corrections if renames_item(c)]
        return max(confirmed - len(renamed), 0) / confirmed * 100

    async def calculate_portion_rmse(self, start: datetime, end: datetime) -> float:
        """RMSE of original vs. corrected portions over corrections that moved the portion."""
        corrections = await self._corrections.list_in_range(
            start, end, [CorrectionType.PORTION, CorrectionType.ALL]
        )
        squared = [
            (c.original_item.portion_grams - c.corrected_item.portion_grams) ** 2
            for c in corrections
            if changes_portion(c)
        ]
        return math.sqrt(_mean(squared)) if squared else 0.0

    async def calculate_calories_mae(self, start: datetime, end: datetime) -> float:
        """MAE of original vs. corrected calories over all corrections."""
        corrections = await self._corrections.list_in_range(start, end)
        return _mean(
            [abs(c.original_item.calories - c.corrected_item.calories) for c in corrections]
        )

    async def calculate_edit_rate(self, start: datetime, end: datetime) -> float:
        """Analyses touched by at least one correction, as % of confirmed."""
        confirmed = await self._analyses.count_confirmed(start, end)
        if confirmed == 0:
            return 0.0

        corrections = await self._corrections.list_in_range(start, end)
        edited = {c.analysis_id for c in corrections}
        return len(edited) / confirmed * 100

    async def compute_metrics(self, start: datetime, end: datetime) -> EvaluationMetrics:
        """
        All pipeline quality metrics for [start, end].

        Args:
            start: Range start (inclusive)
            end: Range end (inclusive)

        Returns:
            EvaluationMetrics snapshot

        Raises:
            RepositoryError: On storage failure
        """
        metrics = EvaluationMetrics(
            name_top1_accuracy=await self.calculate_name_accuracy(start, end),
            portion_rmse=await self.calculate_portion_rmse(start, end),
            calories_mae=await self.calculate_calories_mae(start, end),
            edit_rate=await self.calculate_edit_rate(start, end),
            sample_size=await self._analyses.count_confirmed(start, end),
        )

        logger.info(
            "Quality metrics computed",
            start=start.isoformat(),
            end=end.isoformat(),
            sample_size=metrics.sample_size,
        )
        return metrics

    # ═══════════════════════════════════════════════════════════
    # NOTE A/B COMPARISON
    # ═══════════════════════════════════════════════════════════

    def _window(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> Tuple[datetime, datetime]:
        end = end or self._now()
        start = start or end - DEFAULT_COMPARISON_WINDOW
        return start, end

    async def _split_by_note(
        self,
        event_type: EventType,
        field: str,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Tuple[List[float], List[float]]:
        start, end = self._window(start, end)
        events = await self._events.list_by_type(event_type, start, end)

        with_note = [float(e.event_data.get(field, 0)) for e in events if e.had_note]
        without_note = [float(e.event_data.get(field, 0)) for e in events if not e.had_note]
        return with_note, without_note

    async def calculate_edit_rate_comparison(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> EditRateComparison:
        """Average edits per meal with and without a note (last 14 days by default)."""
        with_note, without_note = await self._split_by_note(
            EventType.EDIT_COUNT, "edit_count", start, end
        )
        if not with_note and not without_note:
            return EditRateComparison()

        avg_with = _mean(with_note)
        avg_without = _mean(without_note)
        reduction = avg_without - avg_with
        percentage = reduction / avg_without * 100 if avg_without > 0 else 0.0

        return EditRateComparison(
            with_note=round(avg_with, 1),
            without_note=round(avg_without, 1),
            absolute_reduction=round(reduction, 1),
            percentage_reduction=round(percentage),
        )

    async def calculate_mae_comparison(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> MAEComparison:
        """Calorie MAE with and without a note."""
        with_note, without_note = await self._split_by_note(
            EventType.CALORIES_ACCURACY, "absolute_error", start, end
        )
        if not with_note and not without_note:
            return MAEComparison()

        mae_with = _mean(with_note)
        mae_without = _mean(without_note)
        improvement = (mae_without - mae_with) / mae_without * 100 if mae_without > 0 else 0.0

        return MAEComparison(
            with_note=round(mae_with),
            without_note=round(mae_without),
            improvement=round(improvement),
        )

    async def calculate_time_to_save_comparison(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> TimeToSaveComparison:
        """Capture-to-save time with a note, and its improvement over no note."""
        with_note, without_note = await self._split_by_note(
            EventType.TIME_TO_SAVE, "time_to_save_seconds", start, end
        )
        if not with_note and not without_note:
            return TimeToSaveComparison()

        avg_with = _mean(with_note)
        avg_without = _mean(without_note)
        improvement = (avg_without - avg_with) / avg_without * 100 if avg_without > 0 else 0.0

        return TimeToSaveComparison(avg_seconds=round(avg_with), improvement=round(improvement))

    async def calculate_note_usage_rate(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> float:
        """Percentage of photo meals saved with a context note."""
        start, end = self._window(start, end)
        logs = await self._meal_logs.list_in_range(start, end, source="photo")
        if not logs:
            return 0.0

        with_note = sum(1 for log in logs if log.context_note)
        return float(round(with_note / len(logs) * 100))

    async def get_success_metrics(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> SuccessMetrics:
        """Collect the note feature success figures."""
        edit_rate = await self.calculate_edit_rate_comparison(start, end)
        mae = await self.calculate_mae_comparison(start, end)
        time_to_save = await self.calculate_time_to_save_comparison(start, end)
        note_usage = await self.calculate_note_usage_rate(start, end)

        return SuccessMetrics(
            edit_rate_reduction=edit_rate.absolute_reduction,
            calories_mae_improvement=mae.improvement,
            time_to_save_improvement=time_to_save.improvement,
            note_usage_rate=note_usage,
        )

    # ═══════════════════════════════════════════════════════════
    # EVENT RECORDING (fire-and-forget)
    # ═══════════════════════════════════════════════════════════

    async def _record(self, event: AnalysisEvent) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.enqueue(event)
        except Exception:
            logger.error(
                "Failed to record event",
                event_type=event.event_type.value,
                user_id=event.user_id,
                exc_info=True,
            )

    async def track_meal_save_time(
        self,
        user_id: str,
        photo_ref: str,
        capture_time: datetime,
        save_time: datetime,
        had_note: bool,
    ) -> None:
        """Record capture-to-save time in seconds."""
        await self._record(
            AnalysisEvent(
                user_id=user_id,
                event_type=EventType.TIME_TO_SAVE,
                event_data={
                    "photo_ref": photo_ref,
                    "time_to_save_seconds": (save_time - capture_time).total_seconds(),
                    "had_note": had_note,
                },
                created_at=save_time,
            )
        )

    async def track_edit_count(
        self, user_id: str, meal_log_id: str, edit_count: int, had_note: bool
    ) -> None:
        """Record how many items the user edited before saving."""
        await self._record(
            AnalysisEvent(
                user_id=user_id,
                event_type=EventType.EDIT_COUNT,
                event_data={
                    "meal_log_id": meal_log_id,
                    "edit_count": edit_count,
                    "had_note": had_note,
                },
                created_at=self._now(),
            )
        )

    async def track_calories_accuracy(
        self,
        user_id: str,
        meal_log_id: str,
        ai_calories: float,
        final_calories: float,
        had_note: bool,
        gold_standard_calories: Optional[float] = None,
    ) -> None:
        """
        Record calorie error for a saved meal.

        Error is measured against the gold standard when one is known,
        otherwise between the AI estimate and the saved value.
        """
        if gold_standard_calories is not None:
            absolute_error = abs(final_calories - gold_standard_calories)
        else:
            absolute_error = abs(ai_calories - final_calories)

        await self._record(
            AnalysisEvent(
                user_id=user_id,
                event_type=EventType.CALORIES_ACCURACY,
                event_data={
                    "meal_log_id": meal_log_id,
                    "ai_calories": ai_calories,
                    "final_calories": final_calories,
                    "gold_standard_calories": gold_standard_calories,
                    "absolute_error": absolute_error,
                    "had_note": had_note,
                },
                created_at=self._now(),
            )
        )

    async def track(self, user_id: str, event_type: EventType, **data: object) -> None:
        """Record a pipeline telemetry event."""
        await self._record(
            AnalysisEvent(
                user_id=user_id,
                event_type=event_type,
                event_data=dict(data),
                created_at=self._now(),
            )
        )
