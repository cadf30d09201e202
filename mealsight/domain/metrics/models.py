"""
Quality metrics domain models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventType(str, Enum):
    """Analysis event kinds."""

    # Pipeline telemetry
    AI_ANALYSIS_STARTED = "ai_analysis_started"
    CACHE_HIT = "cache_hit"
    AI_ANALYSIS_COMPLETED = "ai_analysis_completed"
    AI_ANALYSIS_FAILED = "ai_analysis_failed"
    MEAL_SAVED = "meal_saved"

    # Note A/B quality tracking
    TIME_TO_SAVE = "time_to_save"
    EDIT_COUNT = "edit_count"
    CALORIES_ACCURACY = "calories_accuracy"


class AnalysisEvent(BaseModel):
    """
    One telemetry or quality event.

    Attributes:
        user_id: User the event belongs to
        event_type: Event kind
        event_data: Free-form payload (had_note, edit_count, ...)
        created_at: Event time (UTC)
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    event_type: EventType
    event_data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def had_note(self) -> bool:
        return bool(self.event_data.get("had_note"))


class EvaluationMetrics(BaseModel):
    """
    Pipeline quality over a date range.

    Attributes:
        name_top1_accuracy: % of confirmed analyses without a name correction
        portion_rmse: Root-mean-square portion error (grams)
        calories_mae: Mean absolute calorie error (kcal)
        edit_rate: % of confirmed analyses with at least one correction
        sample_size: Confirmed analyses in range
    """

    name_top1_accuracy: float = 0.0
    portion_rmse: float = 0.0
    calories_mae: float = 0.0
    edit_rate: float = 0.0
    sample_size: int = 0


class TargetGap(BaseModel):
    """A metric that misses its target."""

    metric: str
    target: float
    actual: float
    gap: float


class TargetEvaluation(BaseModel):
    """Result of comparing metrics to targets."""

    meets_targets: bool
    gaps: List[TargetGap] = Field(default_factory=list)


class EditRateComparison(BaseModel):
    """Average edits per meal, with vs. without a note."""

    with_note: float = 0.0
    without_note: float = 0.0
    absolute_reduction: float = 0.0
    percentage_reduction: float = 0.0


class MAEComparison(BaseModel):
    """Calorie MAE, with vs. without a note."""

    with_note: float = 0.0
    without_note: float = 0.0
    improvement: float = 0.0


class TimeToSaveComparison(BaseModel):
    """Capture-to-save time (seconds) with a note, and improvement %."""

    avg_seconds: float = 0.0
    improvement: float = 0.0


class SuccessMetrics(BaseModel):
    """Note feature success figures."""

    edit_rate_reduction: float = 0.0
    calories_mae_improvement: float = 0.0
    time_to_save_improvement: float = 0.0
    note_usage_rate: float = 0.0


class SuccessThresholds(BaseModel):
    """Which note feature success thresholds are met."""

    edit_rate_met: bool
    mae_met: bool
    time_to_save_met: bool
    note_usage_met: bool

    @property
    def all_met(self) -> bool:
        return self.edit_rate_met and self.mae_met and self.time_to_save_met and self.note_usage_met
