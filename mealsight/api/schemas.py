"""HTTP request/response models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from mealsight.application.commands.analyze_photo import PhotoAnalysisResult
from mealsight.application.commands.confirm_meal import ConfirmMealResult
from mealsight.domain.recognition.models import MealType


class AnalyzePhotoRequest(BaseModel):
    """
    Body of POST /analyze-photo.

    Required fields are Optional here so that their absence is reported
    as 400 with a specific message rather than a schema error.
    """

    image_url: Optional[str] = None
    user_id: Optional[str] = None
    aux_text: Optional[str] = Field(None, description="Free-text user note")
    meal_type: Optional[MealType] = None
    user_region: Optional[str] = None
    dietary_prefs: Optional[List[str]] = None
    preferences: Optional[Dict[str, Any]] = Field(
        None, description="Stored preferences payload (validated, unknown keys rejected)"
    )


class ItemPayload(BaseModel):
    """A food item on the wire (portion in grams, confidence 0 - 100)."""

    name: str
    portion: float = Field(..., ge=0)
    calories: float = Field(0.0, ge=0)
    protein: float = Field(0.0, ge=0)
    carbs: float = Field(0.0, ge=0)
    fat: float = Field(0.0, ge=0)
    confidence: float = Field(..., ge=0, le=100)


class AssessmentPayload(BaseModel):
    level: str
    action: str
    message: str
    requires_user_action: bool
    show_suggestions: bool
    show_typeahead: bool


class AssessedItemPayload(ItemPayload):
    note_influence: str = "none"
    assessment: AssessmentPayload


class SavePayload(BaseModel):
    status: str
    can_save: bool
    reason: Optional[str] = None
    warning: Optional[str] = None


class AnalyzePhotoResponse(BaseModel):
    analysis_id: str
    image_hash: str
    user_note: Optional[str] = None
    items: List[AssessedItemPayload]
    overall_confidence: float
    explanation: Optional[str] = None
    save: SavePayload
    from_cache: bool
    latency_ms: int

    @classmethod
    def from_result(cls, result: PhotoAnalysisResult) -> "AnalyzePhotoResponse":
        decision = result.save_decision
        return cls(
            analysis_id=result.analysis_id,
            image_hash=result.image_hash,
            user_note=result.user_note,
            items=[
                AssessedItemPayload(
                    name=assessed.item.name,
                    portion=assessed.item.portion_grams,
                    calories=assessed.item.calories,
                    protein=assessed.item.protein_grams,
                    carbs=assessed.item.carbs_grams,
                    fat=assessed.item.fat_grams,
                    confidence=assessed.item.confidence,
                    note_influence=assessed.item.note_influence.value,
                    assessment=AssessmentPayload(
                        level=assessed.assessment.level.value,
                        action=assessed.assessment.action.value,
                        message=assessed.assessment.message,
                        requires_user_action=assessed.assessment.requires_user_action,
                        show_suggestions=assessed.assessment.show_suggestions,
                        show_typeahead=assessed.assessment.show_typeahead,
                    ),
                )
                for assessed in result.items
            ],
            overall_confidence=result.overall_confidence,
            explanation=result.explanation,
            save=SavePayload(
                status=decision.status.value,
                can_save=decision.can_save,
                reason=decision.reason,
                warning=decision.warning,
            ),
            from_cache=result.from_cache,
            latency_ms=result.latency_ms,
        )


class ConfirmItemPayload(ItemPayload):
    original_index: Optional[int] = Field(
        None, ge=0, description="Index of the detected item this one edits; omit for new items"
    )


class ConfirmMealRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    analysis_id: str = Field(..., min_length=1)
    items: List[ConfirmItemPayload] = Field(default_factory=list)
    photo_ref: Optional[str] = None
    captured_at: Optional[datetime] = None


class ConfirmMealResponse(BaseModel):
    meal_log_id: str
    status: str
    warning: Optional[str] = None
    corrections: List[str]
    edit_count: int

    @classmethod
    def from_result(cls, result: ConfirmMealResult) -> "ConfirmMealResponse":
        return cls(
            meal_log_id=result.meal_log_id,
            status=result.save_decision.status.value,
            warning=result.save_decision.warning,
            corrections=[c.correction_type.value for c in result.corrections],
            edit_count=result.edit_count,
        )


class ErrorResponse(BaseModel):
    """Error body; `retry` tells the client to offer a retry action."""

    error: str
    message: str
    retry: bool = False
