"""
Domain models for food recognition.

Models for AI-powered food identification from meal photos.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NoteInfluence(str, Enum):
    """Which part of an item the user's note shaped."""

    NONE = "none"
    NAME = "name"
    PORTION = "portion"
    BOTH = "both"


class MealType(str, Enum):
    """Meal slot hint sent to the oracle."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class DetectedFoodItem(BaseModel):
    """
    Single food item detected by the inference oracle.

    Immutable: a user edit produces a new item through `corrected()`,
    never an in-place change.

    Attributes:
        name: Food name as shown to the user (e.g., "dal")
        portion_grams: Estimated portion in grams
        unit: Display unit (g, ml, piece)
        calories: Energy in kcal
        protein_grams: Protein in grams
        carbs_grams: Carbohydrates in grams
        fat_grams: Fat in grams
        confidence: Detection confidence (0 - 100)
        note_influence: Whether the user note shaped name and/or portion
        food_id: Food database reference once mapped

    Example:
        >>> item = DetectedFoodItem(
        ...     name="dal",
        ...     portion_grams=200.0,
        ...     calories=230,
        ...     protein_grams=12.0,
        ...     carbs_grams=30.0,
        ...     fat_grams=6.0,
        ...     confidence=45,
        ... )
        >>> assert item.corrected(name="dal fry").name == "dal fry"
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    name: str = Field(..., min_length=1, max_length=200, description="Food name")
    portion_grams: float = Field(..., ge=0, description="Portion in grams")
    unit: str = Field("g", description="Display unit")
    calories: float = Field(0.0, ge=0, description="Energy in kcal")
    protein_grams: float = Field(0.0, ge=0, description="Protein in g")
    carbs_grams: float = Field(0.0, ge=0, description="Carbohydrates in g")
    fat_grams: float = Field(0.0, ge=0, description="Fat in g")
    confidence: float = Field(..., ge=0.0, le=100.0, description="Confidence 0-100")
    note_influence: NoteInfluence = Field(NoteInfluence.NONE)
    food_id: Optional[str] = Field(None, description="Food database reference")

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        """Ensure not just whitespace."""
        if not v.strip():
            raise ValueError("Food name cannot be empty or whitespace")
        return v.strip()

    def corrected(self, **changes: Any) -> DetectedFoodItem:
        """Return a validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        return DetectedFoodItem(**data)


class OracleRequest(BaseModel):
    """
    Request payload for the inference oracle.

    Carries the photo reference plus everything used to bias the prompt:
    user note, meal slot, region, dietary preferences and the learned
    synonym map / portion priors.
    """

    model_config = ConfigDict(frozen=True)

    image_url: str = Field(..., min_length=1, description="Photo URL or data URI")
    user_note: Optional[str] = Field(None, description="Free-text note from the user")
    meal_type: Optional[MealType] = None
    region: Optional[str] = None
    dietary_prefs: List[str] = Field(default_factory=list)
    synonym_map: Dict[str, str] = Field(default_factory=dict)
    portion_priors: Dict[str, float] = Field(default_factory=dict)
    recent_foods: List[str] = Field(default_factory=list)

    @field_validator("user_note")
    @classmethod
    def blank_note_is_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat a whitespace-only note as no note."""
        if v is None or not v.strip():
            return None
        return v.strip()


class OracleResponse(BaseModel):
    """
    Parsed oracle answer.

    Attributes:
        items: Detected food items (confidence already on the 0-100 scale)
        overall_confidence: Meal-level confidence (0 - 100)
        explanation: Optional model reasoning
        raw_response: Raw model text (for debugging)
        model_version: Model that produced the answer
    """

    model_config = ConfigDict(protected_namespaces=())

    items: List[DetectedFoodItem] = Field(default_factory=list)
    overall_confidence: float = Field(0.0, ge=0.0, le=100.0)
    explanation: Optional[str] = None
    raw_response: Optional[str] = None
    model_version: str = "unknown"
