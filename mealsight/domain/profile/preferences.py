"""
User preferences payload.

Profile data arrives as loosely-typed JSON from the client or the user
store. It is parsed here, at the boundary, into a strict model; an
unexpected shape is rejected instead of trusted.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from mealsight.domain.recognition.prompts import DEFAULT_REGION
from mealsight.domain.shared.errors import ValidationError


class DietaryPattern(str, Enum):
    """Declared eating pattern."""

    VEGETARIAN = "vegetarian"
    NON_VEGETARIAN = "non_vegetarian"
    VEGAN = "vegan"
    PESCATARIAN = "pescatarian"


class UserPreferences(BaseModel):
    """
    Validated user preferences used to bias recognition.

    Accepts snake_case or camelCase keys. Unknown keys are rejected.

    Attributes:
        region: Regional cuisine context (default "India" when unset)
        dietary_pattern: Declared eating pattern
        dietary_prefs: Free-form preference tags (e.g., "jain", "low-oil")
        allergies: Declared allergies
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    region: Optional[str] = Field(None, max_length=100)
    dietary_pattern: Optional[DietaryPattern] = None
    dietary_prefs: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)

    @field_validator("region")
    @classmethod
    def blank_region_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("dietary_prefs", "allergies")
    @classmethod
    def drop_blank_tags(cls, v: List[str]) -> List[str]:
        return [tag.strip() for tag in v if tag and tag.strip()]

    @property
    def effective_region(self) -> str:
        return self.region or DEFAULT_REGION

    def prompt_dietary_prefs(self) -> List[str]:
        """Dietary context as prompt tags: pattern, free-form tags, allergies."""
        prefs: List[str] = []
        if self.dietary_pattern is not None:
            prefs.append(self.dietary_pattern.value)
        prefs.extend(self.dietary_prefs)
        prefs.extend(f"allergic to {allergy}" for allergy in self.allergies)
        return prefs


def parse_user_preferences(payload: Any) -> UserPreferences:
    """
    Parse an untrusted preferences payload.

    Args:
        payload: Decoded JSON (dict) or None for "no preferences"

    Returns:
        UserPreferences

    Raises:
        ValidationError: Payload is not an object, has unknown keys or
            has values of the wrong type

    Example:
        >>> parse_user_preferences({"region": "India", "dietaryPattern": "vegan"}).region
        'India'
    """
    if payload is None:
        return UserPreferences()

    if not isinstance(payload, dict):
        raise ValidationError(
            f"Preferences payload must be an object, got {type(payload).__name__}"
        )

    try:
        return UserPreferences.model_validate(payload)
    except pydantic.ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ValidationError(f"Invalid preferences payload: {fields}") from e
