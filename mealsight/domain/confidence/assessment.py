"""
Per-item confidence assessment.

Maps an item's confidence onto one of four tiers. Higher uncertainty
asks for more explicit user confirmation and a broader search surface.

Tiers are half-open intervals that partition [0, 100] with no gaps:

    [80, 100] -> high      / accept
    [60, 80)  -> medium    / review   (suggestions)
    [40, 60)  -> low       / confirm  (suggestions + typeahead)
    [0, 40)   -> very_low  / reject   (typeahead only)
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict

from mealsight.domain.recognition.models import DetectedFoodItem

HIGH_THRESHOLD = 80.0
MEDIUM_THRESHOLD = 60.0
LOW_THRESHOLD = 40.0


class ConfidenceLevel(str, Enum):
    """Confidence tier."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


class ConfidenceAction(str, Enum):
    """What the user is asked to do with an item."""

    ACCEPT = "accept"
    REVIEW = "review"
    CONFIRM = "confirm"
    REJECT = "reject"


class ConfidenceAssessment(BaseModel):
    """
    UI guidance derived from an item's confidence. Not persisted.

    Attributes:
        level: Confidence tier
        action: Required user action
        message: Short explanation for the tier
        requires_user_action: False only for high confidence
        show_suggestions: Show alternative suggestions
        show_typeahead: Show free-text food search
    """

    model_config = ConfigDict(frozen=True)

    level: ConfidenceLevel
    action: ConfidenceAction
    message: str
    requires_user_action: bool
    show_suggestions: bool
    show_typeahead: bool


_HIGH = ConfidenceAssessment(
    level=ConfidenceLevel.HIGH,
    action=ConfidenceAction.ACCEPT,
    message="High confidence - minor edits allowed",
    requires_user_action=False,
    show_suggestions=False,
    show_typeahead=False,
)

_MEDIUM = ConfidenceAssessment(
    level=ConfidenceLevel.MEDIUM,
    action=ConfidenceAction.REVIEW,
    message="Medium confidence - please review",
    requires_user_action=True,
    show_suggestions=True,
    show_typeahead=False,
)

_LOW = ConfidenceAssessment(
    level=ConfidenceLevel.LOW,
    action=ConfidenceAction.CONFIRM,
    message="Low confidence - confirmation required",
    requires_user_action=True,
    show_suggestions=True,
    show_typeahead=True,
)

# Suggestions are unlikely to be relevant this far down.
_VERY_LOW = ConfidenceAssessment(
    level=ConfidenceLevel.VERY_LOW,
    action=ConfidenceAction.REJECT,
    message="Very low confidence - manual entry recommended",
    requires_user_action=True,
    show_suggestions=False,
    show_typeahead=True,
)


def assess_confidence(score: float) -> ConfidenceAssessment:
    """Assess a raw confidence score (0 - 100).

    Args:
        score: Confidence score

    Returns:
        ConfidenceAssessment for the score's tier

    Example:
        >>> assess_confidence(45).level
        <ConfidenceLevel.LOW: 'low'>
    """
    if score >= HIGH_THRESHOLD:
        return _HIGH
    if score >= MEDIUM_THRESHOLD:
        return _MEDIUM
    if score >= LOW_THRESHOLD:
        return _LOW
    return _VERY_LOW


def assess_item_confidence(item: Union[DetectedFoodItem, float]) -> ConfidenceAssessment:
    """Assess a detected item (or a bare score)."""
    if isinstance(item, DetectedFoodItem):
        return assess_confidence(item.confidence)
    return assess_confidence(float(item))
