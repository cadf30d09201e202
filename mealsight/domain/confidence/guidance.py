"""
User guidance for uncertain items.

Fallback strategy selection, human-readable explanations and
alternative ranking.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from mealsight.domain.confidence.assessment import (
    HIGH_THRESHOLD,
    LOW_THRESHOLD,
    MEDIUM_THRESHOLD,
)
from mealsight.domain.recognition.models import DetectedFoodItem

MODEL_EXPLANATION_THRESHOLD = 70.0
MAPPING_EXPLANATION_THRESHOLD = 70.0
PORTION_EXPLANATION_THRESHOLD = 60.0

RECENT_FOOD_BOOST = 15.0
MAX_ALTERNATIVES = 3


class FallbackStrategyKind(str, Enum):
    """How the UI recovers from an uncertain item."""

    SUGGESTIONS = "suggestions"
    TYPEAHEAD = "typeahead"
    MANUAL_ENTRY = "manual_entry"
    CONSERVATIVE_ESTIMATE = "conservative_estimate"


class FallbackStrategy(BaseModel):
    """Chosen fallback with its prompt and default UI action."""

    model_config = ConfigDict(frozen=True)

    strategy: FallbackStrategyKind
    message: str
    default_action: str


def determine_fallback_strategy(confidence: float, has_suggestions: bool) -> FallbackStrategy:
    """Pick a fallback strategy.

    | confidence | suggestions | strategy              |
    |------------|-------------|-----------------------|
    | >= 60      | yes         | suggestions           |
    | [40, 60)   | any         | typeahead             |
    | < 40       | no          | manual_entry          |
    | otherwise  |             | conservative_estimate |
    """
    if confidence >= MEDIUM_THRESHOLD and has_suggestions:
        return FallbackStrategy(
            strategy=FallbackStrategyKind.SUGGESTIONS,
            message="We found some similar items. Select the correct one:",
            default_action="show_suggestions",
        )

    if LOW_THRESHOLD <= confidence < MEDIUM_THRESHOLD:
        return FallbackStrategy(
            strategy=FallbackStrategyKind.TYPEAHEAD,
            message="Please confirm or search for the correct food item:",
            default_action="show_typeahead",
        )

    if confidence < LOW_THRESHOLD and not has_suggestions:
        return FallbackStrategy(
            strategy=FallbackStrategyKind.MANUAL_ENTRY,
            message="Unable to identify this item. Please search and add manually:",
            default_action="show_search",
        )

    return FallbackStrategy(
        strategy=FallbackStrategyKind.CONSERVATIVE_ESTIMATE,
        message="Low confidence. Using conservative estimate. Please adjust portion if needed:",
        default_action="show_portion_picker",
    )


class ConfidenceBreakdown(BaseModel):
    """Sub-scores behind an item's confidence."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_confidence: float = Field(..., ge=0, le=100)
    mapping_confidence: float = Field(..., ge=0, le=100)
    portion_confidence: float = Field(..., ge=0, le=100)


HIGH_CONFIDENCE_EXPLANATION = (
    "High confidence identification based on clear image, database match, "
    "and typical portion size."
)


def get_confidence_explanation(item: DetectedFoodItem, factors: ConfidenceBreakdown) -> str:
    """Explain why an item's confidence is what it is.

    One clause per sub-score under its threshold (model < 70,
    mapping < 70, portion < 60), joined into sentences. Falls back to a
    single canned sentence when nothing is weak.
    """
    explanations: List[str] = []

    if factors.model_confidence < MODEL_EXPLANATION_THRESHOLD:
        explanations.append("AI model had difficulty identifying this dish from the image")

    if factors.mapping_confidence < MAPPING_EXPLANATION_THRESHOLD:
        explanations.append(
            "Could not find exact match in food database - using closest approximation"
        )

    if factors.portion_confidence < PORTION_EXPLANATION_THRESHOLD:
        explanations.append("Portion size estimated - please verify it matches what you ate")

    if not explanations:
        return HIGH_CONFIDENCE_EXPLANATION

    return ". ".join(explanations) + "."


def should_show_alternatives(confidence: float, alternatives_count: int) -> bool:
    """Alternatives are offered below high confidence when any exist."""
    return confidence < HIGH_THRESHOLD and alternatives_count > 0


class Alternative(BaseModel):
    """Candidate replacement for a detected item."""

    model_config = ConfigDict(frozen=True)

    name: str
    confidence: float


class ScoredAlternative(Alternative):
    """Alternative with its relevance-adjusted score."""

    score: float


class UserRankingPrefs(BaseModel):
    """User context used to re-rank alternatives."""

    region: Optional[str] = None
    dietary_prefs: List[str] = Field(default_factory=list)
    recent_foods: List[str] = Field(default_factory=list)


def sort_alternatives_by_relevance(
    alternatives: Sequence[Alternative],
    user_prefs: Optional[UserRankingPrefs] = None,
) -> List[ScoredAlternative]:
    """Re-rank alternatives by relevance to the user.

    Alternatives the user logged recently get +15. Sorted by adjusted
    score descending (stable, so ties keep their incoming order) and
    truncated to the top 3.
    """
    recent = _lowered(user_prefs.recent_foods if user_prefs else [])

    scored = [
        ScoredAlternative(
            name=alt.name,
            confidence=alt.confidence,
            score=alt.confidence + (RECENT_FOOD_BOOST if alt.name.lower() in recent else 0.0),
        )
        for alt in alternatives
    ]

    scored.sort(key=lambda alt: alt.score, reverse=True)
    return scored[:MAX_ALTERNATIVES]


def _lowered(names: Iterable[str]) -> set[str]:
    return {name.lower() for name in names}
