"""
Meal-level save gate.

Aggregates per-item confidence before a meal is persisted. The save
floor (60) is independent of the display tiers: a meal is blocked only
when every item sits under it.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from mealsight.domain.confidence.assessment import (
    HIGH_THRESHOLD,
    ConfidenceAssessment,
    assess_item_confidence,
)
from mealsight.domain.recognition.models import DetectedFoodItem

SAVE_CONFIDENCE_FLOOR = 60.0

NO_ITEMS_REASON = "No items detected. Please add at least one food item."
ALL_LOW_CONFIDENCE_REASON = (
    "All items have low confidence. Please review and correct before saving."
)


class BlockDecision(BaseModel):
    """Result of should_block_save."""

    model_config = ConfigDict(frozen=True)

    should_block: bool
    reason: Optional[str] = None


def should_block_save(items: Sequence[DetectedFoodItem]) -> BlockDecision:
    """Decide whether a meal must not be saved.

    Args:
        items: Items currently in the meal

    Returns:
        BlockDecision with a user-facing reason when blocked

    Example:
        >>> should_block_save([]).reason
        'No items detected. Please add at least one food item.'
    """
    if not items:
        return BlockDecision(should_block=True, reason=NO_ITEMS_REASON)

    if all(item.confidence < SAVE_CONFIDENCE_FLOOR for item in items):
        return BlockDecision(should_block=True, reason=ALL_LOW_CONFIDENCE_REASON)

    return BlockDecision(should_block=False)


def generate_save_warning(items: Sequence[DetectedFoodItem]) -> Optional[str]:
    """Non-blocking warning for items that are not high confidence."""
    count = sum(1 for item in items if item.confidence < HIGH_THRESHOLD)

    if count == 0:
        return None
    if count == 1:
        return "1 item has low confidence. Review recommended."
    return f"{count} items have low confidence. Review recommended."


class SaveStatus(str, Enum):
    """Save gate verdict."""

    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"


class SaveDecision(BaseModel):
    """
    Save gate verdict for a whole meal.

    Attributes:
        status: allow, warn or block
        reason: Block reason (only when blocked)
        warning: Review warning (only when warned)
        assessments: Per-item assessments, in item order
    """

    model_config = ConfigDict(frozen=True)

    status: SaveStatus
    reason: Optional[str] = None
    warning: Optional[str] = None
    assessments: List[ConfidenceAssessment] = Field(default_factory=list)

    @property
    def can_save(self) -> bool:
        return self.status != SaveStatus.BLOCK


class SaveGate:
    """Combine block and warning checks into a single verdict."""

    def evaluate(self, items: Sequence[DetectedFoodItem]) -> SaveDecision:
        assessments = [assess_item_confidence(item) for item in items]

        block = should_block_save(items)
        if block.should_block:
            return SaveDecision(
                status=SaveStatus.BLOCK,
                reason=block.reason,
                assessments=assessments,
            )

        warning = generate_save_warning(items)
        if warning is not None:
            return SaveDecision(
                status=SaveStatus.WARN,
                warning=warning,
                assessments=assessments,
            )

        return SaveDecision(status=SaveStatus.ALLOW, assessments=assessments)
