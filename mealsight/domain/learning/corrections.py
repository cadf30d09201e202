"""
Correction diffing.

Compares an AI-detected item with the user's saved version and
classifies the edit.
"""

from __future__ import annotations

import math
from typing import List, Optional

from mealsight.domain.learning.models import CorrectionRecord, CorrectionType
from mealsight.domain.recognition.models import DetectedFoodItem

_MACRO_FIELDS = ("calories", "protein_grams", "carbs_grams", "fat_grams")


def _close(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=0.01, abs_tol=0.5)


def _name_changed(original: DetectedFoodItem, corrected: DetectedFoodItem) -> bool:
    return original.name.strip().lower() != corrected.name.strip().lower()


def _portion_changed(original: DetectedFoodItem, corrected: DetectedFoodItem) -> bool:
    return not _close(original.portion_grams, corrected.portion_grams)


def _macros_changed(original: DetectedFoodItem, corrected: DetectedFoodItem) -> bool:
    # Macros rescaled along with a portion edit are part of that edit.
    ratio = 1.0
    if original.portion_grams > 0:
        ratio = corrected.portion_grams / original.portion_grams

    return any(
        not _close(getattr(original, field) * ratio, getattr(corrected, field))
        for field in _MACRO_FIELDS
    )


def diff_items(
    original: DetectedFoodItem, corrected: DetectedFoodItem
) -> Optional[CorrectionType]:
    """Classify how the user changed an item.

    Args:
        original: Item as the oracle returned it
        corrected: Item as the user saved it

    Returns:
        NAME, PORTION or MACROS when exactly one aspect changed, ALL when
        several did, None when the item was kept as-is

    Example:
        >>> dal = DetectedFoodItem(name="dal", portion_grams=200, confidence=45)
        >>> diff_items(dal, dal.corrected(name="dal fry"))
        <CorrectionType.NAME: 'name'>
    """
    changed: List[CorrectionType] = []

    if _name_changed(original, corrected):
        changed.append(CorrectionType.NAME)
    if _portion_changed(original, corrected):
        changed.append(CorrectionType.PORTION)
    if _macros_changed(original, corrected):
        changed.append(CorrectionType.MACROS)

    if not changed:
        return None
    if len(changed) > 1:
        return CorrectionType.ALL
    return changed[0]


def renames_item(correction: CorrectionRecord) -> bool:
    """True when the saved name differs from the detected one, whatever else changed."""
    return _name_changed(correction.original_item, correction.corrected_item)


def changes_portion(correction: CorrectionRecord) -> bool:
    """True when the saved portion differs from the detected one, whatever else changed."""
    return _portion_changed(correction.original_item, correction.corrected_item)
