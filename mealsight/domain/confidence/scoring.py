"""
Confidence scoring.

Combine independent weak signals into a 0-100 confidence. Signals add
up, but never past the ceiling of the scale.
"""

from __future__ import annotations

from dataclasses import dataclass

from mealsight.domain.recognition.models import DetectedFoodItem

SCORE_FLOOR = 0.0
SCORE_CEILING = 100.0

# Mapping bonuses
SYNONYM_MATCH_BONUS = 15.0
REGION_MATCH_BONUS = 10.0
DIET_MATCH_BONUS = 5.0

# Portion scoring
PORTION_BASE = 50.0
VISUAL_REFERENCE_BONUS = 20.0
USER_PRIOR_BONUS = 15.0
STANDARD_PRIOR_BONUS = 10.0
CLOSE_TO_PRIOR_BONUS = 10.0
FAR_FROM_PRIOR_PENALTY = 15.0
CLOSE_DEVIATION = 0.2
FAR_DEVIATION = 0.5

# Overall confidence weights
MODEL_WEIGHT = 0.4
MAPPING_WEIGHT = 0.3
PORTION_WEIGHT = 0.2
CONTEXT_WEIGHT = 0.1
CONTEXT_SCORE_WITH_NOTE = 90.0
CONTEXT_SCORE_WITHOUT_NOTE = 70.0


def clamp_score(value: float) -> float:
    """Clamp to [0, 100]."""
    return max(SCORE_FLOOR, min(SCORE_CEILING, value))


@dataclass(frozen=True)
class MappingConfidenceFactors:
    """Signals for how well a detected name maps to a database food."""

    string_similarity: float
    synonym_match: bool = False
    region_match: bool = False
    diet_match: bool = False


@dataclass(frozen=True)
class PortionConfidenceFactors:
    """Signals for how trustworthy an estimated portion is.

    portion_deviation is relative: |estimate - prior| / prior.
    """

    has_visual_reference: bool = False
    has_user_prior: bool = False
    has_standard_prior: bool = False
    portion_deviation: float = 0.0


def calculate_mapping_confidence(factors: MappingConfidenceFactors) -> float:
    """Name-mapping confidence.

    String similarity plus 15 for a known synonym, 10 for a region
    match and 5 for a diet match, clamped to [0, 100].
    """
    confidence = factors.string_similarity

    if factors.synonym_match:
        confidence += SYNONYM_MATCH_BONUS
    if factors.region_match:
        confidence += REGION_MATCH_BONUS
    if factors.diet_match:
        confidence += DIET_MATCH_BONUS

    return clamp_score(confidence)


def calculate_portion_confidence(factors: PortionConfidenceFactors) -> float:
    """Portion-estimate confidence.

    Base 50, rewarded by corroborating evidence and penalised when the
    estimate strays far from the chosen prior. Clamped to [0, 100].
    """
    confidence = PORTION_BASE

    if factors.has_visual_reference:
        confidence += VISUAL_REFERENCE_BONUS
    if factors.has_user_prior:
        confidence += USER_PRIOR_BONUS
    if factors.has_standard_prior:
        confidence += STANDARD_PRIOR_BONUS

    if factors.portion_deviation < CLOSE_DEVIATION:
        confidence += CLOSE_TO_PRIOR_BONUS
    elif factors.portion_deviation > FAR_DEVIATION:
        confidence -= FAR_FROM_PRIOR_PENALTY

    return clamp_score(confidence)


def portion_deviation(estimated_grams: float, prior_grams: float) -> float:
    """Relative deviation of an estimate from its prior (0.0 when no prior)."""
    if prior_grams <= 0:
        return 0.0
    return abs(estimated_grams - prior_grams) / prior_grams


def calculate_portion_heuristic(detected_grams: float, expected_grams: float) -> float:
    """Score a detected portion by its ratio to the expected portion."""
    if expected_grams == 0:
        return 50.0

    ratio = detected_grams / expected_grams

    if 0.8 <= ratio <= 1.2:
        return 95.0
    if 0.6 <= ratio <= 1.5:
        return 80.0
    if 0.4 <= ratio <= 2.0:
        return 60.0
    return 40.0


def calculate_overall_confidence(
    item: DetectedFoodItem,
    mapping_confidence: float,
    portion_heuristic: float,
    has_context: bool,
) -> float:
    """Weighted blend of model, mapping, portion and context scores.

    Weights: model 0.4, mapping 0.3, portion 0.2, context 0.1, where the
    context score is 90 with a user note and 70 without.
    """
    context_score = CONTEXT_SCORE_WITH_NOTE if has_context else CONTEXT_SCORE_WITHOUT_NOTE

    weighted = (
        item.confidence * MODEL_WEIGHT
        + mapping_confidence * MAPPING_WEIGHT
        + portion_heuristic * PORTION_WEIGHT
        + context_score * CONTEXT_WEIGHT
    )

    return clamp_score(float(round(weighted)))
