"""Unit tests for confidence scoring heuristics."""

from typing import Callable

import pytest

from mealsight.domain.confidence.scoring import (
    MappingConfidenceFactors,
    PortionConfidenceFactors,
    calculate_mapping_confidence,
    calculate_overall_confidence,
    calculate_portion_confidence,
    calculate_portion_heuristic,
    clamp_score,
    portion_deviation,
)
from mealsight.domain.recognition.models import DetectedFoodItem


class TestMappingConfidence:
    def test_similarity_only(self) -> None:
        assert calculate_mapping_confidence(MappingConfidenceFactors(string_similarity=62)) == 62

    def test_bonuses_add_up(self) -> None:
        factors = MappingConfidenceFactors(
            string_similarity=50, synonym_match=True, region_match=True, diet_match=True
        )
        assert calculate_mapping_confidence(factors) == 80

    def test_clamped_at_ceiling(self) -> None:
        factors = MappingConfidenceFactors(
            string_similarity=95, synonym_match=True, region_match=True
        )
        assert calculate_mapping_confidence(factors) == 100

    def test_clamp_score(self) -> None:
        assert clamp_score(-5) == 0
        assert clamp_score(105) == 100
        assert clamp_score(42.5) == 42.5


class TestPortionConfidence:
    def test_base_with_close_estimate(self) -> None:
        """Zero deviation counts as close to the prior."""
        assert calculate_portion_confidence(PortionConfidenceFactors()) == 60

    def test_all_evidence_clamped(self) -> None:
        factors = PortionConfidenceFactors(
            has_visual_reference=True,
            has_user_prior=True,
            has_standard_prior=True,
            portion_deviation=0.1,
        )
        assert calculate_portion_confidence(factors) == 100

    def test_far_from_prior_penalised(self) -> None:
        factors = PortionConfidenceFactors(has_standard_prior=True, portion_deviation=0.8)
        assert calculate_portion_confidence(factors) == 45

    def test_moderate_deviation_neutral(self) -> None:
        factors = PortionConfidenceFactors(has_user_prior=True, portion_deviation=0.3)
        assert calculate_portion_confidence(factors) == 65

    def test_portion_deviation(self) -> None:
        assert portion_deviation(300, 200) == pytest.approx(0.5)
        assert portion_deviation(100, 0) == 0.0


class TestPortionHeuristic:
    @pytest.mark.parametrize(
        "detected,expected,score",
        [
            (200, 200, 95.0),
            (160, 200, 95.0),
            (130, 200, 80.0),
            (300, 200, 80.0),
            (90, 200, 60.0),
            (400, 200, 60.0),
            (50, 200, 40.0),
            (500, 200, 40.0),
            (100, 0, 50.0),
        ],
    )
    def test_ratio_bands(self, detected: float, expected: float, score: float) -> None:
        assert calculate_portion_heuristic(detected, expected) == score


class TestOverallConfidence:
    def test_weighted_blend_with_note(self, make_item: Callable[..., DetectedFoodItem]) -> None:
        item = make_item(confidence=45)
        # 45*0.4 + 80*0.3 + 95*0.2 + 90*0.1 = 70
        assert calculate_overall_confidence(item, 80, 95, has_context=True) == 70

    def test_weighted_blend_without_note(
        self, make_item: Callable[..., DetectedFoodItem]
    ) -> None:
        item = make_item(confidence=45)
        assert calculate_overall_confidence(item, 80, 95, has_context=False) == 68

    def test_result_rounded(self, make_item: Callable[..., DetectedFoodItem]) -> None:
        item = make_item(confidence=51)
        # 20.4 + 15 + 8 + 7 = 50.4
        assert calculate_overall_confidence(item, 50, 40, has_context=False) == 50
