"""Unit tests for the learning loop.

Tests focus on:
- Synonym extraction (noise threshold, first-seen wins)
- Portion prior learning (minimum sample count, rounded mean)
- Degradation to "no personalisation" on storage failure
"""

from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from mealsight.domain.learning.models import (
    CommonCorrection,
    CommonError,
    CorrectionRecord,
    CorrectionType,
)
from mealsight.domain.learning.service import LearningLoop
from mealsight.domain.shared.errors import RepositoryError
from mealsight.infrastructure.persistence.factory import Repositories


@pytest.fixture
def loop(repositories: Repositories, clock: Any) -> LearningLoop:
    return LearningLoop(
        repositories.corrections, repositories.analyses, repositories.meal_logs, now=clock
    )


@pytest.fixture
def failing_loop(repositories: Repositories) -> LearningLoop:
    """Loop whose correction store always fails."""
    corrections = AsyncMock()
    for method in (
        "append",
        "list_recent_by_user",
        "list_by_user_and_type",
        "list_recent",
        "list_by_analysis_ids",
    ):
        getattr(corrections, method).side_effect = RepositoryError("connection lost")
    meal_logs = AsyncMock()
    meal_logs.list_recent_by_user.side_effect = RepositoryError("connection lost")
    return LearningLoop(corrections, repositories.analyses, meal_logs)


class TestStoreCorrectionFeedback:
    @pytest.mark.asyncio
    async def test_appends(
        self,
        loop: LearningLoop,
        repositories: Repositories,
        make_correction: Callable[..., CorrectionRecord],
    ) -> None:
        await loop.store_correction_feedback(make_correction())
        assert repositories.corrections.count() == 1  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_failure_swallowed(
        self, failing_loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        """A lost feedback sample never blocks the caller."""
        await failing_loop.store_correction_feedback(make_correction())


class TestSynonymMap:
    @pytest.mark.asyncio
    async def test_single_correction_is_noise(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        await loop.store_correction_feedback(make_correction("dal", "dal fry"))

        assert await loop.build_user_synonym_map("user_123") == {}

    @pytest.mark.asyncio
    async def test_two_identical_corrections_learned(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        await loop.store_correction_feedback(make_correction("Dal", "dal fry"))
        await loop.store_correction_feedback(make_correction("dal", "dal fry"))

        assert await loop.build_user_synonym_map("user_123") == {"dal": "dal fry"}

    @pytest.mark.asyncio
    async def test_other_users_ignored(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        await loop.store_correction_feedback(make_correction(user_id="user_456"))
        await loop.store_correction_feedback(make_correction(user_id="user_456"))

        assert await loop.build_user_synonym_map("user_123") == {}

    @pytest.mark.asyncio
    async def test_first_seen_correction_wins(
        self,
        loop: LearningLoop,
        clock: Any,
        make_correction: Callable[..., CorrectionRecord],
    ) -> None:
        """Newest correction defines the group; older conflicting ones are not counted."""
        await loop.store_correction_feedback(make_correction("dal", "dal fry"))
        clock.advance(minutes=1)
        await loop.store_correction_feedback(make_correction("dal", "dal tadka"))
        clock.advance(minutes=1)
        await loop.store_correction_feedback(make_correction("dal", "dal tadka"))

        common = await loop.get_common_corrections("user_123")

        assert common == [CommonCorrection(original="dal", corrected="dal tadka", count=2)]

    @pytest.mark.asyncio
    async def test_sorted_by_count(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        await loop.store_correction_feedback(make_correction("roti", "phulka"))
        for _ in range(3):
            await loop.store_correction_feedback(make_correction("dal", "dal fry"))

        common = await loop.get_common_corrections("user_123", limit=1)

        assert common == [CommonCorrection(original="dal", corrected="dal fry", count=3)]

    @pytest.mark.asyncio
    async def test_storage_failure_means_no_synonyms(self, failing_loop: LearningLoop) -> None:
        assert await failing_loop.build_user_synonym_map("user_123") == {}


class TestPortionPriors:
    async def _store_portions(
        self,
        loop: LearningLoop,
        make_correction: Callable[..., CorrectionRecord],
        *portions: float,
    ) -> None:
        for grams in portions:
            await loop.store_correction_feedback(
                make_correction(
                    "roti",
                    "Roti",
                    correction_type=CorrectionType.PORTION,
                    original_portion=30,
                    corrected_portion=grams,
                )
            )

    @pytest.mark.asyncio
    async def test_two_samples_not_enough(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        await self._store_portions(loop, make_correction, 40, 50)

        assert await loop.update_portion_priors("user_123") == {}

    @pytest.mark.asyncio
    async def test_three_samples_rounded_mean(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        await self._store_portions(loop, make_correction, 40, 50, 46)

        assert await loop.update_portion_priors("user_123") == {"roti": 45.0}

    @pytest.mark.asyncio
    async def test_name_corrections_ignored(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        for _ in range(3):
            await loop.store_correction_feedback(
                make_correction("dal", "dal fry", corrected_portion=250)
            )

        assert await loop.update_portion_priors("user_123") == {}

    @pytest.mark.asyncio
    async def test_combined_edits_with_portion_change_count(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        """Grams-only edits where macros were not rescaled are classified ALL."""
        for grams in (40, 50, 46):
            await loop.store_correction_feedback(
                make_correction(
                    "roti",
                    "roti",
                    correction_type=CorrectionType.ALL,
                    original_portion=30,
                    corrected_portion=grams,
                )
            )

        assert await loop.update_portion_priors("user_123") == {"roti": 45.0}

    @pytest.mark.asyncio
    async def test_combined_edits_without_portion_change_ignored(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        for _ in range(3):
            await loop.store_correction_feedback(
                make_correction(
                    "dal",
                    "dal fry",
                    correction_type=CorrectionType.ALL,
                    corrected_calories=300,
                )
            )

        assert await loop.update_portion_priors("user_123") == {}

    @pytest.mark.asyncio
    async def test_storage_failure_means_no_priors(self, failing_loop: LearningLoop) -> None:
        assert await failing_loop.update_portion_priors("user_123") == {}


class TestRecentFoods:
    @pytest.mark.asyncio
    async def test_distinct_newest_first(
        self,
        loop: LearningLoop,
        repositories: Repositories,
        clock: Any,
        make_meal_log: Callable[..., Any],
    ) -> None:
        await repositories.meal_logs.insert(make_meal_log(food_names=["poha", "chai"]))
        clock.advance(hours=4)
        await repositories.meal_logs.insert(make_meal_log(food_names=["dal", "rice"]))
        clock.advance(hours=4)
        await repositories.meal_logs.insert(make_meal_log(food_names=["roti", "dal"]))

        foods = await loop.get_recent_user_foods("user_123")

        assert foods == ["roti", "dal", "rice", "poha", "chai"]

    @pytest.mark.asyncio
    async def test_storage_failure_means_no_recent_foods(
        self, failing_loop: LearningLoop
    ) -> None:
        assert await failing_loop.get_recent_user_foods("user_123") == []


class TestGlobalCorrections:
    @pytest.mark.asyncio
    async def test_aggregated_across_users(
        self, loop: LearningLoop, make_correction: Callable[..., CorrectionRecord]
    ) -> None:
        await loop.store_correction_feedback(make_correction("dal", "dal fry", user_id="a"))
        await loop.store_correction_feedback(make_correction("Dal", "dal fry", user_id="b"))
        await loop.store_correction_feedback(make_correction("dal", "dal fry", user_id="c"))
        await loop.store_correction_feedback(make_correction("dal", "dal tadka", user_id="a"))

        corrections = await loop.get_global_corrections()

        assert [(c.original, c.corrected, c.count, c.share) for c in corrections] == [
            ("dal", "dal fry", 3, 75.0),
            ("dal", "dal tadka", 1, 25.0),
        ]

    @pytest.mark.asyncio
    async def test_storage_failure_means_empty(self, failing_loop: LearningLoop) -> None:
        assert await failing_loop.get_global_corrections() == []


class TestModelPerformance:
    @pytest.mark.asyncio
    async def test_summary(
        self,
        loop: LearningLoop,
        repositories: Repositories,
        make_record: Callable[..., Any],
        make_correction: Callable[..., CorrectionRecord],
    ) -> None:
        first = make_record(overall_confidence=50)
        second = make_record(overall_confidence=70)
        other_model = make_record(model_version="gpt-4o-mini")
        for record in (first, second, other_model):
            await repositories.analyses.insert(record)
        await loop.store_correction_feedback(make_correction(analysis_id=first.analysis_id))

        performance = await loop.analyze_model_performance("gpt-4o")

        assert performance.sample_size == 2
        assert performance.average_confidence == 60
        assert performance.correction_rate == 50
        assert performance.common_errors == [CommonError(error="dal → dal fry", count=1)]

    @pytest.mark.asyncio
    async def test_outside_window_ignored(
        self,
        loop: LearningLoop,
        repositories: Repositories,
        clock: Any,
        make_record: Callable[..., Any],
    ) -> None:
        await repositories.analyses.insert(make_record())
        clock.advance(days=31)

        performance = await loop.analyze_model_performance("gpt-4o", days=30)

        assert performance.sample_size == 0
        assert performance.common_errors == []


class TestPersonalisation:
    @pytest.mark.asyncio
    async def test_combines_sources(
        self,
        loop: LearningLoop,
        repositories: Repositories,
        make_correction: Callable[..., CorrectionRecord],
        make_meal_log: Callable[..., Any],
    ) -> None:
        for _ in range(2):
            await loop.store_correction_feedback(make_correction("chapati", "phulka"))
        await repositories.meal_logs.insert(make_meal_log(food_names=["dal", "rice"]))

        synonyms, priors, recent = await loop.personalisation("user_123", 1)

        assert synonyms == {"chapati": "phulka"}
        assert priors == {}
        assert recent == ["dal"]
