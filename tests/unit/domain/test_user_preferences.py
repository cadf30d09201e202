"""Unit tests for the user preferences boundary parser."""

import pytest

from mealsight.domain.profile.preferences import (
    DietaryPattern,
    UserPreferences,
    parse_user_preferences,
)
from mealsight.domain.recognition.prompts import DEFAULT_REGION
from mealsight.domain.shared.errors import ValidationError


class TestParseUserPreferences:
    def test_none_means_defaults(self) -> None:
        preferences = parse_user_preferences(None)

        assert preferences == UserPreferences()
        assert preferences.effective_region == DEFAULT_REGION
        assert preferences.prompt_dietary_prefs() == []

    def test_camel_case_keys(self) -> None:
        preferences = parse_user_preferences(
            {"region": "Kerala", "dietaryPattern": "vegetarian", "dietaryPrefs": ["jain"]}
        )

        assert preferences.region == "Kerala"
        assert preferences.dietary_pattern == DietaryPattern.VEGETARIAN
        assert preferences.dietary_prefs == ["jain"]

    def test_snake_case_keys(self) -> None:
        preferences = parse_user_preferences({"dietary_pattern": "vegan"})
        assert preferences.dietary_pattern == DietaryPattern.VEGAN

    def test_prompt_tags(self) -> None:
        preferences = parse_user_preferences(
            {"dietaryPattern": "vegetarian", "dietaryPrefs": ["low-oil", "  "], "allergies": ["peanut"]}
        )

        assert preferences.prompt_dietary_prefs() == [
            "vegetarian",
            "low-oil",
            "allergic to peanut",
        ]

    def test_blank_region_falls_back(self) -> None:
        preferences = parse_user_preferences({"region": "   "})
        assert preferences.region is None
        assert preferences.effective_region == DEFAULT_REGION

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError, match="favouriteColour"):
            parse_user_preferences({"favouriteColour": "green"})

    def test_wrong_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_user_preferences({"dietaryPattern": "carnivore"})

    @pytest.mark.parametrize("payload", ["vegan", ["vegan"], 42])
    def test_non_object_rejected(self, payload: object) -> None:
        with pytest.raises(ValidationError, match="must be an object"):
            parse_user_preferences(payload)
