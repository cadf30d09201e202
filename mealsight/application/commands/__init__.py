"""Application commands (write side)."""

from mealsight.application.commands.analyze_photo import (
    AnalyzePhotoCommand,
    AssessedItem,
    PhotoAnalysisPipeline,
    PhotoAnalysisResult,
)
from mealsight.application.commands.confirm_meal import (
    ConfirmedItem,
    ConfirmMealCommand,
    ConfirmMealCommandHandler,
    ConfirmMealResult,
)

__all__ = [
    "AnalyzePhotoCommand",
    "AssessedItem",
    "PhotoAnalysisPipeline",
    "PhotoAnalysisResult",
    "ConfirmedItem",
    "ConfirmMealCommand",
    "ConfirmMealCommandHandler",
    "ConfirmMealResult",
]
