"""In-memory repository implementations for testing and local development."""

from mealsight.infrastructure.persistence.in_memory.analysis_repository import (
    InMemoryAnalysisRepository,
)
from mealsight.infrastructure.persistence.in_memory.correction_repository import (
    InMemoryCorrectionRepository,
)
from mealsight.infrastructure.persistence.in_memory.event_repository import (
    InMemoryEventRepository,
)
from mealsight.infrastructure.persistence.in_memory.meal_log_repository import (
    InMemoryMealLogRepository,
)

__all__ = [
    "InMemoryAnalysisRepository",
    "InMemoryCorrectionRepository",
    "InMemoryEventRepository",
    "InMemoryMealLogRepository",
]
