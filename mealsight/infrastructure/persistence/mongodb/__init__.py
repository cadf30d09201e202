"""MongoDB persistence adapters."""

from mealsight.infrastructure.persistence.mongodb.analysis_repository import (
    MongoAnalysisRepository,
)
from mealsight.infrastructure.persistence.mongodb.base import (
    MongoBaseRepository,
    create_database,
)
from mealsight.infrastructure.persistence.mongodb.correction_repository import (
    MongoCorrectionRepository,
)
from mealsight.infrastructure.persistence.mongodb.event_repository import MongoEventRepository
from mealsight.infrastructure.persistence.mongodb.meal_log_repository import (
    MongoMealLogRepository,
)

__all__ = [
    "MongoBaseRepository",
    "create_database",
    "MongoAnalysisRepository",
    "MongoCorrectionRepository",
    "MongoMealLogRepository",
    "MongoEventRepository",
]
