"""Repository Factory for Persistence Layer.

Settings-based repository selection:
- STORAGE_BACKEND=memory (default): fast, transient, used by tests
- STORAGE_BACKEND=mongodb: persistent, requires MONGODB_URI

Usage:
    from mealsight.infrastructure.persistence.factory import create_repositories

    repositories = create_repositories(get_settings())
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from mealsight.domain.learning.ports import (
    IAnalysisRepository,
    ICorrectionRepository,
    IMealLogRepository,
)
from mealsight.domain.metrics.ports import IEventRepository
from mealsight.infrastructure.config import Settings
from mealsight.infrastructure.persistence.in_memory import (
    InMemoryAnalysisRepository,
    InMemoryCorrectionRepository,
    InMemoryEventRepository,
    InMemoryMealLogRepository,
)
from mealsight.infrastructure.persistence.mongodb import (
    MongoAnalysisRepository,
    MongoCorrectionRepository,
    MongoEventRepository,
    MongoMealLogRepository,
    create_database,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Repositories:
    """The four stores the application needs, from one backend."""

    analyses: IAnalysisRepository
    corrections: ICorrectionRepository
    meal_logs: IMealLogRepository
    events: IEventRepository


def create_in_memory_repositories() -> Repositories:
    return Repositories(
        analyses=InMemoryAnalysisRepository(),
        corrections=InMemoryCorrectionRepository(),
        meal_logs=InMemoryMealLogRepository(),
        events=InMemoryEventRepository(),
    )


def create_repositories(settings: Settings, db: Optional[object] = None) -> Repositories:
    """
    Create repositories for the configured backend.

    Args:
        settings: Application settings (storage_backend selects the backend)
        db: Motor database to use instead of opening one from settings

    Returns:
        Repositories

    Raises:
        RepositoryError: mongodb selected without a usable URI
    """
    if settings.storage_backend == "mongodb":
        database = db if db is not None else create_database(
            settings.mongodb_uri, settings.mongodb_database
        )
        logger.info(
            "Using MongoDB repositories", database=settings.mongodb_database
        )
        return Repositories(
            analyses=MongoAnalysisRepository(database),  # type: ignore[arg-type]
            corrections=MongoCorrectionRepository(database),  # type: ignore[arg-type]
            meal_logs=MongoMealLogRepository(database),  # type: ignore[arg-type]
            events=MongoEventRepository(database),  # type: ignore[arg-type]
        )

    logger.info("Using in-memory repositories")
    return create_in_memory_repositories()
