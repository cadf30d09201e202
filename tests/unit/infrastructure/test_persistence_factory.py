"""Unit tests for repository selection."""

from unittest.mock import MagicMock

import pytest

from mealsight.domain.shared.errors import RepositoryError
from mealsight.infrastructure.config import Settings
from mealsight.infrastructure.persistence.factory import (
    create_in_memory_repositories,
    create_repositories,
)
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
)


class TestCreateRepositories:
    def test_memory_default(self) -> None:
        repositories = create_repositories(Settings())

        assert isinstance(repositories.analyses, InMemoryAnalysisRepository)
        assert isinstance(repositories.corrections, InMemoryCorrectionRepository)
        assert isinstance(repositories.meal_logs, InMemoryMealLogRepository)
        assert isinstance(repositories.events, InMemoryEventRepository)

    def test_in_memory_instances_independent(self) -> None:
        first = create_in_memory_repositories()
        second = create_in_memory_repositories()
        assert first.analyses is not second.analyses

    def test_mongodb_with_supplied_database(self) -> None:
        db = MagicMock()

        repositories = create_repositories(Settings(storage_backend="mongodb"), db=db)

        assert isinstance(repositories.analyses, MongoAnalysisRepository)
        assert isinstance(repositories.corrections, MongoCorrectionRepository)
        assert isinstance(repositories.meal_logs, MongoMealLogRepository)
        assert isinstance(repositories.events, MongoEventRepository)

    def test_mongodb_without_uri(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MONGODB_URI", raising=False)

        with pytest.raises(RepositoryError, match="MONGODB_URI"):
            create_repositories(Settings(storage_backend="mongodb"))
