"""Base MongoDB repository with reusable patterns.

Provides common functionality for all MongoDB repositories:
- Document mapping (domain ↔ MongoDB)
- Error handling (driver errors logged and raised as RepositoryError)
- UTC datetime handling
- Lazy index creation

All concrete MongoDB repositories inherit from MongoBaseRepository.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from mealsight.domain.shared.errors import RepositoryError
from mealsight.infrastructure.config import get_mongodb_database, get_mongodb_uri

TEntity = TypeVar("TEntity")

logger = structlog.get_logger(__name__)

IndexSpec = Tuple[Sequence[Tuple[str, int]], Dict[str, Any]]


def create_database(
    uri: Optional[str] = None, database: Optional[str] = None
) -> AsyncIOMotorDatabase[Dict[str, Any]]:
    """
    Open a Motor database handle from configuration.

    Raises:
        RepositoryError: MONGODB_URI not configured
    """
    uri = uri or get_mongodb_uri()
    if not uri:
        raise RepositoryError(
            "MONGODB_URI not configured. "
            "Set MONGODB_URI, MONGODB_USER, and MONGODB_PASSWORD environment variables."
        )
    client: AsyncIOMotorClient[Dict[str, Any]] = AsyncIOMotorClient(uri, tz_aware=True)
    return client[database or get_mongodb_database()]


class MongoBaseRepository(ABC, Generic[TEntity]):
    """
    Abstract base class for MongoDB repositories.

    Subclasses must implement:
    - collection_name: Name of MongoDB collection
    - to_document(): Convert domain entity to MongoDB document
    - from_document(): Convert MongoDB document to domain entity

    and may list `indexes` to be created on first use.

    Example:
        class MongoCorrectionRepository(MongoBaseRepository[CorrectionRecord]):
            collection_name = "ai_corrections"

            def to_document(self, correction: CorrectionRecord) -> Dict[str, Any]:
                ...

            def from_document(self, doc: Dict[str, Any]) -> CorrectionRecord:
                ...
    """

    collection_name: str = ""
    indexes: List[IndexSpec] = []

    def __init__(self, db: AsyncIOMotorDatabase[Dict[str, Any]]):
        """
        Args:
            db: Motor AsyncIOMotorDatabase instance
        """
        self._db = db
        self.collection = db[self.collection_name]
        self._indexes_created = False

        logger.debug(
            "Repository initialized",
            repository=self.__class__.__name__,
            collection=self.collection_name,
        )

    # ============================================================
    # Abstract Methods (must be implemented)
    # ============================================================

    @abstractmethod
    def to_document(self, entity: TEntity) -> Dict[str, Any]:
        """Convert domain entity to MongoDB document."""

    @abstractmethod
    def from_document(self, doc: Dict[str, Any]) -> TEntity:
        """
        Convert MongoDB document to domain entity.

        Raises:
            ValueError: If document is invalid or missing required fields
        """

    # ============================================================
    # Protected Utility Methods (for subclasses)
    # ============================================================

    @staticmethod
    def datetime_to_iso(dt: datetime) -> str:
        """
        Convert datetime to a fixed-width ISO string in UTC.

        Fixed width keeps lexicographic order equal to time order, so
        range filters work on the stored strings.
        """
        if dt.tzinfo is None:
            raise ValueError("Datetime must be timezone-aware")
        return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")

    @staticmethod
    def iso_to_datetime(iso_str: str) -> datetime:
        """Convert ISO string to timezone-aware datetime (naive means UTC)."""
        dt = datetime.fromisoformat(iso_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt

    def _failed(self, operation: str, error: Exception, **context: Any) -> RepositoryError:
        logger.error(
            "MongoDB operation failed",
            operation=operation,
            collection=self.collection_name,
            error=str(error),
            **context,
        )
        return RepositoryError(f"{operation} failed on {self.collection_name}: {error}")

    def _map(self, documents: List[Dict[str, Any]]) -> List[TEntity]:
        try:
            return [self.from_document(doc) for doc in documents]
        except (KeyError, TypeError, ValueError) as e:
            raise self._failed("from_document", e) from e

    async def _ensure_indexes(self) -> None:
        if self._indexes_created:
            return
        for keys, options in self.indexes:
            await self.collection.create_index(list(keys), **options)
        self._indexes_created = True

    async def _find_one(
        self,
        filter_dict: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Find single document with error handling.

        Raises:
            RepositoryError: If MongoDB operation fails (logged)
        """
        try:
            result: Optional[Dict[str, Any]] = await self.collection.find_one(
                filter_dict, sort=sort
            )
            return result
        except Exception as e:
            raise self._failed("find_one", e, filter=filter_dict) from e

    async def _find_many(
        self,
        filter_dict: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Find multiple documents with error handling.

        Raises:
            RepositoryError: If MongoDB operation fails (logged)
        """
        try:
            cursor = self.collection.find(filter_dict)
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)
            documents: List[Dict[str, Any]] = await cursor.to_list(length=limit)
            return documents
        except Exception as e:
            raise self._failed("find_many", e, filter=filter_dict) from e

    async def _insert_one(self, document: Dict[str, Any]) -> None:
        """
        Insert single document with error handling.

        Raises:
            RepositoryError: If MongoDB operation fails (logged)
        """
        try:
            await self._ensure_indexes()
            await self.collection.insert_one(document)
        except Exception as e:
            raise self._failed("insert_one", e) from e

    async def _insert_many(self, documents: List[Dict[str, Any]]) -> None:
        """
        Insert documents with error handling.

        Raises:
            RepositoryError: If MongoDB operation fails (logged)
        """
        if not documents:
            return
        try:
            await self._ensure_indexes()
            await self.collection.insert_many(documents, ordered=False)
        except Exception as e:
            raise self._failed("insert_many", e, count=len(documents)) from e

    async def _update_one(self, filter_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> int:
        """
        Update single document with error handling.

        Returns:
            Number of documents matched (0 or 1)

        Raises:
            RepositoryError: If MongoDB operation fails (logged)
        """
        try:
            result = await self.collection.update_one(filter_dict, update_dict)
            return int(result.matched_count)
        except Exception as e:
            raise self._failed("update_one", e, filter=filter_dict) from e

    async def _delete_many(self, filter_dict: Dict[str, Any]) -> int:
        """
        Delete matching documents with error handling.

        Returns:
            Number of documents deleted

        Raises:
            RepositoryError: If MongoDB operation fails (logged)
        """
        try:
            result = await self.collection.delete_many(filter_dict)
            return int(result.deleted_count)
        except Exception as e:
            raise self._failed("delete_many", e, filter=filter_dict) from e

    async def _count(self, filter_dict: Dict[str, Any]) -> int:
        """
        Count documents with error handling.

        Raises:
            RepositoryError: If MongoDB operation fails (logged)
        """
        try:
            return int(await self.collection.count_documents(filter_dict))
        except Exception as e:
            raise self._failed("count_documents", e, filter=filter_dict) from e
