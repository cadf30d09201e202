"""MongoDB implementation of the meal log repository."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING

from mealsight.domain.learning.models import MealLogEntry
from mealsight.infrastructure.persistence.mongodb.base import MongoBaseRepository


class MongoMealLogRepository(MongoBaseRepository[MealLogEntry]):
    """
    MongoDB implementation of IMealLogRepository.

    Document Schema:
    {
        "_id": "uuid-string",
        "user_id": "string",
        "source": "photo",
        "context_note": "string or null",
        "food_names": ["dal", "rice"],
        "analysis_id": "analysis_1a2b3c4d5e6f or null",
        "logged_at": "2025-11-12T10:00:00.000000+00:00"
    }
    """

    collection_name = "meal_logs"
    indexes = [
        ([("user_id", ASCENDING), ("logged_at", DESCENDING)], {}),
        ([("source", ASCENDING), ("logged_at", DESCENDING)], {}),
    ]

    def to_document(self, entity: MealLogEntry) -> Dict[str, Any]:
        return {
            "_id": entity.meal_log_id,
            "user_id": entity.user_id,
            "source": entity.source,
            "context_note": entity.context_note,
            "food_names": list(entity.food_names),
            "analysis_id": entity.analysis_id,
            "logged_at": self.datetime_to_iso(entity.logged_at),
        }

    def from_document(self, doc: Dict[str, Any]) -> MealLogEntry:
        return MealLogEntry(
            meal_log_id=doc["_id"],
            user_id=doc["user_id"],
            source=doc.get("source", "photo"),
            context_note=doc.get("context_note"),
            food_names=doc.get("food_names", []),
            analysis_id=doc.get("analysis_id"),
            logged_at=self.iso_to_datetime(doc["logged_at"]),
        )

    async def insert(self, entry: MealLogEntry) -> None:
        await self._insert_one(self.to_document(entry))

    async def list_recent_by_user(self, user_id: str, limit: int) -> List[MealLogEntry]:
        docs = await self._find_many(
            {"user_id": user_id}, sort=[("logged_at", DESCENDING)], limit=limit
        )
        return self._map(docs)

    async def list_in_range(
        self, start: datetime, end: datetime, source: Optional[str] = None
    ) -> List[MealLogEntry]:
        query: Dict[str, Any] = {
            "logged_at": {
                "$gte": self.datetime_to_iso(start),
                "$lte": self.datetime_to_iso(end),
            }
        }
        if source is not None:
            query["source"] = source
        return self._map(await self._find_many(query))
