"""MongoDB implementation of the correction repository (append-only)."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pymongo import ASCENDING, DESCENDING

from mealsight.domain.learning.models import CorrectionRecord, CorrectionType
from mealsight.domain.recognition.models import DetectedFoodItem
from mealsight.infrastructure.persistence.mongodb.base import MongoBaseRepository

_NEWEST_FIRST = [("created_at", DESCENDING)]


class MongoCorrectionRepository(MongoBaseRepository[CorrectionRecord]):
    """
    MongoDB implementation of ICorrectionRepository.

    Document Schema:
    {
        "_id": ObjectId,
        "analysis_id": "analysis_1a2b3c4d5e6f",
        "user_id": "string",
        "original_item": {...},
        "corrected_item": {...},
        "original_name": "dal",          # denormalized for aggregation
        "corrected_name": "dal fry",
        "correction_type": "name",
        "created_at": "2025-11-12T10:00:00.000000+00:00"
    }
    """

    collection_name = "ai_corrections"
    indexes = [
        ([("user_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("user_id", ASCENDING), ("correction_type", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("analysis_id", ASCENDING)], {}),
    ]

    def to_document(self, entity: CorrectionRecord) -> Dict[str, Any]:
        correction = entity
        return {
            "analysis_id": correction.analysis_id,
            "user_id": correction.user_id,
            "original_item": correction.original_item.model_dump(mode="json"),
            "corrected_item": correction.corrected_item.model_dump(mode="json"),
            "original_name": correction.original_name,
            "corrected_name": correction.corrected_name,
            "correction_type": correction.correction_type.value,
            "created_at": self.datetime_to_iso(correction.created_at),
        }

    def from_document(self, doc: Dict[str, Any]) -> CorrectionRecord:
        return CorrectionRecord(
            analysis_id=doc["analysis_id"],
            user_id=doc["user_id"],
            original_item=DetectedFoodItem(**doc["original_item"]),
            corrected_item=DetectedFoodItem(**doc["corrected_item"]),
            correction_type=CorrectionType(doc["correction_type"]),
            created_at=self.iso_to_datetime(doc["created_at"]),
        )

    async def append(self, correction: CorrectionRecord) -> None:
        await self._insert_one(self.to_document(correction))

    async def list_recent_by_user(self, user_id: str, limit: int) -> List[CorrectionRecord]:
        docs = await self._find_many({"user_id": user_id}, sort=_NEWEST_FIRST, limit=limit)
        return self._map(docs)

    async def list_by_user_and_type(
        self, user_id: str, correction_type: CorrectionType, limit: int
    ) -> List[CorrectionRecord]:
        docs = await self._find_many(
            {"user_id": user_id, "correction_type": correction_type.value},
            sort=_NEWEST_FIRST,
            limit=limit,
        )
        return self._map(docs)

    async def list_in_range(
        self,
        start: datetime,
        end: datetime,
        correction_types: Optional[Sequence[CorrectionType]] = None,
    ) -> List[CorrectionRecord]:
        query: Dict[str, Any] = {
            "created_at": {
                "$gte": self.datetime_to_iso(start),
                "$lte": self.datetime_to_iso(end),
            }
        }
        if correction_types:
            query["correction_type"] = {"$in": [t.value for t in correction_types]}
        return self._map(await self._find_many(query))

    async def list_by_analysis_ids(self, analysis_ids: Sequence[str]) -> List[CorrectionRecord]:
        if not analysis_ids:
            return []
        docs = await self._find_many({"analysis_id": {"$in": list(analysis_ids)}})
        return self._map(docs)

    async def list_recent(self, limit: int) -> List[CorrectionRecord]:
        docs = await self._find_many({}, sort=_NEWEST_FIRST, limit=limit)
        return self._map(docs)
