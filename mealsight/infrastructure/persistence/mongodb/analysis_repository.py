"""MongoDB implementation of the inference record repository.

Inference records double as analysis cache entries, so the
(user_id, image_hash, user_note, created_at) index serves cache lookups.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING

from mealsight.domain.learning.models import AnalysisStatus, InferenceRecord
from mealsight.domain.recognition.models import DetectedFoodItem
from mealsight.infrastructure.persistence.mongodb.base import MongoBaseRepository


class MongoAnalysisRepository(MongoBaseRepository[InferenceRecord]):
    """
    MongoDB implementation of IAnalysisRepository.

    Document Schema:
    {
        "_id": "analysis_1a2b3c4d5e6f",
        "user_id": "string",
        "image_hash": "sha256-hex or null",
        "user_note": "string or null",
        "items": [{"name": "dal", "portion_grams": 200.0, ...}],
        "overall_confidence": 45.0,
        "explanation": "string or null",
        "model_version": "gpt-4o",
        "status": "analyzed",
        "latency_ms": 2300,
        "created_at": "2025-11-12T10:00:00.000000+00:00",
        "confirmed_at": "2025-11-12T10:01:00.000000+00:00 or null"
    }
    """

    collection_name = "photo_analyses"
    indexes = [
        (
            [
                ("user_id", ASCENDING),
                ("image_hash", ASCENDING),
                ("user_note", ASCENDING),
                ("created_at", DESCENDING),
            ],
            {},
        ),
        ([("model_version", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("status", ASCENDING), ("created_at", DESCENDING)], {}),
    ]

    def to_document(self, entity: InferenceRecord) -> Dict[str, Any]:
        record = entity
        return {
            "_id": record.analysis_id,
            "user_id": record.user_id,
            "image_hash": record.image_hash,
            "user_note": record.user_note,
            "items": [item.model_dump(mode="json") for item in record.items],
            "overall_confidence": record.overall_confidence,
            "explanation": record.explanation,
            "model_version": record.model_version,
            "status": record.status.value,
            "latency_ms": record.latency_ms,
            "created_at": self.datetime_to_iso(record.created_at),
            "confirmed_at": (
                self.datetime_to_iso(record.confirmed_at) if record.confirmed_at else None
            ),
        }

    def from_document(self, doc: Dict[str, Any]) -> InferenceRecord:
        confirmed_at = doc.get("confirmed_at")
        return InferenceRecord(
            analysis_id=doc["_id"],
            user_id=doc["user_id"],
            image_hash=doc.get("image_hash"),
            user_note=doc.get("user_note"),
            items=[DetectedFoodItem(**item) for item in doc.get("items", [])],
            overall_confidence=doc.get("overall_confidence", 0.0),
            explanation=doc.get("explanation"),
            model_version=doc.get("model_version", "unknown"),
            status=AnalysisStatus(doc.get("status", AnalysisStatus.ANALYZED.value)),
            latency_ms=doc.get("latency_ms", 0),
            created_at=self.iso_to_datetime(doc["created_at"]),
            confirmed_at=self.iso_to_datetime(confirmed_at) if confirmed_at else None,
        )

    async def insert(self, record: InferenceRecord) -> None:
        await self._insert_one(self.to_document(record))

    async def get_by_id(self, analysis_id: str) -> Optional[InferenceRecord]:
        doc = await self._find_one({"_id": analysis_id})
        return self._map([doc])[0] if doc else None

    async def mark_confirmed(self, analysis_id: str, confirmed_at: datetime) -> bool:
        matched = await self._update_one(
            {"_id": analysis_id},
            {
                "$set": {
                    "status": AnalysisStatus.CONFIRMED.value,
                    "confirmed_at": self.datetime_to_iso(confirmed_at),
                }
            },
        )
        return matched > 0

    async def attach_image_hash(self, analysis_id: str, image_hash: str) -> bool:
        matched = await self._update_one(
            {"_id": analysis_id}, {"$set": {"image_hash": image_hash}}
        )
        return matched > 0

    async def find_latest(
        self,
        user_id: str,
        image_hash: str,
        user_note: Optional[str],
        since: datetime,
    ) -> Optional[InferenceRecord]:
        doc = await self._find_one(
            {
                "user_id": user_id,
                "image_hash": image_hash,
                "user_note": user_note,
                "created_at": {"$gte": self.datetime_to_iso(since)},
            },
            sort=[("created_at", DESCENDING)],
        )
        return self._map([doc])[0] if doc else None

    async def list_by_user(self, user_id: str, since: datetime) -> List[InferenceRecord]:
        docs = await self._find_many(
            {"user_id": user_id, "created_at": {"$gte": self.datetime_to_iso(since)}},
            sort=[("created_at", DESCENDING)],
        )
        return self._map(docs)

    async def list_by_model_version(
        self, model_version: str, since: datetime
    ) -> List[InferenceRecord]:
        docs = await self._find_many(
            {
                "model_version": model_version,
                "created_at": {"$gte": self.datetime_to_iso(since)},
            }
        )
        return self._map(docs)

    async def count_confirmed(self, start: datetime, end: datetime) -> int:
        return await self._count(
            {
                "status": AnalysisStatus.CONFIRMED.value,
                "created_at": {
                    "$gte": self.datetime_to_iso(start),
                    "$lte": self.datetime_to_iso(end),
                },
            }
        )

    async def delete_older_than(self, user_id: str, cutoff: datetime) -> int:
        return await self._delete_many(
            {"user_id": user_id, "created_at": {"$lt": self.datetime_to_iso(cutoff)}}
        )
