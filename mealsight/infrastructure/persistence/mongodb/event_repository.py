"""MongoDB implementation of the analysis event repository."""

from datetime import datetime
from typing import Any, Dict, List, Sequence

from pymongo import ASCENDING, DESCENDING

from mealsight.domain.metrics.models import AnalysisEvent, EventType
from mealsight.infrastructure.persistence.mongodb.base import MongoBaseRepository


class MongoEventRepository(MongoBaseRepository[AnalysisEvent]):
    """
    MongoDB implementation of IEventRepository.

    Events are written in unordered batches by the event queue.
    """

    collection_name = "analysis_events"
    indexes = [([("event_type", ASCENDING), ("created_at", DESCENDING)], {})]

    def to_document(self, entity: AnalysisEvent) -> Dict[str, Any]:
        return {
            "user_id": entity.user_id,
            "event_type": entity.event_type.value,
            "event_data": dict(entity.event_data),
            "created_at": self.datetime_to_iso(entity.created_at),
        }

    def from_document(self, doc: Dict[str, Any]) -> AnalysisEvent:
        return AnalysisEvent(
            user_id=doc["user_id"],
            event_type=EventType(doc["event_type"]),
            event_data=doc.get("event_data") or {},
            created_at=self.iso_to_datetime(doc["created_at"]),
        )

    async def insert_many(self, events: Sequence[AnalysisEvent]) -> None:
        await self._insert_many([self.to_document(event) for event in events])

    async def list_by_type(
        self, event_type: EventType, start: datetime, end: datetime
    ) -> List[AnalysisEvent]:
        docs = await self._find_many(
            {
                "event_type": event_type.value,
                "created_at": {
                    "$gte": self.datetime_to_iso(start),
                    "$lte": self.datetime_to_iso(end),
                },
            }
        )
        return self._map(docs)
