"""
Analysis cache.

Reuses earlier inference results for the same photo and note. Backed
by the analysis repository, so entries survive restarts.

The cache is advisory: every failure degrades to a miss (or a no-op
write) and is logged, never raised.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from mealsight.domain.learning.ports import IAnalysisRepository
from mealsight.domain.recognition.models import DetectedFoodItem

logger = structlog.get_logger(__name__)

CACHE_FRESHNESS_DAYS = 7
DEFAULT_PURGE_DAYS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CachedAnalysis(BaseModel):
    """A reusable inference result."""

    model_config = ConfigDict(frozen=True)

    analysis_id: str
    image_hash: str
    user_note: Optional[str] = None
    parsed_output: List[DetectedFoodItem] = Field(default_factory=list)
    overall_confidence: float = 0.0
    cached_at: datetime


class CacheStats(BaseModel):
    """Per-user cache figures plus this process's hit rate."""

    total_cached: int = 0
    avg_latency_saved_ms: float = 0.0
    hit_rate: float = 0.0


class AnalysisCache:
    """
    Inference result cache keyed by (user, image hash, note).

    A note-less photo and the same photo with a note are different
    entries; notes must match exactly.

    Example:
        >>> cache = AnalysisCache(analysis_repository)
        >>> await cache.store("user_123", image_hash, record.analysis_id)
        >>> hit = await cache.lookup("user_123", image_hash)
        >>> assert hit.analysis_id == record.analysis_id
    """

    def __init__(
        self,
        repository: IAnalysisRepository,
        freshness_days: int = CACHE_FRESHNESS_DAYS,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Args:
            repository: Inference record store
            freshness_days: Entries older than this are ignored (default 7)
            now: Clock (injectable for tests)
        """
        self._repository = repository
        self.freshness = timedelta(days=freshness_days)
        self._now = now
        self._stats = {"hits": 0, "misses": 0}

    async def lookup(
        self, user_id: str, image_hash: str, user_note: Optional[str] = None
    ) -> Optional[CachedAnalysis]:
        """
        Most recent fresh entry for (user, hash, note), or None.

        Any completed inference qualifies, confirmed by the user or not.

        Args:
            user_id: Owner
            image_hash: Photo fingerprint
            user_note: Note, matched exactly (None only matches None)

        Returns:
            CachedAnalysis or None on miss, expiry or storage failure
        """
        since = self._now() - self.freshness

        try:
            record = await self._repository.find_latest(user_id, image_hash, user_note, since)
        except Exception:
            logger.error(
                "Cache lookup failed, treating as miss",
                user_id=user_id,
                image_hash=image_hash,
                exc_info=True,
            )
            self._stats["misses"] += 1
            return None

        if record is None or record.image_hash is None:
            logger.debug("Cache miss", user_id=user_id, image_hash=image_hash)
            self._stats["misses"] += 1
            return None

        self._stats["hits"] += 1
        logger.info(
            "Cache hit",
            user_id=user_id,
            image_hash=image_hash,
            analysis_id=record.analysis_id,
            cached_at=record.created_at.isoformat(),
        )
        return CachedAnalysis(
            analysis_id=record.analysis_id,
            image_hash=record.image_hash,
            user_note=record.user_note,
            parsed_output=record.items,
            overall_confidence=record.overall_confidence,
            cached_at=record.created_at,
        )

    async def store(self, user_id: str, image_hash: str, analysis_id: str) -> None:
        """Attach a photo hash to a completed analysis so later lookups find it."""
        try:
            found = await self._repository.attach_image_hash(analysis_id, image_hash)
        except Exception:
            logger.error(
                "Cache store failed",
                user_id=user_id,
                analysis_id=analysis_id,
                exc_info=True,
            )
            return

        if not found:
            logger.warning("Cache store skipped, analysis not found", analysis_id=analysis_id)
            return

        logger.debug("Cached analysis", user_id=user_id, image_hash=image_hash)

    async def purge_older_than(self, user_id: str, days: int = DEFAULT_PURGE_DAYS) -> int:
        """
        Delete a user's entries older than `days`.

        Returns:
            Number of entries removed (0 on failure)
        """
        cutoff = self._now() - timedelta(days=days)

        try:
            removed = await self._repository.delete_older_than(user_id, cutoff)
        except Exception:
            logger.error("Cache purge failed", user_id=user_id, exc_info=True)
            return 0

        if removed:
            logger.info("Removed old cache entries", user_id=user_id, count=removed)
        return removed

    async def stats(self, user_id: str) -> CacheStats:
        """
        Cache figures for a user.

        Returns:
            Fresh cached entries, their average inference latency (the
            time a hit saves) and this process's hit rate
        """
        lookups = self._stats["hits"] + self._stats["misses"]
        hit_rate = round(self._stats["hits"] / lookups * 100, 1) if lookups else 0.0

        try:
            records = await self._repository.list_by_user(user_id, self._now() - self.freshness)
        except Exception:
            logger.error("Cache stats failed", user_id=user_id, exc_info=True)
            return CacheStats(hit_rate=hit_rate)

        cached = [r for r in records if r.image_hash is not None]
        avg_latency = sum(r.latency_ms for r in cached) / len(cached) if cached else 0.0

        return CacheStats(
            total_cached=len(cached),
            avg_latency_saved_ms=round(avg_latency, 1),
            hit_rate=hit_rate,
        )
