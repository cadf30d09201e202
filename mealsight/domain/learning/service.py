"""
Learning loop service.

Records user corrections to AI output and derives per-user synonym maps
and portion priors that bias future prompts.

Reads degrade to "no personalisation" on storage failure; correction
writes are best-effort and never block the save path.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from mealsight.domain.learning.corrections import changes_portion
from mealsight.domain.learning.models import (
    CommonCorrection,
    CommonError,
    CorrectionRecord,
    CorrectionType,
    GlobalCorrection,
    ModelPerformance,
)
from mealsight.domain.learning.ports import (
    IAnalysisRepository,
    ICorrectionRepository,
    IMealLogRepository,
)

logger = structlog.get_logger(__name__)

CORRECTION_SAMPLE_SIZE = 100
GLOBAL_CORRECTION_SAMPLE_SIZE = 1000
SYNONYM_CANDIDATES = 20
MIN_SYNONYM_COUNT = 2
MIN_PORTION_SAMPLES = 3
MAX_COMMON_ERRORS = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LearningLoop:
    """
    Per-user feedback loop over correction history.

    Example:
        >>> loop = LearningLoop(corrections, analyses, meal_logs)
        >>> await loop.store_correction_feedback(correction)
        >>> synonyms = await loop.build_user_synonym_map("user_123")
        >>> priors = await loop.update_portion_priors("user_123")
    """

    def __init__(
        self,
        corrections: ICorrectionRepository,
        analyses: IAnalysisRepository,
        meal_logs: IMealLogRepository,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._corrections = corrections
        self._analyses = analyses
        self._meal_logs = meal_logs
        self._now = now

    async def store_correction_feedback(self, correction: CorrectionRecord) -> None:
        """
        Append a correction record.

        Failures are logged and swallowed: losing one feedback sample
        must not block the user's save.
        """
        try:
            await self._corrections.append(correction)
            logger.info(
                "Correction stored",
                analysis_id=correction.analysis_id,
                user_id=correction.user_id,
                correction_type=correction.correction_type.value,
            )
        except Exception:
            logger.error(
                "Failed to store correction",
                analysis_id=correction.analysis_id,
                user_id=correction.user_id,
                exc_info=True,
            )

    async def get_common_corrections(
        self, user_id: str, limit: int = 10
    ) -> List[CommonCorrection]:
        """
        A user's recurring renames, most frequent first.

        Scans the last 100 corrections and groups them by lowercased
        original name. The first corrected value seen for a group wins;
        later corrections to a different value are not counted.
        """
        try:
            records = await self._corrections.list_recent_by_user(
                user_id, CORRECTION_SAMPLE_SIZE
            )
        except Exception:
            logger.error("Failed to fetch corrections", user_id=user_id, exc_info=True)
            return []

        groups: Dict[str, Tuple[str, int]] = {}
        for record in records:
            key = record.original_name.lower()
            existing = groups.get(key)

            if existing is None:
                groups[key] = (record.corrected_name, 1)
            elif existing[0] == record.corrected_name:
                groups[key] = (existing[0], existing[1] + 1)

        common = [
            CommonCorrection(original=original, corrected=corrected, count=count)
            for original, (corrected, count) in groups.items()
        ]
        common.sort(key=lambda c: c.count, reverse=True)
        return common[:limit]

    async def build_user_synonym_map(self, user_id: str) -> Dict[str, str]:
        """
        Original -> corrected names the user has applied at least twice.

        Single corrections are noise, not a pattern.
        """
        common = await self.get_common_corrections(user_id, SYNONYM_CANDIDATES)
        return {c.original: c.corrected for c in common if c.count >= MIN_SYNONYM_COUNT}

    async def update_portion_priors(self, user_id: str) -> Dict[str, float]:
        """
        Learned portion (grams) per food name.

        Mean of the user's corrected portions per corrected name,
        rounded to whole grams. Portion-only edits count, and so do
        combined edits (ALL) that moved the portion. Names with fewer
        than 3 samples get no prior.
        """
        try:
            records = await self._corrections.list_by_user_and_type(
                user_id, CorrectionType.PORTION, CORRECTION_SAMPLE_SIZE
            )
            combined = await self._corrections.list_by_user_and_type(
                user_id, CorrectionType.ALL, CORRECTION_SAMPLE_SIZE
            )
            records = records + [record for record in combined if changes_portion(record)]
        except Exception:
            logger.error("Failed to fetch portion corrections", user_id=user_id, exc_info=True)
            return {}

        portions: Dict[str, List[float]] = {}
        for record in records:
            portions.setdefault(record.corrected_name.lower(), []).append(
                record.corrected_item.portion_grams
            )

        return {
            name: float(round(sum(samples) / len(samples)))
            for name, samples in portions.items()
            if len(samples) >= MIN_PORTION_SAMPLES
        }

    async def get_recent_user_foods(self, user_id: str, limit: int = 10) -> List[str]:
        """Distinct food names from the user's latest meals, newest first."""
        try:
            entries = await self._meal_logs.list_recent_by_user(user_id, limit)
        except Exception:
            logger.error("Failed to fetch recent foods", user_id=user_id, exc_info=True)
            return []

        seen: List[str] = []
        for entry in entries:
            for name in entry.food_names:
                if name and name not in seen:
                    seen.append(name)

        return seen[:limit]

    async def get_global_corrections(self, limit: int = 50) -> List[GlobalCorrection]:
        """
        Renames aggregated across all users.

        share is the pair's percentage among all corrections of the same
        original name.
        """
        try:
            records = await self._corrections.list_recent(GLOBAL_CORRECTION_SAMPLE_SIZE)
        except Exception:
            logger.error("Failed to fetch global corrections", exc_info=True)
            return []

        pairs: Counter[Tuple[str, str]] = Counter()
        per_original: Counter[str] = Counter()
        for record in records:
            original = record.original_name.lower()
            pairs[(original, record.corrected_name)] += 1
            per_original[original] += 1

        return [
            GlobalCorrection(
                original=original,
                corrected=corrected,
                count=count,
                share=round(count / per_original[original] * 100, 1),
            )
            for (original, corrected), count in pairs.most_common(limit)
        ]

    async def analyze_model_performance(
        self, model_version: str, days: int = 30
    ) -> ModelPerformance:
        """
        Quality summary for a model version over a trailing window.

        Args:
            model_version: Model to inspect
            days: Window length

        Returns:
            ModelPerformance with rounded average confidence, percentage
            of analyses with at least one correction and the top 10
            "original → corrected" pairs
        """
        since = self._now() - timedelta(days=days)
        empty = ModelPerformance(model_version=model_version)

        try:
            analyses = await self._analyses.list_by_model_version(model_version, since)
            if not analyses:
                return empty
            corrections = await self._corrections.list_by_analysis_ids(
                [a.analysis_id for a in analyses]
            )
        except Exception:
            logger.error(
                "Failed to analyze model performance",
                model_version=model_version,
                exc_info=True,
            )
            return empty

        corrected_ids = {c.analysis_id for c in corrections}
        errors: Counter[str] = Counter(
            f"{c.original_name} → {c.corrected_name}" for c in corrections
        )
        total_confidence = sum(a.overall_confidence for a in analyses)

        return ModelPerformance(
            model_version=model_version,
            sample_size=len(analyses),
            average_confidence=round(total_confidence / len(analyses)),
            correction_rate=round(len(corrected_ids) / len(analyses) * 100),
            common_errors=[
                CommonError(error=error, count=count)
                for error, count in errors.most_common(MAX_COMMON_ERRORS)
            ],
        )

    async def personalisation(
        self, user_id: str, recent_limit: Optional[int] = None
    ) -> Tuple[Dict[str, str], Dict[str, float], List[str]]:
        """Synonym map, portion priors and recent foods for prompt biasing."""
        synonyms = await self.build_user_synonym_map(user_id)
        priors = await self.update_portion_priors(user_id)
        recent = await self.get_recent_user_foods(user_id, recent_limit or 10)
        return synonyms, priors, recent
