"""Analyze meal photo command and pipeline.

Step 1 of the photo flow:
1. analyze photo → assessed items plus save verdict
2. confirm meal → corrections recorded, meal logged
"""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

import structlog

from mealsight.domain.confidence.assessment import ConfidenceAssessment, assess_item_confidence
from mealsight.domain.confidence.save_gate import SaveDecision, SaveGate
from mealsight.domain.learning.models import InferenceRecord
from mealsight.domain.learning.ports import IAnalysisRepository
from mealsight.domain.learning.service import LearningLoop
from mealsight.domain.metrics.models import EventType
from mealsight.domain.metrics.tracker import MetricsTracker
from mealsight.domain.profile.preferences import UserPreferences
from mealsight.domain.recognition.fingerprint import ImageSource, fingerprint_async
from mealsight.domain.recognition.models import (
    DetectedFoodItem,
    MealType,
    OracleRequest,
    OracleResponse,
)
from mealsight.domain.recognition.ports import IInferenceOracle
from mealsight.domain.recognition.prompts import (
    MAX_RECENT_FOODS_IN_PROMPT,
    merge_portion_priors,
    merge_synonym_map,
)
from mealsight.domain.shared.errors import (
    AnalysisFailedError,
    AnalysisFailureReason,
    OracleError,
    RepositoryError,
)
from mealsight.infrastructure.cache.analysis_cache import AnalysisCache
from mealsight.infrastructure.resilience.retry import RetryPolicy, retry_on_bad_json

logger = structlog.get_logger(__name__)

MAX_NOTE_LENGTH = 140

Sleep = Callable[[float], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def prepare_note(note: Optional[str]) -> Optional[str]:
    """Strip a user note and cap it at 140 characters (blank means None)."""
    if note is None or not note.strip():
        return None

    note = note.strip()
    if len(note) > MAX_NOTE_LENGTH:
        logger.warning(
            "User note trimmed", original_length=len(note), max_length=MAX_NOTE_LENGTH
        )
        note = note[:MAX_NOTE_LENGTH].rstrip()
    return note


@dataclass(frozen=True)
class AnalyzePhotoCommand:
    """
    Command: analyze a meal photo.

    Attributes:
        user_id: Owner of the analysis
        image_url: Photo reference sent to the oracle (URL or data URI)
        image: Raw bytes or local path used for the fingerprint, set
            in-process only (defaults to hashing the image_url string)
        user_note: Optional free-text note ("2 rotis, no ghee")
        meal_type: Optional meal slot hint
        preferences: Validated user preferences
    """

    user_id: str
    image_url: str
    image: Optional[ImageSource] = None
    user_note: Optional[str] = None
    meal_type: Optional[MealType] = None
    preferences: UserPreferences = field(default_factory=UserPreferences)


@dataclass(frozen=True)
class AssessedItem:
    """Detected item with its UI guidance."""

    item: DetectedFoodItem
    assessment: ConfidenceAssessment


@dataclass(frozen=True)
class PhotoAnalysisResult:
    """
    Analysis handed back to the caller.

    Attributes:
        analysis_id: Id to pass back on confirmation
        image_hash: Photo fingerprint
        user_note: Note actually used (trimmed)
        items: Items with per-item assessments
        overall_confidence: Meal-level confidence (0 - 100)
        explanation: Model reasoning, if any
        save_decision: Save verdict for the items as detected
        from_cache: True when served from the analysis cache
        latency_ms: Time spent in this call
    """

    analysis_id: str
    image_hash: str
    user_note: Optional[str]
    items: List[AssessedItem]
    overall_confidence: float
    explanation: Optional[str]
    save_decision: SaveDecision
    from_cache: bool
    latency_ms: int


class PhotoAnalysisPipeline:
    """
    Handler for AnalyzePhotoCommand.

    fingerprint → cache → (miss) personalised oracle call under retry
    → per-item assessment and save verdict.

    Example:
        >>> pipeline = PhotoAnalysisPipeline(oracle, cache, analyses, learning, tracker)
        >>> result = await pipeline.handle(
        ...     AnalyzePhotoCommand(user_id="user_123", image_url="https://.../dal.jpg")
        ... )
        >>> result.items[0].assessment.level
        <ConfidenceLevel.LOW: 'low'>
    """

    def __init__(
        self,
        oracle: IInferenceOracle,
        cache: AnalysisCache,
        analyses: IAnalysisRepository,
        learning: LearningLoop,
        tracker: MetricsTracker,
        retry_policy: Optional[RetryPolicy] = None,
        bad_json_max_attempts: int = 2,
        save_gate: Optional[SaveGate] = None,
        sleep: Optional[Sleep] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            oracle: Inference oracle port
            cache: Analysis cache
            analyses: Inference record repository
            learning: Learning loop (personalisation source)
            tracker: Metrics tracker (telemetry)
            retry_policy: Transient-failure policy
            bad_json_max_attempts: Attempts for malformed output
            save_gate: Save verdict evaluator
            sleep: Awaitable sleep for the bad-JSON pause (injectable for tests)
            now: Clock for record timestamps (injectable for tests)
        """
        self._oracle = oracle
        self._cache = cache
        self._analyses = analyses
        self._learning = learning
        self._tracker = tracker
        self._retry_policy = retry_policy or RetryPolicy()
        self._bad_json_max_attempts = bad_json_max_attempts
        self._save_gate = save_gate or SaveGate()
        self._sleep = sleep or asyncio.sleep
        self._now = now

    def _assemble(
        self,
        analysis_id: str,
        image_hash: str,
        user_note: Optional[str],
        items: List[DetectedFoodItem],
        overall_confidence: float,
        explanation: Optional[str],
        from_cache: bool,
        latency_ms: int,
    ) -> PhotoAnalysisResult:
        return PhotoAnalysisResult(
            analysis_id=analysis_id,
            image_hash=image_hash,
            user_note=user_note,
            items=[AssessedItem(item, assess_item_confidence(item)) for item in items],
            overall_confidence=overall_confidence,
            explanation=explanation,
            save_decision=self._save_gate.evaluate(items),
            from_cache=from_cache,
            latency_ms=latency_ms,
        )

    async def _build_request(
        self, command: AnalyzePhotoCommand, user_note: Optional[str]
    ) -> OracleRequest:
        synonyms, priors, recent = await self._learning.personalisation(
            command.user_id, MAX_RECENT_FOODS_IN_PROMPT
        )
        preferences = command.preferences
        return OracleRequest(
            image_url=command.image_url,
            user_note=user_note,
            meal_type=command.meal_type,
            region=preferences.effective_region,
            dietary_prefs=preferences.prompt_dietary_prefs(),
            synonym_map=merge_synonym_map(synonyms),
            portion_priors=merge_portion_priors(priors),
            recent_foods=recent,
        )

    async def _call_oracle(self, request: OracleRequest) -> OracleResponse:
        async def with_bad_json_retry() -> OracleResponse:
            return await retry_on_bad_json(
                functools.partial(self._oracle.analyze, request),
                max_attempts=self._bad_json_max_attempts,
                sleep=self._sleep,
            )

        return await self._retry_policy.execute(with_bad_json_retry, context="photo_analysis")

    async def handle(self, command: AnalyzePhotoCommand) -> PhotoAnalysisResult:
        """
        Execute photo analysis.

        Args:
            command: AnalyzePhotoCommand

        Returns:
            PhotoAnalysisResult

        Raises:
            AnalysisFailedError: Oracle path exhausted (service_unavailable
                or could_not_parse) or the record could not be stored
                (storage_unavailable); no partial result is returned
        """
        start_time = time.monotonic()
        user_id = command.user_id
        user_note = prepare_note(command.user_note)
        image_hash = await fingerprint_async(
            command.image if command.image is not None else command.image_url
        )

        logger.info(
            "Analyzing meal photo",
            user_id=user_id,
            image_hash=image_hash,
            has_note=user_note is not None,
        )

        cached = await self._cache.lookup(user_id, image_hash, user_note)
        if cached is not None:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            await self._tracker.track(
                user_id,
                EventType.CACHE_HIT,
                analysis_id=cached.analysis_id,
                image_hash=image_hash,
                had_note=user_note is not None,
            )
            return self._assemble(
                cached.analysis_id,
                image_hash,
                user_note,
                list(cached.parsed_output),
                cached.overall_confidence,
                None,
                True,
                latency_ms,
            )

        request = await self._build_request(command, user_note)

        await self._tracker.track(
            user_id,
            EventType.AI_ANALYSIS_STARTED,
            image_hash=image_hash,
            had_note=user_note is not None,
        )

        try:
            response = await self._call_oracle(request)
        except OracleError as e:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            reason = (
                AnalysisFailureReason.COULD_NOT_PARSE
                if e.is_malformed_output
                else AnalysisFailureReason.SERVICE_UNAVAILABLE
            )
            logger.error(
                "Photo analysis failed",
                user_id=user_id,
                image_hash=image_hash,
                reason=reason.value,
                error_kind=e.kind.value,
                latency_ms=latency_ms,
            )
            await self._tracker.track(
                user_id,
                EventType.AI_ANALYSIS_FAILED,
                image_hash=image_hash,
                reason=reason.value,
                error_kind=e.kind.value,
                latency_ms=latency_ms,
                had_note=user_note is not None,
            )
            message = (
                "Could not read the analysis result. Please try again."
                if reason == AnalysisFailureReason.COULD_NOT_PARSE
                else "Analysis service is unavailable. Please try again."
            )
            raise AnalysisFailedError(reason, message, cause=e) from e

        latency_ms = int((time.monotonic() - start_time) * 1000)
        record = InferenceRecord(
            user_id=user_id,
            user_note=user_note,
            items=response.items,
            overall_confidence=response.overall_confidence,
            explanation=response.explanation,
            model_version=response.model_version,
            latency_ms=latency_ms,
            created_at=self._now(),
        )

        try:
            await self._analyses.insert(record)
        except RepositoryError as e:
            logger.error(
                "Failed to store inference record",
                user_id=user_id,
                analysis_id=record.analysis_id,
                error=str(e),
            )
            await self._tracker.track(
                user_id,
                EventType.AI_ANALYSIS_FAILED,
                image_hash=image_hash,
                reason=AnalysisFailureReason.STORAGE_UNAVAILABLE.value,
                latency_ms=latency_ms,
                had_note=user_note is not None,
            )
            raise AnalysisFailedError(
                AnalysisFailureReason.STORAGE_UNAVAILABLE,
                "Could not save the analysis. Please try again.",
                cause=e,
            ) from e

        await self._cache.store(user_id, image_hash, record.analysis_id)

        await self._tracker.track(
            user_id,
            EventType.AI_ANALYSIS_COMPLETED,
            analysis_id=record.analysis_id,
            item_count=len(response.items),
            overall_confidence=response.overall_confidence,
            model_version=response.model_version,
            latency_ms=latency_ms,
            had_note=user_note is not None,
        )

        logger.info(
            "Photo analysis complete",
            user_id=user_id,
            analysis_id=record.analysis_id,
            item_count=len(response.items),
            latency_ms=latency_ms,
        )

        return self._assemble(
            record.analysis_id,
            image_hash,
            user_note,
            list(response.items),
            response.overall_confidence,
            response.explanation,
            False,
            latency_ms,
        )
