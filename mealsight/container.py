"""Process-scoped wiring.

Builds every collaborator once from Settings. The API lifespan owns
the container and calls `aclose()` on shutdown, which drains the
event queue and closes the oracle client.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from mealsight.application.commands.analyze_photo import PhotoAnalysisPipeline
from mealsight.application.commands.confirm_meal import ConfirmMealCommandHandler
from mealsight.application.queries.get_quality_report import (
    GetNoteImpactQueryHandler,
    GetQualityReportQueryHandler,
)
from mealsight.domain.learning.service import LearningLoop
from mealsight.domain.metrics.tracker import MetricsTracker
from mealsight.domain.recognition.ports import IInferenceOracle
from mealsight.infrastructure.ai.oracle_client import InferenceOracleClient
from mealsight.infrastructure.cache.analysis_cache import AnalysisCache
from mealsight.infrastructure.config import Settings
from mealsight.infrastructure.events.event_queue import BatchingEventQueue
from mealsight.infrastructure.persistence.factory import Repositories, create_repositories
from mealsight.infrastructure.resilience.retry import RetryConfig, RetryPolicy

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class Container:
    """
    Application object graph.

    `pipeline` is None when no inference oracle is configured; the
    rest of the application (confirmation, metrics) still works.
    """

    settings: Settings
    repositories: Repositories
    event_queue: BatchingEventQueue
    cache: AnalysisCache
    learning: LearningLoop
    tracker: MetricsTracker
    confirm_handler: ConfirmMealCommandHandler
    quality_report_handler: GetQualityReportQueryHandler
    note_impact_handler: GetNoteImpactQueryHandler
    oracle: Optional[IInferenceOracle] = None
    pipeline: Optional[PhotoAnalysisPipeline] = None

    async def aclose(self) -> None:
        """Drain pending events and release the oracle client."""
        await self.event_queue.shutdown()
        if isinstance(self.oracle, InferenceOracleClient):
            await self.oracle.close()
        logger.info("Container closed")


def build_container(
    settings: Settings,
    oracle: Optional[IInferenceOracle] = None,
    repositories: Optional[Repositories] = None,
    sleep: Sleep = asyncio.sleep,
) -> Container:
    """
    Wire the application.

    Args:
        settings: Application settings
        oracle: Oracle to use instead of building one from settings
        repositories: Stores to use instead of the configured backend
        sleep: Awaitable sleep shared by retry policies (injectable for tests)

    Returns:
        Container

    Raises:
        ValueError: Inconsistent retry settings
        RepositoryError: mongodb backend without a usable URI
    """
    repositories = repositories or create_repositories(settings)

    if oracle is None and settings.openai_api_key:
        oracle = InferenceOracleClient(
            api_key=settings.openai_api_key,
            model=settings.model,
            timeout=settings.oracle_timeout_s,
        )
    if oracle is None:
        logger.warning("OPENAI_API_KEY not configured, photo analysis disabled")

    event_queue = BatchingEventQueue(
        repositories.events,
        batch_size=settings.event_batch_size,
        flush_interval_s=settings.event_flush_interval_s,
        max_pending=settings.event_max_pending,
    )
    cache = AnalysisCache(repositories.analyses, freshness_days=settings.cache_freshness_days)
    learning = LearningLoop(repositories.corrections, repositories.analyses, repositories.meal_logs)
    tracker = MetricsTracker(
        repositories.corrections,
        repositories.analyses,
        repositories.events,
        repositories.meal_logs,
        sink=event_queue,
    )

    pipeline = None
    if oracle is not None:
        retry_policy = RetryPolicy(
            RetryConfig(
                max_attempts=settings.retry_max_attempts,
                initial_delay_ms=settings.retry_initial_delay_ms,
                max_delay_ms=settings.retry_max_delay_ms,
                backoff_multiplier=settings.retry_backoff_multiplier,
            ),
            sleep=sleep,
        )
        pipeline = PhotoAnalysisPipeline(
            oracle,
            cache,
            repositories.analyses,
            learning,
            tracker,
            retry_policy=retry_policy,
            bad_json_max_attempts=settings.bad_json_max_attempts,
            sleep=sleep,
        )

    return Container(
        settings=settings,
        repositories=repositories,
        event_queue=event_queue,
        cache=cache,
        learning=learning,
        tracker=tracker,
        confirm_handler=ConfirmMealCommandHandler(
            repositories.analyses, repositories.meal_logs, learning, tracker
        ),
        quality_report_handler=GetQualityReportQueryHandler(tracker),
        note_impact_handler=GetNoteImpactQueryHandler(tracker),
        oracle=oracle,
        pipeline=pipeline,
    )
