"""Quality report queries - pipeline metrics against targets."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from mealsight.domain.metrics.models import (
    EvaluationMetrics,
    SuccessMetrics,
    SuccessThresholds,
    TargetEvaluation,
)
from mealsight.domain.metrics.tracker import (
    MetricsTracker,
    check_success_thresholds,
    evaluate_against_targets,
)
from mealsight.domain.shared.errors import ValidationError

logger = structlog.get_logger(__name__)

DEFAULT_REPORT_DAYS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class QualityReport:
    """
    Pipeline quality over a date range.

    Attributes:
        start: Range start
        end: Range end
        metrics: Accuracy, RMSE, MAE and edit rate
        evaluation: Per-metric gaps against the fixed targets
    """

    start: datetime
    end: datetime
    metrics: EvaluationMetrics
    evaluation: TargetEvaluation


@dataclass(frozen=True)
class GetQualityReportQuery:
    """
    Query: quality report for [start, end].

    Attributes:
        start: Range start (defaults to `days` before end)
        end: Range end (defaults to now)
        days: Window used when start is omitted
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    days: int = DEFAULT_REPORT_DAYS


class GetQualityReportQueryHandler:
    """Handler for GetQualityReportQuery."""

    def __init__(self, tracker: MetricsTracker, now: Callable[[], datetime] = _utcnow):
        self._tracker = tracker
        self._now = now

    async def handle(self, query: GetQualityReportQuery) -> QualityReport:
        """
        Raises:
            ValidationError: start after end, or non-positive window
            RepositoryError: On storage failure
        """
        if query.days < 1:
            raise ValidationError("days must be at least 1")

        end = query.end or self._now()
        start = query.start or end - timedelta(days=query.days)
        if start > end:
            raise ValidationError("start must not be after end")

        metrics = await self._tracker.compute_metrics(start, end)
        evaluation = evaluate_against_targets(metrics)

        logger.info(
            "Quality report generated",
            sample_size=metrics.sample_size,
            meets_targets=evaluation.meets_targets,
            gaps=len(evaluation.gaps),
        )
        return QualityReport(start=start, end=end, metrics=metrics, evaluation=evaluation)


@dataclass(frozen=True)
class NoteImpactReport:
    """Note feature success figures and which thresholds they meet."""

    metrics: SuccessMetrics
    thresholds: SuccessThresholds


@dataclass(frozen=True)
class GetNoteImpactQuery:
    """Query: note A/B figures (last 14 days when no range is given)."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None


class GetNoteImpactQueryHandler:
    """Handler for GetNoteImpactQuery."""

    def __init__(self, tracker: MetricsTracker):
        self._tracker = tracker

    async def handle(self, query: GetNoteImpactQuery) -> NoteImpactReport:
        metrics = await self._tracker.get_success_metrics(query.start, query.end)
        return NoteImpactReport(metrics=metrics, thresholds=check_success_thresholds(metrics))
