"""REST endpoints.

- POST /analyze-photo: photo → assessed items and save verdict
- POST /meals/confirm: save (possibly edited) items
- GET  /metrics/...: quality reporting
"""

from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from mealsight.api.schemas import (
    AnalyzePhotoRequest,
    AnalyzePhotoResponse,
    ConfirmMealRequest,
    ConfirmMealResponse,
    ErrorResponse,
)
from mealsight.application.commands.analyze_photo import AnalyzePhotoCommand
from mealsight.application.commands.confirm_meal import ConfirmedItem, ConfirmMealCommand
from mealsight.application.queries.get_quality_report import (
    GetNoteImpactQuery,
    GetQualityReportQuery,
)
from mealsight.container import Container
from mealsight.domain.learning.models import CommonCorrection, GlobalCorrection, ModelPerformance
from mealsight.domain.profile.preferences import UserPreferences, parse_user_preferences
from mealsight.domain.recognition.models import DetectedFoodItem
from mealsight.domain.shared.errors import (
    AnalysisFailedError,
    AnalysisFailureReason,
    AnalysisNotFoundError,
    RepositoryError,
    SaveBlockedError,
    ValidationError,
)
from mealsight.infrastructure.cache.analysis_cache import CacheStats

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_container(request: Request) -> Container:
    container: Container = request.app.state.container
    return container


def _error(status_code: int, error: str, message: str, retry: bool = False) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, retry=retry)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _preferences(body: AnalyzePhotoRequest) -> UserPreferences:
    payload: Dict[str, Any] = dict(body.preferences or {})
    if body.user_region is not None:
        payload["region"] = body.user_region
    if body.dietary_prefs is not None:
        payload["dietary_prefs"] = body.dietary_prefs
    return parse_user_preferences(payload)


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.post(
    "/analyze-photo",
    response_model=AnalyzePhotoResponse,
    responses={
        400: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def analyze_photo(
    body: AnalyzePhotoRequest, container: Container = Depends(get_container)
) -> Any:
    if not body.image_url or not body.user_id:
        return _error(400, "missing_fields", "image_url and user_id are required")

    if container.pipeline is None:
        return _error(503, "not_configured", "Inference service not configured")

    try:
        preferences = _preferences(body)
    except ValidationError as e:
        return _error(400, "invalid_preferences", str(e))

    command = AnalyzePhotoCommand(
        user_id=body.user_id,
        image_url=body.image_url,
        user_note=body.aux_text,
        meal_type=body.meal_type,
        preferences=preferences,
    )

    try:
        result = await container.pipeline.handle(command)
    except AnalysisFailedError as e:
        status_code = 502 if e.reason == AnalysisFailureReason.COULD_NOT_PARSE else 503
        return _error(status_code, e.reason.value, str(e), retry=e.user_can_retry)

    return AnalyzePhotoResponse.from_result(result)


@router.post(
    "/meals/confirm",
    response_model=ConfirmMealResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def confirm_meal(
    body: ConfirmMealRequest, container: Container = Depends(get_container)
) -> Any:
    try:
        items = [
            ConfirmedItem(
                item=DetectedFoodItem(
                    name=item.name,
                    portion_grams=item.portion,
                    calories=item.calories,
                    protein_grams=item.protein,
                    carbs_grams=item.carbs,
                    fat_grams=item.fat,
                    confidence=item.confidence,
                ),
                original_index=item.original_index,
            )
            for item in body.items
        ]
    except ValueError as e:
        return _error(400, "invalid_item", str(e))

    command = ConfirmMealCommand(
        user_id=body.user_id,
        analysis_id=body.analysis_id,
        items=items,
        photo_ref=body.photo_ref,
        captured_at=body.captured_at,
    )

    try:
        result = await container.confirm_handler.handle(command)
    except SaveBlockedError as e:
        return _error(422, "save_blocked", e.reason)
    except AnalysisNotFoundError as e:
        return _error(404, "analysis_not_found", str(e))
    except ValidationError as e:
        return _error(400, "invalid_request", str(e))
    except RepositoryError as e:
        logger.error("Meal confirmation failed", analysis_id=body.analysis_id, error=str(e))
        return _error(
            503, "storage_unavailable", "Could not save the meal. Please try again.", retry=True
        )

    return ConfirmMealResponse.from_result(result)


@router.get("/metrics/quality")
async def quality_metrics(
    days: int = Query(30, ge=1, le=365), container: Container = Depends(get_container)
) -> Dict[str, Any]:
    report = await container.quality_report_handler.handle(GetQualityReportQuery(days=days))
    return {
        "start": report.start.isoformat(),
        "end": report.end.isoformat(),
        "metrics": report.metrics.model_dump(),
        "evaluation": report.evaluation.model_dump(),
    }


@router.get("/metrics/note-impact")
async def note_impact(container: Container = Depends(get_container)) -> Dict[str, Any]:
    report = await container.note_impact_handler.handle(GetNoteImpactQuery())
    return {
        "metrics": report.metrics.model_dump(),
        "thresholds": report.thresholds.model_dump(),
        "all_met": report.thresholds.all_met,
    }


@router.get("/metrics/models/{model_version}", response_model=ModelPerformance)
async def model_performance(
    model_version: str,
    days: int = Query(30, ge=1, le=365),
    container: Container = Depends(get_container),
) -> ModelPerformance:
    return await container.learning.analyze_model_performance(model_version, days)


@router.get("/corrections/global", response_model=List[GlobalCorrection])
async def global_corrections(
    limit: int = Query(50, ge=1, le=500), container: Container = Depends(get_container)
) -> List[GlobalCorrection]:
    return await container.learning.get_global_corrections(limit)


@router.get("/users/{user_id}/corrections", response_model=List[CommonCorrection])
async def common_corrections(
    user_id: str,
    limit: int = Query(10, ge=1, le=100),
    container: Container = Depends(get_container),
) -> List[CommonCorrection]:
    return await container.learning.get_common_corrections(user_id, limit)


@router.get("/users/{user_id}/cache-stats", response_model=CacheStats)
async def cache_stats(user_id: str, container: Container = Depends(get_container)) -> CacheStats:
    return await container.cache.stats(user_id)


@router.delete("/users/{user_id}/cache")
async def purge_cache(
    user_id: str,
    days: int = Query(30, ge=1),
    container: Container = Depends(get_container),
) -> Dict[str, int]:
    return {"deleted": await container.cache.purge_older_than(user_id, days)}
