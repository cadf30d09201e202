"""
Learning loop domain models.

Inference records, user correction records and the aggregates derived
from them. Records are append-only; aggregates are recomputed on demand.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mealsight.domain.recognition.models import DetectedFoodItem


def generate_analysis_id() -> str:
    """Generate an analysis id ("analysis_<12 hex chars>")."""
    return f"analysis_{uuid.uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CorrectionType(str, Enum):
    """Which aspect of an item the user changed."""

    NAME = "name"
    PORTION = "portion"
    MACROS = "macros"
    ALL = "all"


class AnalysisStatus(str, Enum):
    """Lifecycle of an inference record."""

    ANALYZED = "analyzed"  # Inference completed, result reusable from cache
    CONFIRMED = "confirmed"  # User confirmed (possibly edited) and saved the meal


class InferenceRecord(BaseModel):
    """
    One completed photo analysis.

    Doubles as the cache entry: once an image hash is attached, the
    record is found again by (user_id, image_hash, user_note) while it
    is fresh.

    Attributes:
        analysis_id: Unique id ("analysis_<12 hex>")
        user_id: Owner
        image_hash: Photo fingerprint (set once the result is cached)
        user_note: Note sent with the photo (None when absent)
        items: Items returned by the oracle
        overall_confidence: Meal-level confidence (0 - 100)
        explanation: Model reasoning, if any
        model_version: Model that produced the result
        status: saved or confirmed
        latency_ms: Oracle round-trip time
        created_at: When the analysis completed (UTC)
        confirmed_at: When the user confirmed the meal (UTC)
    """

    model_config = ConfigDict(validate_assignment=True, protected_namespaces=())

    analysis_id: str = Field(
        default_factory=generate_analysis_id, pattern=r"^analysis_[a-f0-9]{12}$"
    )
    user_id: str = Field(..., min_length=1)
    image_hash: Optional[str] = None
    user_note: Optional[str] = None
    items: List[DetectedFoodItem] = Field(default_factory=list)
    overall_confidence: float = Field(0.0, ge=0.0, le=100.0)
    explanation: Optional[str] = None
    model_version: str = "unknown"
    status: AnalysisStatus = AnalysisStatus.ANALYZED
    latency_ms: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    confirmed_at: Optional[datetime] = None

    @field_validator("created_at", "confirmed_at")
    @classmethod
    def timestamps_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None


class CorrectionRecord(BaseModel):
    """
    A user's edit of one AI-detected item.

    Append-only. Removed only by bulk retention cleanup.

    Attributes:
        analysis_id: Analysis the item came from
        user_id: User who made the correction
        original_item: Item as the oracle returned it
        corrected_item: Item as the user saved it
        correction_type: Which aspect changed
        created_at: When the correction was made (UTC)
    """

    model_config = ConfigDict(frozen=True)

    analysis_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    original_item: DetectedFoodItem
    corrected_item: DetectedFoodItem
    correction_type: CorrectionType
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def original_name(self) -> str:
        return self.original_item.name

    @property
    def corrected_name(self) -> str:
        return self.corrected_item.name


class MealLogEntry(BaseModel):
    """A saved meal, reduced to what personalisation and metrics read."""

    model_config = ConfigDict(frozen=True)

    meal_log_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., min_length=1)
    source: str = Field("photo", pattern="^(photo|manual|text)$")
    context_note: Optional[str] = None
    food_names: List[str] = Field(default_factory=list)
    analysis_id: Optional[str] = None
    logged_at: datetime = Field(default_factory=_utcnow)

    @field_validator("logged_at")
    @classmethod
    def logged_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


# ═══════════════════════════════════════════════════════════
# DERIVED AGGREGATES
# ═══════════════════════════════════════════════════════════


class CommonCorrection(BaseModel):
    """A user's recurring (original -> corrected) rename."""

    model_config = ConfigDict(frozen=True)

    original: str
    corrected: str
    count: int = Field(..., ge=1)


class GlobalCorrection(BaseModel):
    """A rename aggregated across all users.

    share is the pair's percentage of all corrections for the same
    original name.
    """

    model_config = ConfigDict(frozen=True)

    original: str
    corrected: str
    count: int = Field(..., ge=1)
    share: float = Field(..., ge=0.0, le=100.0)


class CommonError(BaseModel):
    """A frequent "original → corrected" error pair."""

    model_config = ConfigDict(frozen=True)

    error: str
    count: int


class ModelPerformance(BaseModel):
    """Offline quality summary for one model version."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_version: str
    sample_size: int = 0
    average_confidence: int = 0
    correction_rate: int = 0
    common_errors: List[CommonError] = Field(default_factory=list)
