"""
Oracle output parsing.

Turns raw model text into an OracleResponse. Malformed output is a
distinct error class from transport failures so it can use its own,
smaller retry budget.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from mealsight.domain.recognition.models import DetectedFoodItem, OracleResponse
from mealsight.domain.recognition.notes import infer_note_influence
from mealsight.domain.shared.errors import (
    OracleErrorKind,
    OracleMalformedOutputError,
)

DEFAULT_ITEM_NAME = "Unknown"
DEFAULT_PORTION_GRAMS = 100.0
DEFAULT_ITEM_CONFIDENCE = 0.5
DEFAULT_OVERALL_CONFIDENCE = 0.7

_FENCE_RE = re.compile(r"```(?:json)?\s*")


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences the model sometimes wraps JSON in."""
    return _FENCE_RE.sub("", content).strip()


def normalize_confidence(value: Any, default: float) -> float:
    """Bring a confidence onto the 0-100 scale.

    Values in [0, 1] are fractions and get scaled; larger values are
    already percentages. Result is clamped to [0, 100].
    """
    try:
        score = float(value) if value is not None else default
    except (TypeError, ValueError):
        score = default

    if score <= 0:
        score = default
    if score <= 1.0:
        score *= 100.0

    return max(0.0, min(100.0, round(score, 2)))


def _number(raw: Dict[str, Any], *keys: str, default: float = 0.0) -> float:
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if number > 0:
            return number
    return default


def parse_item(raw: Dict[str, Any], user_note: Optional[str] = None) -> DetectedFoodItem:
    """Build a DetectedFoodItem from one raw item, filling defaults."""
    name = str(raw.get("name") or raw.get("label") or DEFAULT_ITEM_NAME).strip()
    name = name or DEFAULT_ITEM_NAME

    return DetectedFoodItem(
        name=name,
        portion_grams=_number(raw, "portion", "quantity_g", default=DEFAULT_PORTION_GRAMS),
        unit=str(raw.get("unit") or "g"),
        calories=_number(raw, "calories"),
        protein_grams=_number(raw, "protein"),
        carbs_grams=_number(raw, "carbs"),
        fat_grams=_number(raw, "fat"),
        confidence=normalize_confidence(raw.get("confidence"), DEFAULT_ITEM_CONFIDENCE),
        note_influence=infer_note_influence(name, user_note),
    )


def parse_oracle_content(
    content: Optional[str],
    model_version: str = "unknown",
    user_note: Optional[str] = None,
) -> OracleResponse:
    """Parse raw model text into an OracleResponse.

    Args:
        content: Raw completion text
        model_version: Model that produced it
        user_note: Note sent with the request (for note influence)

    Returns:
        OracleResponse with 0-100 confidences

    Raises:
        OracleMalformedOutputError: Empty content, invalid JSON, or missing items

    Example:
        >>> response = parse_oracle_content(
        ...     '{"items": [{"name": "dal", "confidence": 45}], "overall_confidence": 45}'
        ... )
        >>> response.items[0].confidence
        45.0
    """
    if not content or not content.strip():
        raise OracleMalformedOutputError(
            OracleErrorKind.EMPTY_RESPONSE, "No content in oracle response"
        )

    cleaned = strip_code_fences(content)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise OracleMalformedOutputError(
            OracleErrorKind.INVALID_JSON,
            f"Failed to parse oracle response as JSON: {e.msg}",
            raw_response=content,
        ) from e

    if not isinstance(data, dict):
        raise OracleMalformedOutputError(
            OracleErrorKind.INVALID_SCHEMA,
            "Oracle response is not a JSON object",
            raw_response=content,
        )

    raw_items = data.get("items")
    if not isinstance(raw_items, list):
        raise OracleMalformedOutputError(
            OracleErrorKind.INVALID_SCHEMA,
            "Response missing required 'items' array",
            raw_response=content,
        )

    items: List[DetectedFoodItem] = [
        parse_item(raw, user_note) for raw in raw_items if isinstance(raw, dict)
    ]

    explanation = data.get("explanation")

    return OracleResponse(
        items=items,
        overall_confidence=normalize_confidence(
            data.get("overall_confidence"), DEFAULT_OVERALL_CONFIDENCE
        ),
        explanation=str(explanation) if explanation else None,
        raw_response=content,
        model_version=model_version,
    )
