"""
Oracle prompts for meal photo analysis.

IMPORTANT: System prompts are cacheable by the model provider.
Keep static instructions in VISION_SYSTEM_PROMPT and per-user context
(region, diet, learned synonyms and portion priors) in the
personalisation block and the user message.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from mealsight.domain.recognition.models import OracleRequest

DEFAULT_REGION = "India"
MAX_RECENT_FOODS_IN_PROMPT = 5


# ═══════════════════════════════════════════════════════════
# SYSTEM PROMPT (Cacheable - static instructions)
# ═══════════════════════════════════════════════════════════

VISION_SYSTEM_PROMPT = """You are a nutrition AI that analyzes food photos and returns structured nutrition data.

RULES:
1. Identify all visible food items, listing each item on a plate separately
2. Estimate portion sizes in grams (volume in ml for drinks)
3. Calculate calories and macros (protein, carbs, fat in grams)
4. Assign each item a confidence score between 0.0 and 1.0
5. Include cooking methods in names when they change calories ("fried" vs "grilled")
6. Consider visible oil, ghee, nuts and sauces that add calories
7. Use common regional dish names ("Chole Bhature", not "chickpea curry with fried bread")

Confidence guidelines:
- 0.9-1.0: Clear view, standard dish
- 0.7-0.9: Partial view or unusual preparation
- 0.5-0.7: Unclear image or uncommon dish
- Below 0.5: Very uncertain, needs human verification

OUTPUT FORMAT (JSON only, no markdown):
{
  "items": [
    {
      "name": "chapati",
      "portion": 70,
      "calories": 140,
      "protein": 4.2,
      "carbs": 28.0,
      "fat": 2.1,
      "confidence": 0.85
    }
  ],
  "overall_confidence": 0.85,
  "explanation": "Brief reasoning"
}"""


# ═══════════════════════════════════════════════════════════
# REGIONAL DEFAULTS (merged with per-user learned values)
# ═══════════════════════════════════════════════════════════

REGIONAL_PORTION_PRIORS: Dict[str, float] = {
    "roti": 30,
    "chapati": 30,
    "paratha": 50,
    "naan": 70,
    "plain rice": 150,
    "steamed rice": 150,
    "dal": 200,
    "dal fry": 200,
    "sambar": 200,
    "chicken curry": 200,
    "paneer tikka": 100,
    "dosa": 120,
    "idli": 40,
    "vada": 50,
    "biryani": 250,
    "chole bhature": 250,
    "aloo paratha": 100,
}

REGIONAL_SYNONYM_MAP: Dict[str, str] = {
    "chapati": "roti",
    "phulka": "roti",
    "dal tadka": "dal fry",
    "toor dal": "dal",
    "masoor dal": "dal",
    "chicken masala": "chicken curry",
    "murgh curry": "chicken curry",
    "paneer butter masala": "paneer curry",
    "plain dosa": "dosa",
    "masala dosa": "dosa",
    "rava dosa": "dosa",
}


def merge_portion_priors(user_priors: Mapping[str, float]) -> Dict[str, float]:
    """Regional priors overlaid with the user's learned priors (user wins)."""
    merged = dict(REGIONAL_PORTION_PRIORS)
    merged.update({name.lower(): grams for name, grams in user_priors.items()})
    return merged


def merge_synonym_map(user_synonyms: Mapping[str, str]) -> Dict[str, str]:
    """Regional synonyms overlaid with the user's learned synonyms (user wins)."""
    merged = dict(REGIONAL_SYNONYM_MAP)
    merged.update({original.lower(): corrected for original, corrected in user_synonyms.items()})
    return merged


def lookup_prior(priors: Mapping[str, float], food_name: str) -> Optional[float]:
    """Find the portion prior for a food name (case-insensitive)."""
    return priors.get(food_name.strip().lower())


# ═══════════════════════════════════════════════════════════
# PERSONALISATION BLOCK
# ═══════════════════════════════════════════════════════════


def build_context_block(request: OracleRequest) -> str:
    """Build the per-user context appended to the system prompt.

    Args:
        request: Oracle request carrying region, diet and learned maps

    Returns:
        Context text (starts with a newline)
    """
    region = request.region or DEFAULT_REGION
    diet = ", ".join(request.dietary_prefs) if request.dietary_prefs else "None"

    lines = [
        "",
        f"Regional context: {region}",
        f"Dietary preferences: {diet}",
    ]

    if request.recent_foods:
        recent = ", ".join(request.recent_foods[:MAX_RECENT_FOODS_IN_PROMPT])
        lines.append(f"Recent user foods: {recent}")

    if request.synonym_map:
        pairs = "; ".join(
            f'"{original}" -> "{corrected}"'
            for original, corrected in sorted(request.synonym_map.items())
        )
        lines.append(f"This user calls these foods by their preferred names: {pairs}")

    if request.portion_priors:
        priors = "; ".join(
            f"{name}: {grams:g}g" for name, grams in sorted(request.portion_priors.items())
        )
        lines.append(f"Typical portions for this user: {priors}")

    if request.user_note:
        lines.append(
            f'User note: "{request.user_note}" - use it to refine identification and quantities'
        )

    return "\n".join(lines)


def build_vision_user_message(request: OracleRequest) -> str:
    """Build user message text for vision analysis."""
    meal = f"{request.meal_type.value} " if request.meal_type else ""
    message = f"Analyze this {meal}meal photo."

    if request.user_note:
        return f'{message} User says: "{request.user_note}"'

    return message


# ═══════════════════════════════════════════════════════════
# HELPER: Build complete message arrays for the oracle
# ═══════════════════════════════════════════════════════════


def build_vision_messages(request: OracleRequest) -> List[Dict[str, Any]]:
    """Build complete message array for the vision model.

    Args:
        request: Oracle request

    Returns:
        List of chat message dicts
    """
    return [
        {"role": "system", "content": VISION_SYSTEM_PROMPT + build_context_block(request)},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": build_vision_user_message(request)},
                {
                    "type": "image_url",
                    "image_url": {"url": request.image_url, "detail": "high"},
                },
            ],
        },
    ]
