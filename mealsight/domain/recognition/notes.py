"""
User note parsing.

Pulls quantities out of the short free-text note a user attaches to a
photo ("2 rotis, 1 katori dal") and decides which part of each
detected item the note shaped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from mealsight.domain.recognition.models import NoteInfluence

# Countable breads and tiffin items; plural "s" optional
_COUNT_RE = re.compile(r"\b(\d+)\s+(chapati|roti|idli|dosa|paratha|vada)s?\b")

_SERVING_RE = re.compile(
    r"\b(?:(small|medium|large|half|one|\d+)\s+)?(bowl|katori|cup|plate)s?\s+(?:of\s+)?"
    r"([a-z][a-z ]*?)\s*(?=,|\+|\band\b|\bwith\b|$)"
)

_CANONICAL = {"chapati": "roti"}


@dataclass(frozen=True)
class NoteItem:
    """
    One food the note gives an amount for.

    Attributes:
        name: Food name as written (chapati normalised to roti)
        count: Piece count ("2 rotis")
        serving: Container serving ("2 katori", "medium bowl")
    """

    name: str
    count: Optional[int] = None
    serving: Optional[str] = None

    def matches(self, item_name: str) -> bool:
        """Loose match: either name contains the other (case-insensitive)."""
        mine = self.name.lower()
        theirs = item_name.strip().lower()
        return bool(theirs) and (mine in theirs or theirs in mine)


def parse_user_note(note: Optional[str]) -> List[NoteItem]:
    """Extract counted and served foods from a user note.

    Example:
        >>> [(i.name, i.count, i.serving) for i in parse_user_note("2 chapatis + 1 katori dal")]
        [('roti', 2, None), ('dal', None, '1 katori')]
    """
    if not note or not note.strip():
        return []

    text = note.lower().strip()
    items: List[NoteItem] = []

    for match in _COUNT_RE.finditer(text):
        name = _CANONICAL.get(match.group(2), match.group(2))
        items.append(NoteItem(name=name, count=int(match.group(1))))

    for match in _SERVING_RE.finditer(text):
        size = match.group(1) or "medium"
        name = match.group(3).strip()
        if name:
            items.append(NoteItem(name=name, serving=f"{size} {match.group(2)}"))

    return items


def infer_note_influence(item_name: str, user_note: Optional[str]) -> NoteInfluence:
    """Which part of a detected item the user's note shaped.

    - PORTION: the note gives an amount for the item without naming it
      as detected ("2 chapatis" for a detected "roti")
    - BOTH: the note names the item and gives an amount ("2 rotis")
    - NAME: the note names the item without an amount ("dal, no ghee")
    - NONE: the note says nothing about the item
    """
    if not user_note:
        return NoteInfluence.NONE

    name = item_name.strip().lower()
    mentioned = bool(name) and name in user_note.lower()
    has_amount = any(entry.matches(item_name) for entry in parse_user_note(user_note))

    if has_amount:
        return NoteInfluence.BOTH if mentioned else NoteInfluence.PORTION
    if mentioned:
        return NoteInfluence.NAME
    return NoteInfluence.NONE
