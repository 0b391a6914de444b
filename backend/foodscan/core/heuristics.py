"""
Best-effort extraction from free-form model prose.

Only used when a generative response is not structured JSON.
Nothing here raises on odd input: no match means an empty list or None.
"""

import re
from typing import List, Optional, Tuple

from foodscan.schemas.food import NutritionInfo

MAX_PROSE_ITEMS = 5
TOP_CONFIDENCE = 95
CONFIDENCE_STEP = 10
MIN_CONFIDENCE = 60

_ITEMS_RE = re.compile(r"(?:food items?|identified|contains?)\s*:\s*([^.\n]+)", re.IGNORECASE)
_SPLIT_RE = re.compile(r"[,;]")
_LEADING_RE = re.compile(r"^(?:and|or|a|an|some)\s+", re.IGNORECASE)

_NUM = r"(\d+(?:\.\d+)?)"
_CALORIES_RE = re.compile(_NUM + r"\s*(?:kcal|calories|cal)\b", re.IGNORECASE)
_PROTEIN_RE = re.compile(_NUM + r"\s*g(?:rams?)?\s+(?:of\s+)?protein", re.IGNORECASE)
_CARBS_RE = re.compile(_NUM + r"\s*g(?:rams?)?\s+(?:of\s+)?carb(?:ohydrate)?s?", re.IGNORECASE)
_FAT_RE = re.compile(_NUM + r"\s*g(?:rams?)?\s+(?:of\s+)?fats?\b", re.IGNORECASE)
_FIBER_RE = re.compile(_NUM + r"\s*g(?:rams?)?\s+(?:of\s+)?fib(?:er|re)", re.IGNORECASE)

_PORTION_RE = re.compile(r"(?:portion|serving|amount)\s*:\s*([^.\n]+)", re.IGNORECASE)


def synthetic_confidence(index: int) -> int:
    return max(TOP_CONFIDENCE - CONFIDENCE_STEP * index, MIN_CONFIDENCE)


def extract_food_names(text: Optional[str]) -> List[str]:
    """
    Pull item names from phrases like "Food items: apple, banana; bread".
    Keeps the first MAX_PROSE_ITEMS distinct names in order of appearance.
    """
    if not text or not isinstance(text, str):
        return []

    names: List[str] = []
    seen = set()
    for match in _ITEMS_RE.findall(text):
        for part in _SPLIT_RE.split(match):
            name = _LEADING_RE.sub("", part.strip().strip("*-\"'")).strip()
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            names.append(name)
            if len(names) >= MAX_PROSE_ITEMS:
                return names
    return names


def extract_food_items(text: Optional[str]) -> List[Tuple[str, int]]:
    """(name, confidence) pairs with descending synthetic confidence."""
    return [(name, synthetic_confidence(i)) for i, name in enumerate(extract_food_names(text))]


def _first_number(pattern: re.Pattern, text: str) -> Optional[float]:
    m = pattern.search(text)
    if not m:
        return None
    try:
        return float(m.group(1))
    except ValueError:
        return None


def extract_nutrition(text: Optional[str]) -> Optional[NutritionInfo]:
    if not text or not isinstance(text, str):
        return None

    values = {
        "calories": _first_number(_CALORIES_RE, text),
        "protein": _first_number(_PROTEIN_RE, text),
        "carbs": _first_number(_CARBS_RE, text),
        "fat": _first_number(_FAT_RE, text),
        "fiber": _first_number(_FIBER_RE, text),
    }
    if all(v is None for v in values.values()):
        return None
    return NutritionInfo(**values)


def extract_portion_size(text: Optional[str]) -> Optional[str]:
    if not text or not isinstance(text, str):
        return None
    m = _PORTION_RE.search(text)
    if not m:
        return None
    portion = m.group(1).strip()
    return portion or None
