import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from foodscan.core import heuristics
from foodscan.schemas.food import AnalysisResults, DetectedText, DetectedWord, FoodItem, NutritionInfo
from foodscan.schemas.providers import (
    GenerativeResponse,
    LegacyFoodItems,
    ProductEntry,
    ProductsDocument,
    ProseResponse,
    StructuredAnnotations,
)

logger = logging.getLogger(__name__)

LABEL_THRESHOLD = 0.6
OBJECT_THRESHOLD = 0.5
DEFAULT_CONFIDENCE = 80


def _to_confidence(score: float) -> int:
    return max(0, min(100, int(round(score * 100))))


def _clamp(v: Optional[int], default: int = DEFAULT_CONFIDENCE) -> int:
    if v is None:
        return default
    return max(0, min(100, v))


# ---------- structured annotator ----------

def normalize_structured(annotations: StructuredAnnotations) -> Tuple[List[FoodItem], Optional[DetectedText]]:
    """
    Labels above 0.6 and objects above 0.5 become FoodItems.
    A label and an object with the same name collapse into one item that keeps
    the earlier position and the higher confidence.
    """
    by_name: Dict[str, int] = {}
    ranked: List[Tuple[str, int]] = []

    candidates = [(l.description, l.score) for l in annotations.labels if l.score > LABEL_THRESHOLD]
    candidates += [(o.name, o.score) for o in annotations.objects if o.score > OBJECT_THRESHOLD]

    for name, score in candidates:
        name = (name or "").strip()
        if not name:
            continue
        conf = _to_confidence(score)
        key = name.lower()
        if key in by_name:
            i = by_name[key]
            if conf > ranked[i][1]:
                ranked[i] = (ranked[i][0], conf)
            continue
        by_name[key] = len(ranked)
        ranked.append((name, conf))

    items = [FoodItem(name=n, confidence=c, search_terms=[n]) for n, c in ranked]

    detected_text = None
    if annotations.texts:
        first, rest = annotations.texts[0], annotations.texts[1:]
        detected_text = DetectedText(
            full_text=first.description,
            words=[DetectedWord(text=t.description, confidence=t.confidence) for t in rest],
        )

    return items, detected_text


# ---------- generative annotator ----------

def _brace_blocks(text: str) -> Iterator[str]:
    """Yield each balanced top-level {...} block, in one pass. Quoted braces are skipped."""
    depth, start = 0, -1
    in_string = escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"' and depth:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth:
            depth -= 1
            if depth == 0:
                yield text[start:i + 1]


def extract_json(text: str) -> Dict[str, Any]:
    """
    Robustly extract the first valid JSON object from model output.
    Handles:
    - ```json ... ``` fenced blocks
    - extra text before/after
    - multiple braces in output
    """
    fenced = re.search(r"```(?:json)?\s*(\{.*\})\s*```", text, re.DOTALL | re.IGNORECASE)
    if fenced:
        try:
            return json.loads(fenced.group(1).strip())
        except (ValueError, RecursionError):
            pass

    # widest span first, so nested objects survive
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start:end + 1])
        except (ValueError, RecursionError):
            pass

    for b in _brace_blocks(text):
        try:
            return json.loads(b)
        except (ValueError, RecursionError):
            continue

    raise ValueError("No JSON object found in model output")


def decode_generative(text: Optional[str]) -> GenerativeResponse:
    """Tag a raw generative response as products / legacy / prose. Never raises."""
    text = text if isinstance(text, str) else ""

    try:
        obj = json.loads(text)
    except (ValueError, RecursionError):
        try:
            obj = extract_json(text)
        except ValueError:
            return ProseResponse(text=text)

    if not isinstance(obj, dict):
        return ProseResponse(text=text)

    try:
        if isinstance(obj.get("products"), list):
            return ProductsDocument.model_validate(obj)
        if isinstance(obj.get("foodItems"), list):
            return LegacyFoodItems.model_validate(obj)
    except ValidationError as e:
        logger.warning("Generative response did not match any known shape: %s", e)

    return ProseResponse(text=text)


def _item_from_product(p: ProductEntry) -> FoodItem:
    name = p.name or "Unknown food"
    nutrition = None
    if p.nutritional_info is not None:
        nutrition = NutritionInfo(**p.nutritional_info.model_dump())

    return FoodItem(
        name=name,
        confidence=_clamp(p.confidence),
        type=p.type,
        position=p.position,
        quantity=p.quantity if p.quantity and p.quantity >= 1 else 1,
        brand_info=p.brand_info,
        search_terms=p.open_food_facts_search_terms or [name],
        organic_status=p.organic_status or "unknown",
        fair_trade_status=p.fair_trade_status or "unknown",
        certification_info=p.certification_info,
        nutritional_info=nutrition,
        portion_size=p.portion_size,
        ingredients=p.ingredients,
        dietary_flags=p.dietary_flags,
        freshness=p.freshness,
        preparation_method=p.preparation_method,
    )


def _item_from_legacy(entry: Any) -> Optional[FoodItem]:
    if isinstance(entry, str):
        name = entry.strip()
        return FoodItem(name=name, confidence=DEFAULT_CONFIDENCE, search_terms=[name]) if name else None

    name = str(entry.get("name") or entry.get("item") or "").strip()
    if not name:
        return None
    raw_conf = entry.get("confidence")
    try:
        conf = _clamp(int(round(float(raw_conf)))) if raw_conf is not None else DEFAULT_CONFIDENCE
    except (TypeError, ValueError, OverflowError):
        conf = DEFAULT_CONFIDENCE
    return FoodItem(name=name, confidence=conf, search_terms=[name])


def _items_from_prose(text: str) -> List[FoodItem]:
    nutrition = heuristics.extract_nutrition(text)
    portion = heuristics.extract_portion_size(text)
    return [
        FoodItem(
            name=name,
            confidence=conf,
            search_terms=[name],
            nutritional_info=nutrition,
            portion_size=portion,
        )
        for name, conf in heuristics.extract_food_items(text)
    ]


def normalize_generative(response: GenerativeResponse) -> AnalysisResults:
    if isinstance(response, ProductsDocument):
        items = [_item_from_product(p) for p in response.products]

        scene = response.scene_analysis.model_dump(by_alias=True) if response.scene_analysis else None
        if items:
            total = len(items)
        elif response.scene_analysis and response.scene_analysis.total_products is not None:
            total = response.scene_analysis.total_products
        else:
            total = 1

        return AnalysisResults(
            food_items=items,
            scene_analysis=scene,
            aggregate_nutrition=response.aggregate_nutrition,
            recommendations=response.recommendations,
            searchable_terms=response.searchable_terms,
            total_products=total,
        )

    if isinstance(response, LegacyFoodItems):
        items = [it for it in (_item_from_legacy(e) for e in response.food_items) if it is not None]
        return AnalysisResults(food_items=items, total_products=len(items) or 1)

    items = _items_from_prose(response.text)
    return AnalysisResults(food_items=items, raw_text=response.text or None, total_products=len(items) or 1)


def normalize_generative_text(text: Optional[str]) -> AnalysisResults:
    return normalize_generative(decode_generative(text))
