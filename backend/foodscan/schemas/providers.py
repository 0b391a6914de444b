"""
Raw provider responses, decoded into one tagged variant per shape.

Structured annotator:
    StructuredAnnotations (labels / text / objects)

Generative annotator:
    ProductsDocument   -> {"products": [...], "sceneAnalysis": ..., ...}
    LegacyFoodItems    -> {"foodItems": [...]}
    ProseResponse      -> anything that is not one of the above
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _Lenient(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------- structured annotator ----------

class LabelAnnotation(_Lenient):
    description: str = ""
    score: float = 0.0


class TextAnnotation(_Lenient):
    description: str = ""
    confidence: Optional[float] = None


class ObjectAnnotation(_Lenient):
    name: str = ""
    score: float = 0.0


class StructuredAnnotations(_Lenient):
    kind: Literal["structured"] = "structured"
    labels: List[LabelAnnotation] = Field(default_factory=list)
    texts: List[TextAnnotation] = Field(default_factory=list)
    objects: List[ObjectAnnotation] = Field(default_factory=list)


# ---------- generative annotator ----------

def _as_str_list(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [v] if v.strip() else []
    if isinstance(v, list):
        return [str(x).strip() for x in v if x is not None and str(x).strip()]
    return []


def _as_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(round(float(v)))
    except (TypeError, ValueError, OverflowError):
        return None


def _as_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        # "250 kcal", "12g"
        v = v.strip().split(" ")[0].rstrip("gG")
    try:
        return float(v)
    except (TypeError, ValueError, OverflowError):
        return None


def _as_opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, (dict, list)):
        return None
    s = str(v).strip()
    return s or None


class RawNutrition(_Lenient):
    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None
    fiber: Optional[float] = None

    @field_validator("calories", "protein", "carbs", "fat", "fiber", mode="before")
    @classmethod
    def _num(cls, v: Any) -> Optional[float]:
        return _as_float(v)


class ProductEntry(_Lenient):
    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    position: Optional[str] = None
    quantity: Optional[int] = None
    confidence: Optional[int] = None
    nutritional_info: Optional[RawNutrition] = None
    portion_size: Optional[str] = None
    brand_info: Optional[str] = None
    ingredients: List[str] = Field(default_factory=list)
    dietary_flags: List[str] = Field(default_factory=list)
    organic_status: Optional[str] = None
    fair_trade_status: Optional[str] = None
    certification_info: Optional[str] = None
    freshness: Optional[str] = None
    preparation_method: Optional[str] = None
    open_food_facts_search_terms: List[str] = Field(default_factory=list)

    @field_validator("quantity", "confidence", mode="before")
    @classmethod
    def _int(cls, v: Any) -> Optional[int]:
        return _as_int(v)

    @field_validator("ingredients", "dietary_flags", "open_food_facts_search_terms", mode="before")
    @classmethod
    def _str_list(cls, v: Any) -> List[str]:
        return _as_str_list(v)

    @field_validator(
        "id", "name", "type", "position", "portion_size", "brand_info", "organic_status",
        "fair_trade_status", "certification_info", "freshness", "preparation_method",
        mode="before",
    )
    @classmethod
    def _str(cls, v: Any) -> Optional[str]:
        return _as_opt_str(v)

    @field_validator("nutritional_info", mode="before")
    @classmethod
    def _nutrition(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None


class SceneAnalysis(_Lenient):
    total_products: Optional[int] = None
    scene_type: Optional[str] = None
    cultural_context: Optional[str] = None
    setting: Optional[str] = None
    lighting_quality: Optional[str] = None
    image_quality: Optional[str] = None

    @field_validator("total_products", mode="before")
    @classmethod
    def _int(cls, v: Any) -> Optional[int]:
        return _as_int(v)


class ProductsDocument(_Lenient):
    kind: Literal["products"] = "products"
    products: List[ProductEntry]
    scene_analysis: Optional[SceneAnalysis] = None
    aggregate_nutrition: Optional[Dict[str, Any]] = None
    searchable_terms: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    @field_validator("products", mode="before")
    @classmethod
    def _entries(cls, v: Any) -> Any:
        # non-object entries become empty products so length and order hold
        if isinstance(v, list):
            return [x if isinstance(x, dict) else {"name": _as_opt_str(x)} for x in v]
        return v

    @field_validator("scene_analysis", "aggregate_nutrition", mode="before")
    @classmethod
    def _obj(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None

    @field_validator("searchable_terms", "recommendations", mode="before")
    @classmethod
    def _str_list(cls, v: Any) -> List[str]:
        return _as_str_list(v)


class LegacyFoodItems(_Lenient):
    kind: Literal["legacy"] = "legacy"
    food_items: List[Union[str, Dict[str, Any]]]

    @field_validator("food_items", mode="before")
    @classmethod
    def _entries(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [x for x in v if isinstance(x, (str, dict))]
        return v


class ProseResponse(_Lenient):
    kind: Literal["prose"] = "prose"
    text: str = ""


GenerativeResponse = Union[ProductsDocument, LegacyFoodItems, ProseResponse]
