from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

CERTIFICATION_STATUSES = ("certified", "likely", "conventional", "unknown")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NutritionInfo(CamelModel):
    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None
    fiber: Optional[float] = None


class FoodItem(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    confidence: int = Field(ge=0, le=100)
    category: Literal["detected_food"] = "detected_food"

    type: Optional[str] = None               # packaged / fresh / prepared / beverage
    position: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    brand_info: Optional[str] = None
    search_terms: List[str] = Field(default_factory=list)  # most specific first

    organic_status: str = "unknown"
    fair_trade_status: str = "unknown"
    certification_info: Optional[str] = None

    nutritional_info: Optional[NutritionInfo] = None
    portion_size: Optional[str] = None
    ingredients: List[str] = Field(default_factory=list)
    dietary_flags: List[str] = Field(default_factory=list)
    freshness: Optional[str] = None
    preparation_method: Optional[str] = None

    @field_validator("organic_status", "fair_trade_status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> str:
        if not isinstance(v, str):
            return "unknown"
        s = v.strip().lower()
        return s if s in CERTIFICATION_STATUSES else "unknown"

    def terms_to_try(self) -> List[str]:
        """
        Search terms in the order the matcher should try them.
        Falls back to the item name, drops blanks and repeats.
        """
        out: List[str] = []
        seen = set()
        for t in list(self.search_terms) or [self.name]:
            t = (t or "").strip()
            if t and t.lower() not in seen:
                seen.add(t.lower())
                out.append(t)
        return out


class ProductMatch(CamelModel):
    id: Optional[str] = None
    name: str
    brand: Optional[str] = None
    url: Optional[str] = None
    image: Optional[str] = None
    nutrition_grade: Optional[str] = None
    categories: Optional[str] = None
    labels: Optional[str] = None
    labels_tags: List[str] = Field(default_factory=list)

    organic_status: str = "unknown"
    fair_trade_status: str = "unknown"


class CertificationSummary(CamelModel):
    organic_status: str = "unknown"
    fair_trade_status: str = "unknown"
    certification_info: Optional[str] = None


class SearchResult(CamelModel):
    food_item: str
    search_term: str
    confidence: int
    certification: CertificationSummary
    products: List[ProductMatch] = Field(default_factory=list, max_length=3)
    error: Optional[str] = None


class DetectedWord(CamelModel):
    text: str
    confidence: Optional[float] = None


class DetectedText(CamelModel):
    full_text: str
    words: List[DetectedWord] = Field(default_factory=list)


class AnalysisResults(CamelModel):
    food_items: List[FoodItem] = Field(default_factory=list)
    detected_text: Optional[DetectedText] = None

    # generative provider enrichments
    scene_analysis: Optional[Dict[str, Any]] = None
    aggregate_nutrition: Optional[Dict[str, Any]] = None
    recommendations: List[str] = Field(default_factory=list)
    searchable_terms: List[str] = Field(default_factory=list)
    total_products: Optional[int] = None
    raw_text: Optional[str] = None

    search_results: Optional[List[SearchResult]] = None


class AnalysisResult(CamelModel):
    filename: str
    timestamp: str
    provider: str
    results: AnalysisResults
    stages: Optional[Dict[str, str]] = None


class AnalyzeRequest(CamelModel):
    filename: str = ""


class AnalyzeOpenAIRequest(CamelModel):
    filename: str = ""
    product_description: Optional[str] = None


class ProductSearchRequest(CamelModel):
    food_items: Optional[List[FoodItem]] = None


class ProductSearchResponse(CamelModel):
    results: List[SearchResult]
    count: int
