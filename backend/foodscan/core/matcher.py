import asyncio
import logging
from typing import Any, Dict, List, Optional

from foodscan.core.certification import (
    CERTIFIED_FAIR_TRADE,
    CERTIFIED_ORGANIC,
    has_fair_trade_signal,
    has_organic_signal,
    merge_status,
)
from foodscan.schemas.food import CertificationSummary, FoodItem, ProductMatch, SearchResult

logger = logging.getLogger(__name__)

MAX_PRODUCTS_PER_ITEM = 3


def _first_str(record: Dict[str, Any], *keys: str) -> Optional[str]:
    for k in keys:
        v = record.get(k)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return None


def _tags(record: Dict[str, Any]) -> List[str]:
    tags = record.get("labels_tags")
    if not isinstance(tags, list):
        return []
    return [t for t in tags if isinstance(t, str)]


def to_product_match(record: Dict[str, Any], item: FoodItem) -> ProductMatch:
    labels = _first_str(record, "labels")
    tags = _tags(record)
    code = record.get("code")

    return ProductMatch(
        id=str(code) if code not in (None, "") else None,
        name=_first_str(record, "product_name", "product_name_en", "generic_name") or "Unknown product",
        brand=_first_str(record, "brands"),
        url=_first_str(record, "url"),
        image=_first_str(record, "image_url", "image_front_url"),
        nutrition_grade=_first_str(record, "nutrition_grades", "nutriscore_grade"),
        categories=_first_str(record, "categories"),
        labels=labels,
        labels_tags=tags,
        organic_status=merge_status(item.organic_status, has_organic_signal(labels, tags), CERTIFIED_ORGANIC),
        fair_trade_status=merge_status(
            item.fair_trade_status, has_fair_trade_signal(labels, tags), CERTIFIED_FAIR_TRADE
        ),
    )


def _summary(item: FoodItem) -> CertificationSummary:
    return CertificationSummary(
        organic_status=item.organic_status,
        fair_trade_status=item.fair_trade_status,
        certification_info=item.certification_info,
    )


class ProductMatcher:
    """
    Maps FoodItems to product database records.

    For each item the search terms are tried in order and the first term with
    any hit wins. Items are looked up concurrently; results keep input order.
    """

    def __init__(self, database, max_concurrency: int = 8):
        self.database = database
        self.max_concurrency = max(1, max_concurrency)

    async def match(self, item: FoodItem) -> SearchResult:
        for term in item.terms_to_try():
            records = await self.database.search(term, page_size=MAX_PRODUCTS_PER_ITEM)
            if records:
                products = [to_product_match(r, item) for r in records[:MAX_PRODUCTS_PER_ITEM]]
                return SearchResult(
                    food_item=item.name,
                    search_term=term,
                    confidence=item.confidence,
                    certification=_summary(item),
                    products=products,
                )

        return SearchResult(
            food_item=item.name,
            search_term=item.name,
            confidence=item.confidence,
            certification=_summary(item),
            products=[],
        )

    async def _match_safely(self, item: FoodItem, sem: asyncio.Semaphore) -> SearchResult:
        async with sem:
            try:
                return await self.match(item)
            except Exception as e:
                # one bad lookup must not sink the batch
                message = getattr(e, "message", None) or str(e) or e.__class__.__name__
                logger.warning("Product search failed for %r: %s", item.name, message)
                return SearchResult(
                    food_item=item.name,
                    search_term=item.name,
                    confidence=item.confidence,
                    certification=_summary(item),
                    products=[],
                    error=message,
                )

    async def match_all(self, items: List[FoodItem]) -> List[SearchResult]:
        if not items:
            return []
        sem = asyncio.Semaphore(min(self.max_concurrency, len(items)))
        return list(await asyncio.gather(*(self._match_safely(it, sem) for it in items)))
