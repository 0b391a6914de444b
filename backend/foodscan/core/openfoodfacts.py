import logging
from typing import Any, Dict, List, Optional

import httpx

from foodscan.core.errors import ProviderFailure
from foodscan.core.http import make_client, request

logger = logging.getLogger(__name__)

SEARCH_PATH = "/cgi/search.pl"
USER_AGENT = "FoodScan/0.1 (food photo analyzer)"

PRODUCT_FIELDS = (
    "code,product_name,product_name_en,generic_name,brands,url,image_url,image_front_url,"
    "nutrition_grades,nutriscore_grade,categories,labels,labels_tags"
)


class OpenFoodFactsClient:
    """
    Text search against the Open Food Facts product database.
    """

    def __init__(
        self,
        base_url: str = "https://world.openfoodfacts.org",
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def search(self, term: str, page_size: int = 3) -> List[Dict[str, Any]]:
        """
        Returns raw product records for one search term (at most page_size).
        Raises ProviderUnavailable / ProviderFailure; callers decide how to degrade.
        """
        params: Dict[str, Any] = {
            "search_terms": term,
            "search_simple": 1,
            "action": "process",
            "json": 1,
            "page_size": max(1, min(int(page_size), 100)),
            "fields": PRODUCT_FIELDS,
        }

        async with make_client(self.timeout, self.transport) as client:
            data = await request(
                client,
                "GET",
                f"{self.base_url}{SEARCH_PATH}",
                provider="Open Food Facts",
                params=params,
                headers={"User-Agent": USER_AGENT},
            )

        if not isinstance(data, dict):
            raise ProviderFailure("Unexpected Open Food Facts response shape")

        products = data.get("products")
        if products is None:
            return []
        if not isinstance(products, list):
            raise ProviderFailure("Open Food Facts 'products' is not a list")

        records = [p for p in products if isinstance(p, dict)][:page_size]
        logger.info("Open Food Facts search %r -> %s products", term, len(records))
        return records
