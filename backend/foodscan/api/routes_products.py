import logging

from fastapi import APIRouter, Depends, HTTPException

from foodscan.api.deps import get_pipeline
from foodscan.core.errors import FoodScanError, to_http_exception
from foodscan.core.pipeline import FoodScanPipeline
from foodscan.schemas.food import ProductSearchRequest, ProductSearchResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


@router.post("/search", response_model=ProductSearchResponse, response_model_exclude_none=True)
async def search_products(body: ProductSearchRequest, pipeline: FoodScanPipeline = Depends(get_pipeline)):
    """
    Looks up every food item in the product database.
    Items whose lookup fails come back with an `error` instead of failing the request.
    """
    try:
        results = await pipeline.search(body.food_items)
        return ProductSearchResponse(results=results, count=len(results))
    except FoodScanError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("Unexpected error during product search")
        raise HTTPException(status_code=500, detail={"error": "internal_error", "message": str(e)})
