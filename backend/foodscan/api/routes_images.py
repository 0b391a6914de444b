import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from foodscan.api.deps import get_pipeline, get_store
from foodscan.core.errors import FoodScanError, InputError, to_http_exception
from foodscan.core.pipeline import FoodScanPipeline
from foodscan.core.storage import UploadStore
from foodscan.schemas.food import AnalysisResult, AnalyzeOpenAIRequest, AnalyzeRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/images", tags=["images"])


def _unexpected(e: Exception, what: str) -> HTTPException:
    logger.exception("Unexpected error during %s", what)
    detail = {"error": "internal_error", "message": f"{what} failed: {e}"}
    stages = getattr(e, "stages", None)
    if stages:
        detail["stages"] = stages
    return HTTPException(status_code=500, detail=detail)


@router.post("/upload")
async def upload(
    image: Optional[UploadFile] = File(None),
    timestamp: Optional[str] = Form(None),
    store: UploadStore = Depends(get_store),
):
    try:
        if image is None:
            raise InputError("No image file provided")
        # one byte past the ceiling is enough to reject an oversized upload
        content = await image.read(store.max_bytes + 1)
        info = store.save(content, image.content_type, image.filename, timestamp)
        return {"success": True, "message": "Image uploaded successfully", "data": info}

    except FoodScanError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _unexpected(e, "Upload")


@router.get("")
def list_images(store: UploadStore = Depends(get_store)):
    try:
        images = store.list_images()
    except OSError as e:
        raise _unexpected(e, "Listing images")
    return {"images": images, "count": len(images)}


@router.post("/analyze", response_model=AnalysisResult, response_model_exclude_none=True)
async def analyze(body: AnalyzeRequest, pipeline: FoodScanPipeline = Depends(get_pipeline)):
    try:
        return await pipeline.analyze(body.filename)
    except FoodScanError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _unexpected(e, "Analysis")


@router.post("/analyze-openai", response_model=AnalysisResult, response_model_exclude_none=True)
async def analyze_openai(body: AnalyzeOpenAIRequest, pipeline: FoodScanPipeline = Depends(get_pipeline)):
    try:
        return await pipeline.analyze_openai(body.filename, body.product_description)
    except FoodScanError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _unexpected(e, "OpenAI analysis")


@router.post("/scan", response_model=AnalysisResult, response_model_exclude_none=True)
async def scan(
    image: Optional[UploadFile] = File(None),
    provider: str = Form("vision"),
    product_description: Optional[str] = Form(None, alias="productDescription"),
    timestamp: Optional[str] = Form(None),
    pipeline: FoodScanPipeline = Depends(get_pipeline),
):
    """
    Upload + analyze + product search in one call.
    provider: "vision" (structured annotator) or "openai" (generative annotator).
    """
    try:
        if image is None:
            raise InputError("No image file provided")
        if provider not in ("vision", "openai"):
            raise InputError("provider must be 'vision' or 'openai'")

        content = await image.read(pipeline.store.max_bytes + 1)
        return await pipeline.scan(
            content,
            image.content_type,
            image.filename,
            provider=provider,
            product_description=product_description,
            timestamp=timestamp,
        )
    except FoodScanError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise _unexpected(e, "Scan")
