from fastapi import Depends

from foodscan.core.config import PipelineConfig, Settings, settings
from foodscan.core.pipeline import FoodScanPipeline
from foodscan.core.storage import UploadStore


def get_settings() -> Settings:
    return settings


def get_store(s: Settings = Depends(get_settings)) -> UploadStore:
    return UploadStore(s.UPLOAD_DIR, max_bytes=s.MAX_UPLOAD_BYTES)


def get_pipeline(
    s: Settings = Depends(get_settings),
    store: UploadStore = Depends(get_store),
) -> FoodScanPipeline:
    return FoodScanPipeline(PipelineConfig.from_settings(s), store)
