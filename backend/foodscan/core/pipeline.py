"""
Food identification pipeline.

    image -> annotator -> normalizer -> FoodItems -> product matcher -> SearchResults

The pipeline owns no global state: everything it talks to is built from the
PipelineConfig it is given (or injected directly, which is what the tests do).
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Literal, Optional

import httpx

from foodscan.core.config import PipelineConfig
from foodscan.core.errors import FoodScanError, InputError
from foodscan.core.matcher import ProductMatcher
from foodscan.core.normalizer import normalize_generative_text, normalize_structured
from foodscan.core.openai_vision import OpenAIVisionAnnotator
from foodscan.core.openfoodfacts import OpenFoodFactsClient
from foodscan.core.status import Stage, StageTracker
from foodscan.core.storage import UploadStore, content_type_for
from foodscan.core.vision import build_structured_annotator
from foodscan.schemas.food import AnalysisResult, AnalysisResults, FoodItem, SearchResult

logger = logging.getLogger(__name__)

ScanProvider = Literal["vision", "openai"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)


class FoodScanPipeline:
    def __init__(
        self,
        config: PipelineConfig,
        store: UploadStore,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        structured_annotator=None,
        generative_annotator=None,
        product_database=None,
    ):
        self.config = config
        self.store = store
        self.transport = transport
        self._structured = structured_annotator
        self._generative = generative_annotator
        self._database = product_database

    # ---------- collaborators (built lazily so a missing key only fails its own path) ----------

    def structured_annotator(self):
        if self._structured is None:
            self._structured = build_structured_annotator(
                self.config.vision,
                timeout=self.config.timeout_seconds,
                transport=self.transport,
            )
        return self._structured

    def generative_annotator(self):
        if self._generative is None:
            self._generative = OpenAIVisionAnnotator(
                self.config.openai_api_key,
                model=self.config.openai_model,
                api_base=self.config.openai_api_base,
                timeout=self.config.timeout_seconds,
                max_retries=self.config.max_retries,
                transport=self.transport,
            )
        return self._generative

    def matcher(self) -> ProductMatcher:
        if self._database is None:
            self._database = OpenFoodFactsClient(
                self.config.product_db_url,
                timeout=self.config.timeout_seconds,
                transport=self.transport,
            )
        return ProductMatcher(self._database, max_concurrency=self.config.max_search_concurrency)

    # ---------- stages ----------

    async def _read(self, filename: str) -> tuple:
        path: Path = self.store.resolve(filename)
        content = await asyncio.to_thread(path.read_bytes)
        return content, content_type_for(path)

    async def analyze(self, filename: str) -> AnalysisResult:
        """Structured annotator path (labels / text / objects)."""
        start = time.time()
        content, _ = await self._read(filename)

        annotator = self.structured_annotator()
        logger.info("[PIPELINE] Analyze %s with %s", filename, annotator.name)
        annotations = await annotator.annotate(content)
        items, detected_text = normalize_structured(annotations)

        logger.info("[PIPELINE] Analyze %s: %s food items in %sms", filename, len(items), _ms(start))
        return AnalysisResult(
            filename=filename,
            timestamp=_now(),
            provider=annotator.name,
            results=AnalysisResults(
                food_items=items,
                detected_text=detected_text,
                total_products=len(items) or 1,
            ),
        )

    async def analyze_openai(self, filename: str, product_description: Optional[str] = None) -> AnalysisResult:
        """Generative annotator path, with an optional product-of-interest hint."""
        start = time.time()
        content, content_type = await self._read(filename)

        annotator = self.generative_annotator()
        logger.info("[PIPELINE] Analyze %s with %s (hint=%s)", filename, annotator.name, bool(product_description))
        text = await annotator.annotate(content, content_type, product_description)
        results = normalize_generative_text(text)

        logger.info(
            "[PIPELINE] Analyze %s: %s food items in %sms",
            filename, len(results.food_items), _ms(start),
        )
        return AnalysisResult(
            filename=filename,
            timestamp=_now(),
            provider=annotator.name,
            results=results,
        )

    async def search(self, items: Optional[List[FoodItem]]) -> List[SearchResult]:
        if not items:
            raise InputError("foodItems must be a non-empty array")

        start = time.time()
        results = await self.matcher().match_all(items)
        failed = sum(1 for r in results if r.error)
        logger.info(
            "[PIPELINE] Product search: %s items, %s failed, %sms",
            len(items), failed, _ms(start),
        )
        return results

    async def scan(
        self,
        content: bytes,
        content_type: Optional[str],
        original_name: Optional[str] = None,
        *,
        provider: ScanProvider = "vision",
        product_description: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> AnalysisResult:
        """
        upload -> analyze -> search, tracked per stage.
        Search only runs when analysis found at least one food item.
        """
        tracker = StageTracker()
        stage = Stage.UPLOAD
        try:
            tracker.start(stage)
            info = self.store.save(content, content_type, original_name, timestamp)
            tracker.succeed(stage)

            stage = Stage.ANALYZE
            tracker.start(stage)
            if provider == "openai":
                result = await self.analyze_openai(info["filename"], product_description)
            else:
                result = await self.analyze(info["filename"])
            tracker.succeed(stage)

            if result.results.food_items:
                stage = Stage.SEARCH
                tracker.start(stage)
                result.results.search_results = await self.search(result.results.food_items)
                tracker.succeed(stage)

        except FoodScanError as e:
            tracker.fail(stage, e.message)
            e.stages = tracker.snapshot()
            raise
        except Exception as e:
            tracker.fail(stage, str(e))
            e.stages = tracker.snapshot()
            logger.error("[PIPELINE] %s stage failed unexpectedly: %s", stage.value, e)
            raise

        result.stages = tracker.snapshot()
        return result
