"""
Structured annotator: labels, text and localized objects for one image.

Two implementations behind the same `annotate(image_bytes)` call:
  - CloudVisionAnnotator: Google Cloud Vision REST (images:annotate), one request per feature
  - MockVisionAnnotator:  canned response for running the pipeline without credentials
"""

import asyncio
import base64
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from foodscan.core.config import ProviderConfig
from foodscan.core.errors import ProviderFailure, ProviderUnavailable
from foodscan.core.http import make_client, request
from foodscan.schemas.providers import (
    LabelAnnotation,
    ObjectAnnotation,
    StructuredAnnotations,
    TextAnnotation,
)

logger = logging.getLogger(__name__)

VISION_API_URL = "https://vision.googleapis.com/v1/images:annotate"

MOCK_LABELS = [
    ("Food", 0.95),
    ("Fruit", 0.89),
    ("Apple", 0.84),
    ("Produce", 0.78),
    ("Red", 0.72),
    ("Natural foods", 0.68),
    ("Snack", 0.63),
]
MOCK_TEXTS = [
    ("ORGANIC\nGALA APPLES\n$2.99/LB\nProduct of USA", 0.92),
    ("ORGANIC", 0.95),
    ("GALA", 0.93),
    ("APPLES", 0.94),
    ("$2.99/LB", 0.89),
    ("Product", 0.87),
    ("of", 0.85),
    ("USA", 0.91),
]
MOCK_OBJECTS = [
    ("Food", 0.91),
    ("Fruit", 0.87),
    ("Apple", 0.83),
]


class MockVisionAnnotator:
    name = "mock"

    def __init__(self, delay_seconds: float = 0.0):
        self.delay_seconds = delay_seconds

    async def _pause(self) -> None:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

    async def labels(self, image_bytes: bytes) -> List[LabelAnnotation]:
        await self._pause()
        return [LabelAnnotation(description=d, score=s) for d, s in MOCK_LABELS]

    async def texts(self, image_bytes: bytes) -> List[TextAnnotation]:
        await self._pause()
        return [TextAnnotation(description=d, confidence=c) for d, c in MOCK_TEXTS]

    async def objects(self, image_bytes: bytes) -> List[ObjectAnnotation]:
        await self._pause()
        return [ObjectAnnotation(name=n, score=s) for n, s in MOCK_OBJECTS]

    async def annotate(self, image_bytes: bytes) -> StructuredAnnotations:
        logger.info("[MOCK] Annotating %s bytes", len(image_bytes))
        labels, texts, objects = await asyncio.gather(
            self.labels(image_bytes),
            self.texts(image_bytes),
            self.objects(image_bytes),
        )
        return StructuredAnnotations(labels=labels, texts=texts, objects=objects)


class CloudVisionAnnotator:
    name = "google-vision"

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def _feature(self, client: httpx.AsyncClient, image_b64: str, feature: str, key: str) -> List[Dict[str, Any]]:
        payload = {
            "requests": [
                {
                    "image": {"content": image_b64},
                    "features": [{"type": feature, "maxResults": 20}],
                }
            ]
        }
        data = await request(
            client,
            "POST",
            VISION_API_URL,
            provider="Google Vision",
            params={"key": self.api_key},
            json_payload=payload,
        )

        try:
            first = (data.get("responses") or [{}])[0]
        except (AttributeError, IndexError, TypeError):
            first = None
        if not isinstance(first, dict):
            raise ProviderFailure(f"Unexpected Google Vision response shape for {feature}")

        err = first.get("error")
        if err:
            raise ProviderFailure(
                f"Google Vision {feature} failed: {err.get('message', 'unknown error')}",
                upstream_status=err.get("code"),
            )
        return first.get(key) or []

    async def annotate(self, image_bytes: bytes) -> StructuredAnnotations:
        image_b64 = base64.b64encode(image_bytes).decode("utf-8")

        async with make_client(self.timeout, self.transport) as client:
            # independent calls, issued together
            labels, texts, objects = await asyncio.gather(
                self._feature(client, image_b64, "LABEL_DETECTION", "labelAnnotations"),
                self._feature(client, image_b64, "TEXT_DETECTION", "textAnnotations"),
                self._feature(client, image_b64, "OBJECT_LOCALIZATION", "localizedObjectAnnotations"),
            )

        logger.info(
            "Google Vision: %s labels, %s text annotations, %s objects",
            len(labels), len(texts), len(objects),
        )
        try:
            return StructuredAnnotations.model_validate(
                {"labels": labels, "texts": texts, "objects": objects}
            )
        except ValidationError as e:
            raise ProviderFailure("Google Vision returned malformed annotations", detail=str(e)) from e


def build_structured_annotator(
    config: ProviderConfig,
    *,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
):
    if config.provider == "mock":
        return MockVisionAnnotator()
    if not config.api_key:
        raise ProviderUnavailable("Google Vision is not configured (GOOGLE_VISION_API_KEY is not set)")
    return CloudVisionAnnotator(config.api_key, timeout=timeout, transport=transport)
