import asyncio
import json
from typing import Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from foodscan.api.deps import get_pipeline, get_settings
from foodscan.core.config import PipelineConfig, Settings
from foodscan.core.errors import ProviderUnavailable
from foodscan.core.pipeline import FoodScanPipeline
from foodscan.core.storage import UploadStore
from foodscan.main import app

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def off_record(name: str, code: str = "0001", labels: str = "", labels_tags: Optional[List[str]] = None) -> Dict:
    return {
        "code": code,
        "product_name": name,
        "brands": "Acme",
        "url": f"https://world.openfoodfacts.org/product/{code}",
        "image_url": f"https://images.openfoodfacts.org/{code}.jpg",
        "nutrition_grades": "a",
        "categories": "Fruits",
        "labels": labels,
        "labels_tags": labels_tags or [],
    }


class FakeDatabase:
    """Stands in for OpenFoodFactsClient."""

    def __init__(self, records_by_term=None, fail_terms=(), delays=None):
        self.records_by_term = records_by_term or {}
        self.fail_terms = set(fail_terms)
        self.delays = delays or {}
        self.calls: List[str] = []

    async def search(self, term: str, page_size: int = 3):
        self.calls.append(term)
        if term in self.delays:
            await asyncio.sleep(self.delays[term])
        if term in self.fail_terms:
            raise ProviderUnavailable("Open Food Facts is unreachable")
        return list(self.records_by_term.get(term, []))[:page_size]


class FakeGenerative:
    name = "openai"

    def __init__(self, text: str):
        self.text = text
        self.calls = []

    async def annotate(self, image_bytes, content_type="image/png", product_description=None):
        self.calls.append((content_type, product_description))
        return self.text


class FailingAnnotator:
    name = "google-vision"

    def __init__(self, exc: Exception):
        self.exc = exc

    async def annotate(self, image_bytes):
        raise self.exc


def json_handler(payload, status_code: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=json.dumps(payload).encode(), headers={"content-type": "application/json"})
    return handler


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def test_settings(upload_dir):
    return Settings(
        UPLOAD_DIR=str(upload_dir),
        VISION_PROVIDER="mock",
        GOOGLE_VISION_API_KEY="",
        OPENAI_API_KEY="",
        MAX_UPLOAD_BYTES=1024,
    )


@pytest.fixture
def store(test_settings):
    return UploadStore(test_settings.UPLOAD_DIR, max_bytes=test_settings.MAX_UPLOAD_BYTES)


@pytest.fixture
def client(test_settings):
    app.dependency_overrides[get_settings] = lambda: test_settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def use_pipeline(store):
    """Swap the route pipeline for one built around the given fakes."""
    def _install(**kwargs) -> FoodScanPipeline:
        pipeline = FoodScanPipeline(PipelineConfig(), store, **kwargs)
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        return pipeline
    return _install
