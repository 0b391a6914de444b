import base64
import logging
from typing import Any, Dict, Optional

import httpx

from foodscan.core.errors import ProviderFailure, ProviderUnavailable
from foodscan.core.http import make_client, request

logger = logging.getLogger(__name__)

PRODUCTS_SCHEMA_HINT = """{
  "products": [
    {
      "id": "product_1",
      "name": "specific product name",
      "type": "packaged | fresh | prepared | beverage",
      "position": "where it is in the image",
      "quantity": 1,
      "confidence": 0-100,
      "nutritionalInfo": {"calories": 0, "protein": 0, "carbs": 0, "fat": 0, "fiber": 0},
      "portionSize": "estimated portion",
      "brandInfo": "brand if visible, else null",
      "ingredients": ["..."],
      "dietaryFlags": ["vegan", "gluten-free", "..."],
      "organicStatus": "certified | likely | conventional | unknown",
      "fairTradeStatus": "certified | likely | conventional | unknown",
      "certificationInfo": "visible labels or logos, else null",
      "freshness": "freshness assessment",
      "preparationMethod": "raw | cooked | ...",
      "openFoodFactsSearchTerms": ["most specific term", "...", "most generic term"]
    }
  ],
  "sceneAnalysis": {
    "totalProducts": 1,
    "sceneType": "grocery | meal | pantry | ...",
    "culturalContext": "...",
    "setting": "...",
    "lightingQuality": "good | fair | poor",
    "imageQuality": "good | fair | poor"
  },
  "aggregateNutrition": {"totalCalories": 0, "totalProtein": 0, "totalCarbs": 0, "totalFat": 0},
  "searchableTerms": ["..."],
  "recommendations": ["..."]
}"""


def build_prompt(product_description: Optional[str] = None) -> str:
    prompt = (
        "You are an expert food and grocery product analyst.\n"
        "Identify EVERY distinct food item or product visible in the image.\n"
        "For each one, look for brand names, certification logos (organic, fair trade) and label text.\n"
        "openFoodFactsSearchTerms must be ordered from most specific to most generic, "
        "and be short phrases that work as product database searches.\n"
        "Return ONLY valid JSON in exactly this format. No markdown. No code fences. No extra text.\n"
        f"{PRODUCTS_SCHEMA_HINT}\n"
    )

    hint = (product_description or "").strip()
    if hint:
        prompt += (
            f"\nThe user is specifically interested in: \"{hint}\".\n"
            "Prioritize this product: list it first, and give it the most precise, "
            "search-optimized openFoodFactsSearchTerms you can (brand + product + variant first).\n"
        )
    return prompt


class OpenAIVisionAnnotator:
    """
    Generative annotator over the OpenAI chat completions API.
    Returns the model's text as-is; parsing belongs to the normalizer.
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "gpt-4o",
        api_base: str = "https://api.openai.com/v1",
        timeout: float = 10.0,
        max_retries: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ProviderUnavailable("OpenAI is not configured (OPENAI_API_KEY is not set)")
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.transport = transport

    def _payload(self, image_bytes: bytes, content_type: str, product_description: Optional[str]) -> Dict[str, Any]:
        image_b64 = base64.b64encode(image_bytes).decode("utf-8")
        return {
            "model": self.model,
            "temperature": 0.2,
            "max_tokens": 2000,
            "response_format": {"type": "json_object"},
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(product_description)},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{content_type};base64,{image_b64}"},
                        },
                    ],
                }
            ],
        }

    async def annotate(
        self,
        image_bytes: bytes,
        content_type: str = "image/png",
        product_description: Optional[str] = None,
    ) -> str:
        logger.info(
            "Analyzing image with model=%s, bytes=%s, hint=%s",
            self.model,
            len(image_bytes),
            bool(product_description),
        )

        async with make_client(self.timeout, self.transport) as client:
            data = await request(
                client,
                "POST",
                f"{self.api_base}/chat/completions",
                provider="OpenAI",
                json_payload=self._payload(image_bytes, content_type, product_description),
                headers={"Authorization": f"Bearer {self.api_key}"},
                max_retries=self.max_retries,
            )

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ProviderFailure("Unexpected OpenAI response shape", detail=str(data))

        if not isinstance(text, str):
            raise ProviderFailure("OpenAI returned no text content", detail=str(data))

        logger.debug("OpenAI raw response: %s", text)
        return text
