import asyncio
import logging
import random
from typing import Any, Dict, Optional

import httpx

from foodscan.core.errors import ProviderFailure, ProviderUnavailable, redact_key

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 20.0


def make_client(
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True)


async def _sleep_for_retry(resp: httpx.Response, attempt: int) -> None:
    """
    Respect Retry-After header when present; otherwise exponential backoff with jitter.
    """
    retry_after = resp.headers.get("retry-after")
    if retry_after:
        try:
            wait = float(retry_after)
            await asyncio.sleep(max(0.5, min(wait, MAX_BACKOFF_SECONDS)))
            return
        except ValueError:
            pass

    base = min(MAX_BACKOFF_SECONDS, (2 ** attempt))
    await asyncio.sleep(base + random.uniform(0.0, 0.5))


async def request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    provider: str,
    params: Optional[Dict[str, Any]] = None,
    json_payload: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    max_retries: int = 0,
) -> Any:
    """
    One outbound call, returning the decoded JSON body.

    - connect errors and timeouts -> ProviderUnavailable
    - 429/503 retried up to max_retries
    - any other >= 400 status or non-JSON body -> ProviderFailure
    """
    resp: Optional[httpx.Response] = None
    for attempt in range(max_retries + 1):
        try:
            resp = await client.request(method, url, params=params, json=json_payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(f"{provider} timed out", detail=str(e)) from e
        except httpx.TransportError as e:
            raise ProviderUnavailable(f"{provider} is unreachable", detail=str(e)) from e

        if resp.status_code in (429, 503) and attempt < max_retries:
            logger.warning("%s returned %s, retrying (attempt %s)", provider, resp.status_code, attempt + 1)
            await _sleep_for_retry(resp, attempt)
            continue
        break

    if resp.status_code >= 400:
        raise ProviderFailure(
            f"{provider} request failed: {resp.status_code}",
            upstream_status=resp.status_code,
            detail=f"URL: {redact_key(str(resp.request.url))}\nBODY: {resp.text}",
        )

    try:
        return resp.json()
    except ValueError as e:
        raise ProviderFailure(
            f"{provider} returned a non-JSON body",
            upstream_status=resp.status_code,
            detail=resp.text,
        ) from e
