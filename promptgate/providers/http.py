"""Shared httpx plumbing for adapters that talk to vendor REST APIs."""

from typing import Any, Dict, Optional

import httpx

from .base import ProviderError


def build_async_client(
    base_url: str,
    timeout: float,
    max_retries: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create a client whose transport retries failed connections."""
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        timeout=timeout,
        transport=transport or httpx.AsyncHTTPTransport(retries=max_retries),
    )


def read_vendor_json(vendor: str, response: httpx.Response) -> Dict[str, Any]:
    """Decode a vendor response body, raising ProviderError on HTTP errors."""
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    if response.status_code >= 400:
        error = data.get("error")
        message = error.get("message") if isinstance(error, dict) else None
        raise ProviderError(
            f"{vendor} error {response.status_code}: {message or response.reason_phrase}",
            status_code=response.status_code,
        )
    return data
