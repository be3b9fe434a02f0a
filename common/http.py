"""Reusable async HTTP client for calls to external APIs."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """FastAPI dependency returning the shared outbound client (created lazily)."""
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=15.0)
    return _client


async def close_http_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        logger.info("Outbound HTTP client closed.")
        _client = None
