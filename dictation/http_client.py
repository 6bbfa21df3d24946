"""Shared async HTTP client with connection pooling for all API calls."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_shared_client: Optional[httpx.AsyncClient] = None


def get_shared_client(timeout: float = 120.0) -> httpx.AsyncClient:
    """Get or create a shared httpx.AsyncClient with connection pooling."""
    global _shared_client
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(
                max_keepalive_connections=10,
                max_connections=20,
                keepalive_expiry=30.0,
            ),
            http2=True,
        )
        logger.debug("Created shared HTTP client with connection pooling")
    return _shared_client


async def close_shared_client():
    """Close the shared client. Call on app shutdown."""
    global _shared_client
    if _shared_client is not None:
        await _shared_client.aclose()
        _shared_client = None
        logger.debug("Closed shared HTTP client")
