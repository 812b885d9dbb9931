"""Outbound HTTP client shared by all proxied requests."""

from typing import Optional

import httpx

from gcs_proxy.core.config import Settings

# Upstream bodies are passed through undecoded; an inbound Accept-Encoding
# replaces this on the primary request
DEFAULT_HEADERS = {"accept-encoding": "identity"}


def create_http_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """
    Create the pooled client used to reach Cloud Storage.

    Only the connect phase gets a client-level timeout; the overall deadline
    of a proxied request is enforced by the proxy handler.
    """
    return httpx.AsyncClient(
        headers=DEFAULT_HEADERS,
        timeout=httpx.Timeout(None, connect=settings.CONNECT_TIMEOUT),
        limits=httpx.Limits(
            max_connections=settings.MAX_CONNECTIONS,
            max_keepalive_connections=settings.MAX_KEEPALIVE_CONNECTIONS
        ),
        http2=True,
        follow_redirects=settings.FOLLOW_REDIRECTS,
        max_redirects=10,
        transport=transport
    )
