"""
HTTP client factory

Builds the asyncio HTTP client used by the providers:
- Connection pooling (HTTP/1.1 and HTTP/2)
- Keep-alive configuration
- Timeouts from settings

There is no process-wide client. Each DataSourceClient owns the client it
creates and closes it on shutdown.
"""

from __future__ import annotations

import logging
import httpx

from ..config import Settings

logger = logging.getLogger(__name__)

MAX_CONNECTIONS = 100
MAX_KEEPALIVE_CONNECTIONS = 50
KEEPALIVE_EXPIRY = 5.0


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create an AsyncClient configured from settings."""
    limits = httpx.Limits(
        max_connections=MAX_CONNECTIONS,
        max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
        keepalive_expiry=KEEPALIVE_EXPIRY,
    )

    timeout = httpx.Timeout(
        timeout=settings.request_timeout,
        connect=min(10.0, settings.request_timeout),
        pool=5.0,
    )

    client = httpx.AsyncClient(
        limits=limits,
        timeout=timeout,
        http2=True,
        verify=True,
        follow_redirects=True,
        headers={"User-Agent": settings.user_agent},
    )

    logger.info(
        f"HTTP client created: max_connections={MAX_CONNECTIONS}, "
        f"max_keepalive={MAX_KEEPALIVE_CONNECTIONS}, timeout={settings.request_timeout}s"
    )
    return client

