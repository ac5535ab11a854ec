"""
Shared outbound HTTP client.

A single httpx.AsyncClient is built per process and threaded into the
redirect and sitemap resolvers. Redirect handling is decided per request,
not here.
"""

import httpx

from sitemap_audit.core.config import Settings, get_settings


def build_http_client(settings: Settings | None = None, **kwargs) -> httpx.AsyncClient:
    """Create the crawler's AsyncClient from settings.

    Extra keyword arguments are passed through to httpx (tests use this to
    inject a MockTransport).
    """
    settings = settings or get_settings()
    headers = {
        "User-Agent": settings.CRAWLER_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }
    return httpx.AsyncClient(
        headers=headers,
        follow_redirects=False,
        verify=settings.CRAWLER_VERIFY_SSL,
        limits=httpx.Limits(
            max_connections=settings.HTTP_MAX_CONNECTIONS,
            max_keepalive_connections=settings.HTTP_MAX_KEEPALIVE,
        ),
        **kwargs,
    )
