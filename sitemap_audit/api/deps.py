"""Request-scoped dependencies: the shared HTTP client and the engines built on it."""

from typing import Annotated

import httpx
from fastapi import Depends, Request

from sitemap_audit.core.config import get_settings
from sitemap_audit.engines.crawler.engine import CrawlOrchestrator
from sitemap_audit.engines.redirects.engine import RedirectChainResolver
from sitemap_audit.engines.sitemap.engine import SitemapResolver


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_orchestrator(
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> CrawlOrchestrator:
    settings = get_settings()
    return CrawlOrchestrator(
        resolver=RedirectChainResolver(client, user_agent=settings.CRAWLER_USER_AGENT),
        sitemap_resolver=SitemapResolver(
            client,
            user_agent=settings.CRAWLER_USER_AGENT,
            max_index_depth=settings.SITEMAP_MAX_INDEX_DEPTH,
            timeout=settings.SITEMAP_REQUEST_TIMEOUT,
        ),
    )


Orchestrator = Annotated[CrawlOrchestrator, Depends(get_orchestrator)]
