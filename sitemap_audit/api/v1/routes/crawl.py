"""
Crawl API Routes

No business logic lives here.
Routes validate input, call the orchestrator, return responses.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from pydantic import AliasChoices, Field

from sitemap_audit.api.deps import Orchestrator
from sitemap_audit.engines.base import (
    ComparisonResult,
    CrawlPolicy,
    CrawlReport,
    CrawlResult,
    ResolverPolicy,
)

logger = structlog.get_logger(__name__)
router = APIRouter()


# ─────────────────────────────────────────────
# Request Schemas
# ─────────────────────────────────────────────

class CrawlRequest(CrawlPolicy):
    site: str = Field(
        min_length=1,
        validation_alias=AliasChoices("site", "sitemapUrl"),
    )


class CrawlSingleRequest(ResolverPolicy):
    url: str = Field(min_length=1)


class BattleRequest(ResolverPolicy):
    site_a: str = Field(min_length=1)
    site_b: str = Field(min_length=1)


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────

@router.post("/crawl", response_model=CrawlReport)
async def crawl_sitemap(body: CrawlRequest, orchestrator: Orchestrator) -> CrawlReport:
    """Discover every URL in the site's sitemap and resolve each redirect chain."""
    logger.info("Crawl requested", site=body.site, concurrency=body.concurrency)
    return await orchestrator.crawl_site(body.site, body)


@router.post("/crawl-single", response_model=CrawlResult)
async def crawl_single(body: CrawlSingleRequest, orchestrator: Orchestrator) -> CrawlResult:
    """Re-resolve one URL, e.g. to retry a failed entry from a crawl."""
    return await orchestrator.crawl_one(body.url, body)


@router.post("/battle", response_model=ComparisonResult)
async def battle(body: BattleRequest, orchestrator: Orchestrator) -> ComparisonResult:
    """Score two URLs side by side."""
    logger.info("Comparison requested", site_a=body.site_a, site_b=body.site_b)
    return await orchestrator.compare(body.site_a, body.site_b, body)
