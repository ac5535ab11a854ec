"""
Crawl Orchestrator - resolves every sitemap entry through the redirect resolver.

Architecture:
- Bounded concurrency via asyncio.Semaphore; all entries scheduled up front
- Output order matches input order regardless of completion order
- One entry's failure never aborts the batch: it becomes a one-hop error chain
- Each chain is scored as soon as it is resolved
- Single-URL resolution and two-site comparison reuse the same resolver
- Log events carry a crawl_id (and site or url) bound through contextvars
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from urllib.parse import urlparse

import structlog

from sitemap_audit.core.logging import crawl_context
from sitemap_audit.engines.base import (
    NETWORK_ERROR_STATUS,
    ComparisonResult,
    CrawlPolicy,
    CrawlReport,
    CrawlResult,
    HopRecord,
    RedirectChain,
    ResolverPolicy,
    SiteComparison,
    SitemapEntry,
    format_error,
)
from sitemap_audit.engines.redirects.engine import RedirectChainResolver
from sitemap_audit.engines.scoring.engine import ScoringEngine
from sitemap_audit.engines.sitemap.engine import SitemapResolver

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────
# Data Structures
# ─────────────────────────────────────────────

@dataclass
class CrawlStats:
    """Live crawl statistics."""
    total: int = 0
    processed: int = 0
    failed: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    @property
    def urls_per_second(self) -> float:
        elapsed = self.elapsed_seconds
        return self.processed / elapsed if elapsed > 0 else 0


# ─────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────

class CrawlOrchestrator:
    """
    Fans sitemap entries out across a bounded worker pool.

    Flow:
    1. Resolve the site's sitemap into entries (crawl_site only)
    2. Schedule one resolution per entry, at most `concurrency` in flight
    3. Convert resolver exceptions into synthetic error chains
    4. Score each chain and return results in input order
    """

    PROGRESS_EVERY = 100

    def __init__(
        self,
        resolver: RedirectChainResolver,
        sitemap_resolver: SitemapResolver | None = None,
        scorer: ScoringEngine | None = None,
    ):
        self.resolver = resolver
        self.sitemap_resolver = sitemap_resolver
        self.scorer = scorer or ScoringEngine()

    async def crawl_site(self, site_input: str, policy: CrawlPolicy | None = None) -> CrawlReport:
        """Discover a site's sitemap entries and crawl all of them."""
        if self.sitemap_resolver is None:
            raise RuntimeError("crawl_site requires a SitemapResolver")
        with crawl_context(site=site_input):
            entries = await self.sitemap_resolver.resolve(site_input)
            return await self.crawl_all(entries, policy)

    async def crawl_all(
        self,
        entries: list[SitemapEntry],
        policy: CrawlPolicy | None = None,
    ) -> CrawlReport:
        policy = policy or CrawlPolicy()
        with crawl_context():
            return await self._crawl_entries(entries, policy)

    async def _crawl_entries(self, entries: list[SitemapEntry], policy: CrawlPolicy) -> CrawlReport:
        resolver_policy = policy.resolver_policy()
        semaphore = asyncio.Semaphore(policy.concurrency)
        stats = CrawlStats(total=len(entries))

        logger.info("Crawl starting", total=stats.total, concurrency=policy.concurrency)

        async def crawl_entry(entry: SitemapEntry) -> CrawlResult:
            async with semaphore:
                # Each gathered entry runs in its own task, so this binding stays local to it
                structlog.contextvars.bind_contextvars(url=entry.loc)
                try:
                    chain = await self.resolver.resolve(entry.loc, resolver_policy)
                except Exception as exc:
                    stats.failed += 1
                    logger.warning("URL resolution failed", error=str(exc), exc_info=True)
                    chain = self._error_chain(entry.loc, exc)
                else:
                    stats.processed += 1
                    if stats.processed % self.PROGRESS_EVERY == 0:
                        logger.info(
                            "Crawl progress",
                            processed=stats.processed,
                            total=stats.total,
                            ups=round(stats.urls_per_second, 2),
                        )
                return self._build_result(entry.loc, chain, entry)

        results = await asyncio.gather(*[crawl_entry(entry) for entry in entries])

        logger.info(
            "Crawl complete",
            total=stats.total,
            processed=stats.processed,
            failed=stats.failed,
            elapsed_seconds=round(stats.elapsed_seconds, 2),
        )
        return CrawlReport(total=stats.total, processed=stats.processed, results=list(results))

    async def crawl_one(self, url: str, policy: ResolverPolicy | None = None) -> CrawlResult:
        """Resolve a single URL outside any batch; no sitemap metadata is attached."""
        with crawl_context(url=url):
            chain = await self.resolver.resolve(url, policy or ResolverPolicy())
            return self._build_result(url, chain)

    async def compare(
        self,
        url_a: str,
        url_b: str,
        policy: ResolverPolicy | None = None,
    ) -> ComparisonResult:
        """Resolve two arbitrary URLs side by side and pick a winner."""
        policy = policy or ResolverPolicy()
        with crawl_context(site_a=url_a, site_b=url_b):
            chain_a, chain_b = await asyncio.gather(
                self.resolver.resolve(url_a, policy),
                self.resolver.resolve(url_b, policy),
            )
            site_a = self._compare_side(url_a, chain_a)
            site_b = self._compare_side(url_b, chain_b)
            winner = self.scorer.pick_winner(site_a.score.total, site_b.score.total)

            logger.info(
                "Comparison complete",
                total_a=site_a.score.total,
                total_b=site_b.score.total,
                winner=winner,
            )
        return ComparisonResult(site_a=site_a, site_b=site_b, winner=winner)

    # ─────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────

    def _build_result(
        self,
        url: str,
        chain: RedirectChain,
        entry: SitemapEntry | None = None,
    ) -> CrawlResult:
        return CrawlResult(
            original_url=url,
            last_modified=entry.last_modified if entry else None,
            priority=entry.priority if entry else None,
            chain=chain,
            score=self.scorer.score(chain),
            issues=self.scorer.issues(chain),
        )

    def _compare_side(self, url: str, chain: RedirectChain) -> SiteComparison:
        return SiteComparison(
            url=url,
            chain=chain,
            score=self.scorer.score(chain),
            issues=self.scorer.issues(chain),
        )

    @staticmethod
    def _error_chain(url: str, exc: Exception) -> RedirectChain:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None) or NETWORK_ERROR_STATUS
        return [HopRecord(
            url=url,
            status_code=status,
            is_https=urlparse(url).scheme.lower() == "https",
            error=format_error(exc),
        )]
