"""
Redirect-Chain Resolver - follows one URL hop by hop and records every response.

Architecture:
- Transport-level redirect following is disabled; each hop is one GET
- Per-hop state machine: FETCHING -> RETRYING(attempt) -> TERMINAL
- Retry budget is per hop and resets after every followed redirect
- Backoff between retries is attempt x 1000ms
- Response times are cumulative from the start of the chain
- HTML responses are run through the Metadata Extractor
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable
from urllib.parse import urljoin, urlparse

import httpx
import structlog

from sitemap_audit.engines.base import (
    NETWORK_ERROR_STATUS,
    HopRecord,
    RedirectChain,
    ResolverPolicy,
    format_error,
)
from sitemap_audit.engines.metadata.engine import MetadataExtractor

logger = structlog.get_logger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
BACKOFF_STEP_MS = 1000
TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


class HopState(str, Enum):
    FETCHING = "fetching"
    RETRYING = "retrying"
    TERMINAL = "terminal"


def backoff_seconds(attempt: int) -> float:
    """Delay before retry number `attempt` (1-based)."""
    return attempt * BACKOFF_STEP_MS / 1000


def is_html(content_type: str | None) -> bool:
    lowered = (content_type or "").lower()
    return any(kind in lowered for kind in HTML_CONTENT_TYPES)


def _parse_content_length(value: str | None) -> int | None:
    if value is None:
        return None
    value = value.strip()
    return int(value) if value.isdigit() else None


class RedirectChainResolver:
    """
    Resolves a URL into its RedirectChain.

    The HTTP client and user-agent are injected; nothing is shared between
    calls, so one resolver may serve many concurrent resolutions.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str,
        extractor: MetadataExtractor | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.user_agent = user_agent
        self.extractor = extractor or MetadataExtractor()
        self._sleep = sleep

    async def resolve(self, url: str, policy: ResolverPolicy | None = None) -> RedirectChain:
        policy = policy or ResolverPolicy()
        chain: RedirectChain = []
        current_url = url
        hop_count = 0
        attempt = 0
        state = HopState.FETCHING
        started = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        while state is not HopState.TERMINAL and hop_count < policy.max_hops:
            if state is HopState.RETRYING:
                delay = backoff_seconds(attempt)
                logger.debug("Retrying hop", url=current_url, attempt=attempt, delay_s=delay)
                await self._sleep(delay)

            try:
                response = await self._fetch(current_url, policy)
            except TRANSPORT_ERRORS as exc:
                attempt += 1
                if attempt > policy.max_retries_per_hop:
                    logger.info(
                        "Hop failed",
                        url=current_url,
                        attempts=attempt,
                        error=str(exc),
                    )
                    chain.append(HopRecord(
                        url=current_url,
                        status_code=NETWORK_ERROR_STATUS,
                        response_time_ms=elapsed_ms(),
                        is_https=self._is_https(current_url),
                        error=format_error(exc),
                    ))
                    state = HopState.TERMINAL
                else:
                    state = HopState.RETRYING
                continue

            chain.append(self._record_hop(current_url, response, elapsed_ms()))

            location = response.headers.get("location", "").strip()
            if not (300 <= response.status_code < 400) or not location:
                state = HopState.TERMINAL
                continue

            current_url = urljoin(current_url, location)
            hop_count += 1
            attempt = 0
            state = HopState.FETCHING

        if state is not HopState.TERMINAL:
            # Hop budget spent while still redirecting
            chain.append(HopRecord(
                url=current_url,
                status_code=NETWORK_ERROR_STATUS,
                response_time_ms=elapsed_ms(),
                is_https=self._is_https(current_url),
                error=f"TooManyRedirects: exceeded {policy.max_hops} redirects",
            ))

        logger.debug(
            "Chain resolved",
            url=url,
            hops=len(chain),
            final_status=chain[-1].status_code if chain else None,
        )
        return chain

    async def _fetch(self, url: str, policy: ResolverPolicy) -> httpx.Response:
        return await self.client.get(
            url,
            headers={"User-Agent": self.user_agent},
            follow_redirects=False,
            timeout=policy.timeout_seconds,
        )

    def _record_hop(self, url: str, response: httpx.Response, elapsed_ms: int) -> HopRecord:
        content_type = response.headers.get("content-type")
        fields = {}
        if is_html(content_type):
            metadata = self.extractor.extract(response.text)
            fields = {
                "page_title": metadata.title,
                "meta_description": metadata.meta_description,
                "h1": metadata.h1,
                "canonical_url": metadata.canonical_url,
                "og_flags": metadata.og_flags,
                "hreflang_count": metadata.hreflang_count,
            }

        return HopRecord(
            url=url,
            status_code=response.status_code,
            response_time_ms=elapsed_ms,
            content_type=content_type,
            content_length=_parse_content_length(response.headers.get("content-length")),
            is_https=self._is_https(url),
            **fields,
        )

    @staticmethod
    def _is_https(url: str) -> bool:
        return urlparse(url).scheme.lower() == "https"
