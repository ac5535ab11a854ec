"""
Sitemap Resolver - turns a site identifier into the list of URLs it declares.

Flow:
1. Normalize the input into a sitemap URL (scheme, /sitemap.xml suffix)
2. Build candidates: the normalized URL plus well-known alternates
3. Try each candidate in order; the first one yielding entries wins
4. Sitemap indexes are expanded recursively, depth-first, in document order
5. If every candidate fails or is empty, raise SitemapNotFoundError

Candidate-level fetch/parse failures are recorded and the next candidate is
tried. A failing child sitemap inside an index is logged and skipped.
"""

from __future__ import annotations

import gzip
import re
import zlib

import httpx
import structlog
from bs4 import BeautifulSoup

from sitemap_audit.core.config import get_settings
from sitemap_audit.engines.base import (
    InvalidSiteInputError,
    NetworkErrorKind,
    SitemapEntry,
    SitemapNotFoundError,
    SitemapParseError,
    classify_network_error,
    format_error,
)

logger = structlog.get_logger(__name__)
settings = get_settings()

DEFAULT_SITEMAP_PATH = "/sitemap.xml"
ALTERNATE_SITEMAP_PATHS = ("/sitemap_index.xml", "/wp-sitemap.xml", "/sitemap.xml.gz")
XML_SNIFF_MARKERS = ("<?xml", "<urlset", "<sitemapindex")
GZIP_MAGIC = b"\x1f\x8b"
# Media types too generic to say anything about the body
UNTYPED_MEDIA_TYPES = ("", "application/octet-stream", "binary/octet-stream")

SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
SITEMAP_SUFFIX_RE = re.compile(r"\.xml(\.gz)?(\?.*)?$", re.IGNORECASE)


# ─────────────────────────────────────────────
# URL Utilities
# ─────────────────────────────────────────────

def normalize_site_input(site_input: str) -> str:
    """
    Turn a domain or sitemap URL into the primary sitemap URL.

    example.com            -> https://example.com/sitemap.xml
    https://example.com/// -> https://example.com/sitemap.xml
    example.com/map.xml?v=2 -> https://example.com/map.xml?v=2
    """
    value = (site_input or "").strip()
    if not value:
        raise InvalidSiteInputError("A site or sitemap URL is required")

    if not SCHEME_RE.match(value):
        value = f"https://{value}"

    if not SITEMAP_SUFFIX_RE.search(value):
        value = value.rstrip("/") + DEFAULT_SITEMAP_PATH

    return value


def candidate_urls(sitemap_url: str) -> list[str]:
    """The primary sitemap URL followed by well-known fallbacks."""
    candidates = [sitemap_url]
    if sitemap_url.endswith(DEFAULT_SITEMAP_PATH):
        base = sitemap_url[: -len(DEFAULT_SITEMAP_PATH)]
        candidates.extend(base + path for path in ALTERNATE_SITEMAP_PATHS)
    return candidates


def describe_fetch_error(exc: Exception) -> str:
    """Human-readable reason for a failed sitemap candidate."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 404:
            return "Sitemap not found (HTTP 404)"
        if status in (401, 403):
            return f"Access denied (HTTP {status})"
        if status == 429:
            return "Rate limited by the server (HTTP 429)"
        return f"Server responded with HTTP {status}"

    if isinstance(exc, SitemapParseError):
        return f"Invalid sitemap content: {exc}"

    kind = classify_network_error(format_error(exc))
    if kind is NetworkErrorKind.DNS:
        return "Domain could not be resolved (DNS lookup failed)"
    if kind is NetworkErrorKind.REFUSED:
        return "Connection refused by the server"
    if kind is NetworkErrorKind.TIMEOUT:
        return "Request timed out"
    return f"Network error: {format_error(exc)}"


# ─────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────

def decode_body(content: bytes) -> bytes:
    """Transparently gunzip .gz sitemaps served without Content-Encoding."""
    if content.startswith(GZIP_MAGIC):
        try:
            return gzip.decompress(content)
        except (OSError, EOFError, zlib.error) as e:
            raise SitemapParseError(f"corrupt gzip body: {e}") from e
    return content


def looks_like_xml(content_type: str, content: bytes) -> bool:
    if "xml" in content_type.lower():
        return True
    head = content[:512].decode("utf-8", errors="ignore").lstrip("\ufeff \t\r\n").lower()
    return head.startswith(XML_SNIFF_MARKERS)


def parse_text_sitemap(content: bytes, absolute_only: bool = False) -> list[SitemapEntry]:
    """One URL per non-blank line. Untyped bodies keep only absolute URLs."""
    text = content.decode("utf-8", errors="replace")
    lines = (line.strip() for line in text.splitlines())
    return [
        SitemapEntry(loc=line) for line in lines
        if line and (not absolute_only or SCHEME_RE.match(line))
    ]


def _child_text(element, name: str) -> str | None:
    child = element.find(name, recursive=False)
    if child is None:
        return None
    text = child.get_text(strip=True)
    return text or None


def _parse_priority(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def parse_xml_sitemap(content: bytes) -> tuple[list[str], list[SitemapEntry]]:
    """
    Parse an XML sitemap body.

    Returns (child sitemap URLs, page entries). Exactly one of the two is
    non-empty for a well-formed document; unknown roots yield neither.
    """
    soup = BeautifulSoup(content, "xml")

    index = soup.find("sitemapindex")
    if index is not None:
        children = [_child_text(node, "loc") for node in index.find_all("sitemap", recursive=False)]
        return [loc for loc in children if loc], []

    urlset = soup.find("urlset")
    if urlset is not None:
        entries = []
        for node in urlset.find_all("url", recursive=False):
            loc = _child_text(node, "loc")
            if not loc:
                continue
            entries.append(SitemapEntry(
                loc=loc,
                last_modified=_child_text(node, "lastmod"),
                priority=_parse_priority(_child_text(node, "priority")),
            ))
        return [], entries

    return [], []


# ─────────────────────────────────────────────
# Resolver
# ─────────────────────────────────────────────

class SitemapResolver:
    """Discovers, fetches and expands sitemaps for one site."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str,
        max_index_depth: int = settings.SITEMAP_MAX_INDEX_DEPTH,
        timeout: float = settings.SITEMAP_REQUEST_TIMEOUT,
    ):
        self.client = client
        self.user_agent = user_agent
        self.max_index_depth = max_index_depth
        self.timeout = timeout

    async def resolve(self, site_input: str) -> list[SitemapEntry]:
        primary = normalize_site_input(site_input)
        attempts: list[tuple[str, str]] = []

        for candidate in candidate_urls(primary):
            try:
                entries = await self.fetch_entries(candidate)
            except (httpx.HTTPError, httpx.InvalidURL, SitemapParseError) as e:
                reason = describe_fetch_error(e)
                logger.info("Sitemap candidate failed", url=candidate, reason=reason)
                attempts.append((candidate, reason))
                continue

            if entries:
                logger.info("Sitemap resolved", url=candidate, entries=len(entries))
                return entries

            logger.info("Sitemap candidate empty", url=candidate)
            attempts.append((candidate, "no URLs found"))

        logger.warning("No sitemap found", site=site_input, attempted=[url for url, _ in attempts])
        raise SitemapNotFoundError(attempts)

    async def fetch_entries(self, sitemap_url: str) -> list[SitemapEntry]:
        """Fetch one sitemap URL and everything it transitively references."""
        entries: list[SitemapEntry] = []
        await self._expand(sitemap_url, depth=0, ancestors=frozenset({sitemap_url}), entries=entries)
        return entries

    async def _expand(
        self,
        sitemap_url: str,
        depth: int,
        ancestors: frozenset[str],
        entries: list[SitemapEntry],
    ) -> None:
        children, found = await self._fetch_document(sitemap_url)
        entries.extend(found)

        for child_url in children:
            if child_url in ancestors:
                logger.warning("Sitemap index cycle skipped", url=child_url, parent=sitemap_url)
                continue
            if depth + 1 > self.max_index_depth:
                logger.warning(
                    "Sitemap index too deep",
                    url=child_url,
                    max_depth=self.max_index_depth,
                )
                continue

            try:
                await self._expand(child_url, depth + 1, ancestors | {child_url}, entries)
            except (httpx.HTTPError, httpx.InvalidURL, SitemapParseError) as e:
                logger.warning(
                    "Child sitemap failed",
                    url=child_url,
                    parent=sitemap_url,
                    reason=describe_fetch_error(e),
                )

    async def _fetch_document(self, sitemap_url: str) -> tuple[list[str], list[SitemapEntry]]:
        response = await self.client.get(
            sitemap_url,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            timeout=self.timeout,
        )
        response.raise_for_status()

        content = decode_body(response.content)
        content_type = response.headers.get("content-type", "")

        if looks_like_xml(content_type, content):
            return parse_xml_sitemap(content)
        media_type = content_type.split(";")[0].strip().lower()
        if media_type == "text/plain":
            return [], parse_text_sitemap(content)
        if media_type in UNTYPED_MEDIA_TYPES:
            return [], parse_text_sitemap(content, absolute_only=True)

        logger.debug("Unrecognized sitemap content", url=sitemap_url, content_type=content_type)
        return [], []
