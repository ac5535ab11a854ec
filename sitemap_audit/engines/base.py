"""
Type contracts shared by every crawl engine.

Design principles:
- Records are immutable once built: hops, chains and results are never edited in place
- Wire names are camelCase (statusCode, responseTimeMs, ...) via alias generation
- Per-hop and per-entry failures are encoded in the data, not raised
- Only whole-sitemap failure and malformed input surface as exceptions
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from sitemap_audit.core.config import get_settings

# Status recorded on a hop that never received an HTTP response
NETWORK_ERROR_STATUS = 0


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class Severity(str, Enum):
    CRITICAL = "critical"   # Page unreachable or looping
    HIGH = "high"           # Significant impact - fix soon
    MEDIUM = "medium"       # Moderate impact
    LOW = "low"             # Minor - fix when convenient


class IssueCategory(str, Enum):
    CONTENT = "content"
    TECHNICAL = "technical"
    SECURITY = "security"
    LOCALIZATION = "localization"
    SOCIAL = "social"


class NetworkErrorKind(str, Enum):
    TIMEOUT = "timeout"
    DNS = "dns"
    REFUSED = "refused"
    REDIRECT_LIMIT = "redirect-limit"
    GENERIC = "generic"


# ─────────────────────────────────────────────
# Core data types
# ─────────────────────────────────────────────

class WireModel(BaseModel):
    """Frozen model serialized with camelCase field names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class OGFlags(WireModel):
    has_image: bool = False
    has_title: bool = False
    has_description: bool = False

    @property
    def present_count(self) -> int:
        return sum((self.has_image, self.has_title, self.has_description))


class PageMetadata(WireModel):
    """SEO fields pulled out of one HTML body."""
    title: str | None = None
    meta_description: str | None = None
    h1: str | None = None
    canonical_url: str | None = None
    hreflang_count: int = 0
    og_flags: OGFlags = Field(default_factory=OGFlags)


class HopRecord(WireModel):
    """One fetch attempt's outcome within a redirect chain."""
    url: str
    status_code: int
    response_time_ms: int = Field(ge=0, default=0)
    content_type: str | None = None
    content_length: int | None = None
    is_https: bool = False
    page_title: str | None = None
    meta_description: str | None = None
    h1: str | None = None
    canonical_url: str | None = None
    og_flags: OGFlags = Field(default_factory=OGFlags)
    hreflang_count: int = Field(ge=0, default=0)
    error: str | None = None

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400


# Ordered first-to-last along the redirect path
RedirectChain = list[HopRecord]


class SitemapEntry(WireModel):
    loc: str
    last_modified: str | None = None
    priority: float | None = None


class ScoreBreakdown(WireModel):
    """Points per metric plus their sum (max 80)."""
    breakdown: dict[str, int] = Field(default_factory=dict)
    total: int = Field(ge=0, le=80, default=0)


class Issue(WireModel):
    """A single diagnostic derived from a chain."""
    type: str
    severity: Severity
    category: IssueCategory
    message: str


class CrawlResult(WireModel):
    original_url: str
    last_modified: str | None = None
    priority: float | None = None
    chain: RedirectChain = Field(default_factory=list)
    score: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    issues: list[Issue] = Field(default_factory=list)


class CrawlReport(WireModel):
    total: int
    processed: int
    results: list[CrawlResult] = Field(default_factory=list)


class SiteComparison(WireModel):
    url: str
    chain: RedirectChain
    score: ScoreBreakdown
    issues: list[Issue] = Field(default_factory=list)


class ComparisonResult(WireModel):
    site_a: SiteComparison
    site_b: SiteComparison
    # "tie" is kept for interface compatibility; equal totals resolve to "close"
    winner: Literal["siteA", "siteB", "close", "tie"]


# ─────────────────────────────────────────────
# Policies
# ─────────────────────────────────────────────

class ResolverPolicy(WireModel):
    """Per-URL redirect resolution limits."""
    max_hops: int = Field(ge=1, default=10)
    timeout_ms: int = Field(ge=1, default=10_000)
    max_retries_per_hop: int = Field(ge=0, default=2)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class CrawlPolicy(ResolverPolicy):
    """Resolver limits plus the batch concurrency bound."""
    concurrency: int = Field(ge=1, default=5)

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        limit = get_settings().CRAWLER_MAX_CONCURRENCY
        if v > limit:
            raise ValueError(f"concurrency must be between 1 and {limit}")
        return v

    def resolver_policy(self) -> ResolverPolicy:
        return ResolverPolicy(
            max_hops=self.max_hops,
            timeout_ms=self.timeout_ms,
            max_retries_per_hop=self.max_retries_per_hop,
        )


# ─────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────

class SitemapAuditError(Exception):
    """Base class for errors surfaced to callers."""


class InvalidSiteInputError(SitemapAuditError):
    """The site string cannot be turned into a sitemap URL."""


class SitemapParseError(SitemapAuditError):
    """A fetched sitemap body could not be decoded."""


class SitemapNotFoundError(SitemapAuditError):
    """Every candidate sitemap URL failed or yielded no entries."""

    def __init__(self, attempts: list[tuple[str, str]]):
        self.attempts = attempts
        tried = "; ".join(f"{url} ({reason})" for url, reason in attempts)
        super().__init__(f"No sitemap found. Tried: {tried}")

    @property
    def attempted_urls(self) -> list[str]:
        return [url for url, _ in self.attempts]


_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "name resolution",
    "no address associated",
    "enotfound",
)
_REFUSED_MARKERS = ("connection refused", "econnrefused", "actively refused")


def format_error(exc: BaseException) -> str:
    """Render an exception as "<ExceptionClass>: <message>"."""
    name = exc.__class__.__name__
    message = str(exc)
    return f"{name}: {message}" if message else name


def classify_network_error(text: str | None) -> NetworkErrorKind:
    """Categorize a recorded hop error by its text."""
    lowered = (text or "").lower()
    if "toomanyredirects" in lowered:
        return NetworkErrorKind.REDIRECT_LIMIT
    if "timeout" in lowered or "timed out" in lowered:
        return NetworkErrorKind.TIMEOUT
    if any(marker in lowered for marker in _DNS_MARKERS):
        return NetworkErrorKind.DNS
    if any(marker in lowered for marker in _REFUSED_MARKERS):
        return NetworkErrorKind.REFUSED
    return NetworkErrorKind.GENERIC
