"""
Scoring Engine - point-weighted quality score and issue list for a redirect chain.

Scoring Model (final hop unless noted, max 80):
- title            10 / 5 / 0   (50-70 chars ideal)
- metaDescription  10 / 5 / 0   (150-160 chars ideal)
- redirects        15 / 10 / 5 by chain length, 0 if the final status failed
- speed            15 / 10 / 5 / 0 by cumulative response time
- https            10
- ogTags           10 all three, 5 at least one
- h1               5
- canonical        5

Issue detection is independent of the points and also looks at the whole
chain (loops, length, network failure kind). Both are pure functions.
"""

from __future__ import annotations

from typing import Literal

import structlog

from sitemap_audit.engines.base import (
    HopRecord,
    Issue,
    IssueCategory,
    NetworkErrorKind,
    RedirectChain,
    ScoreBreakdown,
    Severity,
    classify_network_error,
)

logger = structlog.get_logger(__name__)

Winner = Literal["siteA", "siteB", "close", "tie"]

NETWORK_ISSUES: dict[NetworkErrorKind, tuple[str, str]] = {
    NetworkErrorKind.TIMEOUT: ("network-timeout", "Request timed out"),
    NetworkErrorKind.DNS: ("dns-failure", "Domain could not be resolved"),
    NetworkErrorKind.REFUSED: ("connection-refused", "Connection refused by the server"),
    NetworkErrorKind.REDIRECT_LIMIT: ("too-many-redirects", "Redirect limit exceeded"),
    NetworkErrorKind.GENERIC: ("network-error", "Request failed"),
}


class ScoringEngine:

    # Thresholds
    TITLE_MIN_LENGTH = 50
    TITLE_MAX_LENGTH = 70
    META_DESC_MIN_LENGTH = 150
    META_DESC_MAX_LENGTH = 160
    MAX_CLEAN_CHAIN_LENGTH = 3
    SLOW_RESPONSE_MS = 1000
    VERY_SLOW_RESPONSE_MS = 2000
    CLOSE_MARGIN = 10
    MAX_TOTAL = 80

    # ─────────────────────────────────────────
    # Points
    # ─────────────────────────────────────────

    def score(self, chain: RedirectChain) -> ScoreBreakdown:
        if not chain:
            return ScoreBreakdown(breakdown={}, total=0)

        final = chain[-1]
        breakdown = {
            "title": self._length_points(final.page_title, self.TITLE_MIN_LENGTH, self.TITLE_MAX_LENGTH),
            "metaDescription": self._length_points(
                final.meta_description, self.META_DESC_MIN_LENGTH, self.META_DESC_MAX_LENGTH,
            ),
            "redirects": self._redirect_points(chain),
            "speed": self._speed_points(final.response_time_ms),
            "https": 10 if final.is_https else 0,
            "ogTags": self._og_points(final),
            "h1": 5 if final.h1 else 0,
            "canonical": 5 if final.canonical_url else 0,
        }
        total = max(0, min(self.MAX_TOTAL, sum(breakdown.values())))
        return ScoreBreakdown(breakdown=breakdown, total=total)

    @staticmethod
    def _length_points(value: str | None, low: int, high: int) -> int:
        if not value:
            return 0
        return 10 if low <= len(value) <= high else 5

    @staticmethod
    def _redirect_points(chain: RedirectChain) -> int:
        final = chain[-1]
        if final.error or final.status_code >= 400:
            return 0
        if len(chain) == 1:
            return 15
        if len(chain) == 2:
            return 10
        return 5

    @staticmethod
    def _speed_points(response_time_ms: int) -> int:
        if response_time_ms < 500:
            return 15
        if response_time_ms < 1000:
            return 10
        if response_time_ms < 2000:
            return 5
        return 0

    @staticmethod
    def _og_points(hop: HopRecord) -> int:
        present = hop.og_flags.present_count
        if present == 3:
            return 10
        return 5 if present else 0

    # ─────────────────────────────────────────
    # Issues
    # ─────────────────────────────────────────

    def issues(self, chain: RedirectChain) -> list[Issue]:
        if not chain:
            return []

        final = chain[-1]
        issues = self._chain_issues(chain)

        if final.error:
            kind = classify_network_error(final.error)
            issue_type, label = NETWORK_ISSUES[kind]
            issues.append(Issue(
                type=issue_type,
                severity=Severity.CRITICAL if kind is not NetworkErrorKind.REDIRECT_LIMIT else Severity.HIGH,
                category=IssueCategory.TECHNICAL,
                message=f"{label}: {final.error}",
            ))
            return issues

        issues.extend(self._status_issues(final))
        issues.extend(self._content_issues(final))
        issues.extend(self._page_issues(final))
        return issues

    def _chain_issues(self, chain: RedirectChain) -> list[Issue]:
        issues: list[Issue] = []

        repeated = self._first_repeated_url(chain)
        if repeated:
            issues.append(Issue(
                type="redirect-loop",
                severity=Severity.CRITICAL,
                category=IssueCategory.TECHNICAL,
                message=f"Redirect loop detected: {repeated} is visited more than once",
            ))

        if len(chain) > self.MAX_CLEAN_CHAIN_LENGTH:
            issues.append(Issue(
                type="redirect-chain-too-long",
                severity=Severity.HIGH,
                category=IssueCategory.TECHNICAL,
                message=f"Too many redirects ({len(chain)} hops). Bad for SEO and UX",
            ))
        elif len(chain) > 1:
            issues.append(Issue(
                type="redirects-present",
                severity=Severity.LOW,
                category=IssueCategory.TECHNICAL,
                message=f"{len(chain) - 1} redirect(s) before the final page. Consider direct linking",
            ))

        return issues

    @staticmethod
    def _first_repeated_url(chain: RedirectChain) -> str | None:
        seen: set[str] = set()
        for hop in chain:
            if hop.url in seen:
                return hop.url
            seen.add(hop.url)
        return None

    @staticmethod
    def _status_issues(final: HopRecord) -> list[Issue]:
        if final.status_code >= 500:
            return [Issue(
                type="server-error",
                severity=Severity.CRITICAL,
                category=IssueCategory.TECHNICAL,
                message=f"Final URL returned HTTP {final.status_code}",
            )]
        if final.status_code >= 400:
            return [Issue(
                type="client-error",
                severity=Severity.HIGH,
                category=IssueCategory.TECHNICAL,
                message=f"Final URL returned HTTP {final.status_code}",
            )]
        return []

    def _content_issues(self, final: HopRecord) -> list[Issue]:
        issues: list[Issue] = []

        title = final.page_title
        if not title:
            issues.append(Issue(
                type="missing-title",
                severity=Severity.HIGH,
                category=IssueCategory.CONTENT,
                message="No title tag found",
            ))
        elif len(title) > self.TITLE_MAX_LENGTH:
            issues.append(Issue(
                type="title-too-long",
                severity=Severity.MEDIUM,
                category=IssueCategory.CONTENT,
                message=f"Title too long ({len(title)} chars). Optimal: "
                        f"{self.TITLE_MIN_LENGTH}-{self.TITLE_MAX_LENGTH}",
            ))
        elif len(title) < self.TITLE_MIN_LENGTH:
            issues.append(Issue(
                type="title-too-short",
                severity=Severity.LOW,
                category=IssueCategory.CONTENT,
                message=f"Title too short ({len(title)} chars). Optimal: "
                        f"{self.TITLE_MIN_LENGTH}-{self.TITLE_MAX_LENGTH}",
            ))

        description = final.meta_description
        if not description:
            issues.append(Issue(
                type="missing-meta-description",
                severity=Severity.HIGH,
                category=IssueCategory.CONTENT,
                message="No meta description found",
            ))
        elif len(description) > self.META_DESC_MAX_LENGTH:
            issues.append(Issue(
                type="meta-description-too-long",
                severity=Severity.MEDIUM,
                category=IssueCategory.CONTENT,
                message=f"Description too long ({len(description)} chars). Optimal: "
                        f"{self.META_DESC_MIN_LENGTH}-{self.META_DESC_MAX_LENGTH}",
            ))
        elif len(description) < self.META_DESC_MIN_LENGTH:
            issues.append(Issue(
                type="meta-description-too-short",
                severity=Severity.LOW,
                category=IssueCategory.CONTENT,
                message=f"Description too short ({len(description)} chars). Optimal: "
                        f"{self.META_DESC_MIN_LENGTH}-{self.META_DESC_MAX_LENGTH}",
            ))

        if not final.h1:
            issues.append(Issue(
                type="missing-h1",
                severity=Severity.MEDIUM,
                category=IssueCategory.CONTENT,
                message="No H1 heading found",
            ))

        return issues

    def _page_issues(self, final: HopRecord) -> list[Issue]:
        issues: list[Issue] = []

        if not final.canonical_url:
            issues.append(Issue(
                type="missing-canonical",
                severity=Severity.MEDIUM,
                category=IssueCategory.TECHNICAL,
                message="No canonical link element found",
            ))

        if final.response_time_ms > self.VERY_SLOW_RESPONSE_MS:
            issues.append(Issue(
                type="slow-response",
                severity=Severity.HIGH,
                category=IssueCategory.TECHNICAL,
                message=f"Very slow ({final.response_time_ms}ms). Should be under 1s",
            ))
        elif final.response_time_ms > self.SLOW_RESPONSE_MS:
            issues.append(Issue(
                type="slow-response",
                severity=Severity.MEDIUM,
                category=IssueCategory.TECHNICAL,
                message=f"Slow response ({final.response_time_ms}ms). Aim for under 500ms",
            ))

        if not final.is_https:
            issues.append(Issue(
                type="no-https",
                severity=Severity.HIGH,
                category=IssueCategory.SECURITY,
                message="Not using HTTPS. Major security and SEO issue",
            ))

        if final.hreflang_count == 0:
            issues.append(Issue(
                type="missing-hreflang",
                severity=Severity.LOW,
                category=IssueCategory.LOCALIZATION,
                message="No hreflang alternate links found",
            ))

        flags = final.og_flags
        missing = [
            name for name, present in (
                ("og:image", flags.has_image),
                ("og:title", flags.has_title),
                ("og:description", flags.has_description),
            ) if not present
        ]
        if missing:
            issues.append(Issue(
                type="incomplete-og-tags",
                severity=Severity.LOW if len(missing) < 3 else Severity.MEDIUM,
                category=IssueCategory.SOCIAL,
                message=f"Missing: {', '.join(missing)}. Poor social sharing optimization",
            ))

        return issues

    # ─────────────────────────────────────────
    # Comparison
    # ─────────────────────────────────────────

    def pick_winner(self, total_a: int, total_b: int) -> Winner:
        """Totals within CLOSE_MARGIN of each other (including equal) are "close"."""
        if abs(total_a - total_b) <= self.CLOSE_MARGIN:
            winner: Winner = "close"
        else:
            winner = "siteA" if total_a > total_b else "siteB"
        logger.debug("Winner picked", total_a=total_a, total_b=total_b, winner=winner)
        return winner
