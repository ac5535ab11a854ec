"""
Metadata Extractor - pulls SEO fields out of raw HTML by pattern matching.

No DOM is built: tags are located with regular expressions and their
attributes parsed individually, so attribute order and quote style do not
matter. Malformed markup never raises; anything not found is None.
"""

from __future__ import annotations

import re

from sitemap_audit.engines.base import OGFlags, PageMetadata

TITLE_RE = re.compile(r"<title\b[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)
H1_RE = re.compile(r"<h1\b[^>]*>(.*?)</h1\s*>", re.IGNORECASE | re.DOTALL)
META_TAG_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
LINK_TAG_RE = re.compile(r"<link\b[^>]*>", re.IGNORECASE)
ATTRIBUTE_RE = re.compile(
    r"""([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""",
)
TAG_RE = re.compile(r"<[^>]+>")

OG_PROPERTIES = {
    "og:image": "has_image",
    "og:title": "has_title",
    "og:description": "has_description",
}


def parse_attributes(tag: str) -> dict[str, str]:
    """Quoted attributes of a single tag, names lower-cased, first occurrence wins."""
    attrs: dict[str, str] = {}
    for match in ATTRIBUTE_RE.finditer(tag):
        name = match.group(1).lower()
        value = match.group(2) if match.group(2) is not None else match.group(3)
        attrs.setdefault(name, value)
    return attrs


def _clean(text: str | None) -> str | None:
    if text is None:
        return None
    text = text.strip()
    return text or None


def _rel_values(attrs: dict[str, str]) -> set[str]:
    return set(attrs.get("rel", "").lower().split())


class MetadataExtractor:
    """Stateless HTML metadata extractor."""

    def extract(self, html: str) -> PageMetadata:
        if not html:
            return PageMetadata()

        meta_tags = [parse_attributes(tag) for tag in META_TAG_RE.findall(html)]
        link_tags = [parse_attributes(tag) for tag in LINK_TAG_RE.findall(html)]

        return PageMetadata(
            title=self.extract_title(html),
            meta_description=self._meta_description(meta_tags),
            h1=self.extract_h1(html),
            canonical_url=self._canonical(link_tags),
            hreflang_count=self._hreflang_count(link_tags),
            og_flags=self._og_flags(meta_tags),
        )

    @staticmethod
    def extract_title(html: str) -> str | None:
        match = TITLE_RE.search(html)
        return _clean(match.group(1)) if match else None

    @staticmethod
    def extract_h1(html: str) -> str | None:
        match = H1_RE.search(html)
        if not match:
            return None
        return _clean(TAG_RE.sub("", match.group(1)))

    @staticmethod
    def _meta_description(meta_tags: list[dict[str, str]]) -> str | None:
        for attrs in meta_tags:
            if attrs.get("name", "").strip().lower() == "description" and "content" in attrs:
                return _clean(attrs["content"])
        return None

    @staticmethod
    def _canonical(link_tags: list[dict[str, str]]) -> str | None:
        for attrs in link_tags:
            if "canonical" in _rel_values(attrs) and "href" in attrs:
                return _clean(attrs["href"])
        return None

    @staticmethod
    def _hreflang_count(link_tags: list[dict[str, str]]) -> int:
        return sum(
            1 for attrs in link_tags
            if "alternate" in _rel_values(attrs) and "hreflang" in attrs
        )

    @staticmethod
    def _og_flags(meta_tags: list[dict[str, str]]) -> OGFlags:
        found: dict[str, bool] = {}
        for attrs in meta_tags:
            field = OG_PROPERTIES.get(attrs.get("property", "").strip().lower())
            if field:
                found[field] = True
        return OGFlags(**found)


def extract_metadata(html: str) -> PageMetadata:
    """Module-level shortcut for MetadataExtractor().extract()."""
    return MetadataExtractor().extract(html)
