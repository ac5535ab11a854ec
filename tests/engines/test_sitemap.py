"""
Tests for the Sitemap Resolver.
Uses httpx MockTransport to avoid real network calls.
"""

import gzip

import httpx
import pytest

from sitemap_audit.engines.base import InvalidSiteInputError, SitemapNotFoundError, SitemapParseError
from sitemap_audit.engines.sitemap.engine import (
    SitemapResolver,
    candidate_urls,
    decode_body,
    describe_fetch_error,
    looks_like_xml,
    normalize_site_input,
    parse_text_sitemap,
    parse_xml_sitemap,
)

USER_AGENT = "SitemapCrawler/1.0"
XML = {"content-type": "application/xml"}


def urlset(*locs: str) -> str:
    urls = "".join(f"<url><loc>{loc}</loc></url>" for loc in locs)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{urls}</urlset>'
    )


def sitemapindex(*locs: str) -> str:
    maps = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locs)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{maps}</sitemapindex>'
    )


def routes_handler(routes: dict[str, httpx.Response]):
    """Serve fixed responses by full URL; anything else is a 404."""
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        requested.append(url)
        canned = routes.get(url)
        if canned is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(canned.status_code, headers=canned.headers, content=canned.content)

    handler.requested = requested
    return handler


# ─────────────────────────────────────────────
# Normalization
# ─────────────────────────────────────────────

class TestNormalization:

    def test_bare_domain(self):
        assert normalize_site_input("example.com") == "https://example.com/sitemap.xml"

    def test_trailing_slashes_stripped(self):
        assert normalize_site_input("https://example.com///") == "https://example.com/sitemap.xml"

    def test_keeps_explicit_scheme(self):
        assert normalize_site_input("http://example.com") == "http://example.com/sitemap.xml"

    def test_xml_url_kept(self):
        assert normalize_site_input("example.com/post-sitemap.xml") == "https://example.com/post-sitemap.xml"

    def test_xml_url_with_query_kept(self):
        assert normalize_site_input("https://example.com/map.xml?page=2") == "https://example.com/map.xml?page=2"

    def test_gzip_url_kept(self):
        assert normalize_site_input("https://example.com/map.xml.gz") == "https://example.com/map.xml.gz"

    def test_blank_input_rejected(self):
        with pytest.raises(InvalidSiteInputError):
            normalize_site_input("   ")

    def test_candidates_for_default_path(self):
        assert candidate_urls("https://example.com/sitemap.xml") == [
            "https://example.com/sitemap.xml",
            "https://example.com/sitemap_index.xml",
            "https://example.com/wp-sitemap.xml",
            "https://example.com/sitemap.xml.gz",
        ]

    def test_no_alternates_for_custom_path(self):
        assert candidate_urls("https://example.com/pages.xml") == ["https://example.com/pages.xml"]


# ─────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────

class TestParsing:

    def test_urlset_fields(self):
        body = (
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            "<url><loc>https://example.com/a</loc><lastmod>2024-01-02</lastmod><priority>0.8</priority></url>"
            "<url><loc>https://example.com/b</loc><priority>high</priority></url>"
            "<url><lastmod>2024-01-02</lastmod></url>"
            "</urlset>"
        ).encode()
        children, entries = parse_xml_sitemap(body)

        assert children == []
        assert [e.loc for e in entries] == ["https://example.com/a", "https://example.com/b"]
        assert entries[0].last_modified == "2024-01-02"
        assert entries[0].priority == 0.8
        assert entries[1].last_modified is None
        assert entries[1].priority is None

    def test_image_loc_ignored(self):
        body = (
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9" '
            'xmlns:image="http://www.google.com/schemas/sitemap-image/1.1">'
            "<url><loc>https://example.com/a</loc>"
            "<image:image><image:loc>https://example.com/a.png</image:loc></image:image></url>"
            "</urlset>"
        ).encode()
        _, entries = parse_xml_sitemap(body)
        assert [e.loc for e in entries] == ["https://example.com/a"]

    def test_sitemapindex_children(self):
        children, entries = parse_xml_sitemap(sitemapindex("https://example.com/1.xml", "https://example.com/2.xml").encode())
        assert children == ["https://example.com/1.xml", "https://example.com/2.xml"]
        assert entries == []

    def test_unknown_root_yields_nothing(self):
        assert parse_xml_sitemap(b"<?xml version='1.0'?><rss><channel/></rss>") == ([], [])

    def test_sniffs_xml_without_content_type(self):
        assert looks_like_xml("", b"  <?xml version='1.0'?><urlset/>")
        assert looks_like_xml("text/html", b"<urlset></urlset>")
        assert not looks_like_xml("text/plain", b"https://example.com/a")

    def test_gzip_body_decoded(self):
        assert decode_body(gzip.compress(b"<urlset/>")) == b"<urlset/>"
        assert decode_body(b"<urlset/>") == b"<urlset/>"

    def test_corrupt_gzip_is_a_parse_error(self):
        with pytest.raises(SitemapParseError):
            decode_body(b"\x1f\x8b\x08\x00\x00\x00\x00\x00\x00\x03\xff\xff\xff\xff")

    def test_text_sitemap_absolute_only(self):
        body = b"https://example.com/a\nnot a url\n/relative\n"
        assert [e.loc for e in parse_text_sitemap(body)] == ["https://example.com/a", "not a url", "/relative"]
        assert [e.loc for e in parse_text_sitemap(body, absolute_only=True)] == ["https://example.com/a"]


# ─────────────────────────────────────────────
# Error descriptions
# ─────────────────────────────────────────────

class TestDescribeFetchError:

    def _status_error(self, status: int) -> httpx.HTTPStatusError:
        request = httpx.Request("GET", "https://example.com/sitemap.xml")
        response = httpx.Response(status, request=request)
        return httpx.HTTPStatusError("boom", request=request, response=response)

    def test_status_mappings(self):
        assert "404" in describe_fetch_error(self._status_error(404))
        assert describe_fetch_error(self._status_error(403)).startswith("Access denied")
        assert describe_fetch_error(self._status_error(401)).startswith("Access denied")
        assert "Rate limited" in describe_fetch_error(self._status_error(429))
        assert "HTTP 500" in describe_fetch_error(self._status_error(500))

    def test_network_mappings(self):
        assert "DNS" in describe_fetch_error(httpx.ConnectError("[Errno -2] Name or service not known"))
        assert "refused" in describe_fetch_error(httpx.ConnectError("[Errno 111] Connection refused"))
        assert "timed out" in describe_fetch_error(httpx.ReadTimeout("read"))


# ─────────────────────────────────────────────
# Resolution
# ─────────────────────────────────────────────

class TestResolve:

    @pytest.mark.asyncio
    async def test_primary_urlset(self, make_client):
        handler = routes_handler({
            "https://example.com/sitemap.xml": httpx.Response(200, text=urlset("https://example.com/a"), headers=XML),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("example.com")

        assert [e.loc for e in entries] == ["https://example.com/a"]
        assert handler.requested == ["https://example.com/sitemap.xml"]

    @pytest.mark.asyncio
    async def test_falls_back_to_sitemap_index_after_404(self, make_client):
        handler = routes_handler({
            "https://example.com/sitemap_index.xml": httpx.Response(
                200, text=urlset("https://example.com/a", "https://example.com/b"), headers=XML,
            ),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("https://example.com")

        assert [e.loc for e in entries] == ["https://example.com/a", "https://example.com/b"]
        assert handler.requested == [
            "https://example.com/sitemap.xml",
            "https://example.com/sitemap_index.xml",
        ]

    @pytest.mark.asyncio
    async def test_empty_candidate_falls_through(self, make_client):
        handler = routes_handler({
            "https://example.com/sitemap.xml": httpx.Response(200, text=urlset(), headers=XML),
            "https://example.com/wp-sitemap.xml": httpx.Response(200, text=urlset("https://example.com/wp"), headers=XML),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("example.com")

        assert [e.loc for e in entries] == ["https://example.com/wp"]

    @pytest.mark.asyncio
    async def test_index_expansion_concatenates_in_order(self, make_client):
        handler = routes_handler({
            "https://example.com/sitemap.xml": httpx.Response(
                200, text=sitemapindex("https://example.com/a.xml", "https://example.com/b.xml"), headers=XML,
            ),
            "https://example.com/a.xml": httpx.Response(
                200, text=urlset("https://example.com/a1", "https://example.com/a2"), headers=XML,
            ),
            "https://example.com/b.xml": httpx.Response(200, text=urlset("https://example.com/b1"), headers=XML),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        combined = await resolver.resolve("example.com")
        part_a = await resolver.fetch_entries("https://example.com/a.xml")
        part_b = await resolver.fetch_entries("https://example.com/b.xml")

        assert combined == part_a + part_b
        assert [e.loc for e in combined] == [
            "https://example.com/a1",
            "https://example.com/a2",
            "https://example.com/b1",
        ]

    @pytest.mark.asyncio
    async def test_index_cycle_is_not_followed(self, make_client):
        handler = routes_handler({
            "https://example.com/sitemap.xml": httpx.Response(
                200,
                text=sitemapindex("https://example.com/sitemap.xml", "https://example.com/pages.xml"),
                headers=XML,
            ),
            "https://example.com/pages.xml": httpx.Response(
                200, text=sitemapindex("https://example.com/sitemap.xml", "https://example.com/leaf.xml"), headers=XML,
            ),
            "https://example.com/leaf.xml": httpx.Response(200, text=urlset("https://example.com/x"), headers=XML),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("example.com")

        assert [e.loc for e in entries] == ["https://example.com/x"]
        assert handler.requested.count("https://example.com/sitemap.xml") == 1

    @pytest.mark.asyncio
    async def test_index_depth_is_capped(self, make_client):
        routes = {
            f"https://example.com/level{i}.xml": httpx.Response(
                200, text=sitemapindex(f"https://example.com/level{i + 1}.xml"), headers=XML,
            )
            for i in range(5)
        }
        routes["https://example.com/level1.xml"] = httpx.Response(
            200,
            text=sitemapindex("https://example.com/shallow.xml", "https://example.com/level2.xml"),
            headers=XML,
        )
        routes["https://example.com/shallow.xml"] = httpx.Response(
            200, text=urlset("https://example.com/found"), headers=XML,
        )
        routes["https://example.com/level5.xml"] = httpx.Response(
            200, text=urlset("https://example.com/too-deep"), headers=XML,
        )
        handler = routes_handler(routes)
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT, max_index_depth=2)

        entries = await resolver.fetch_entries("https://example.com/level0.xml")

        assert [e.loc for e in entries] == ["https://example.com/found"]
        assert "https://example.com/level3.xml" not in handler.requested

    @pytest.mark.asyncio
    async def test_failing_child_sitemap_is_skipped(self, make_client):
        handler = routes_handler({
            "https://example.com/sitemap.xml": httpx.Response(
                200, text=sitemapindex("https://example.com/gone.xml", "https://example.com/ok.xml"), headers=XML,
            ),
            "https://example.com/ok.xml": httpx.Response(200, text=urlset("https://example.com/ok"), headers=XML),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("example.com")

        assert [e.loc for e in entries] == ["https://example.com/ok"]

    @pytest.mark.asyncio
    async def test_plain_text_sitemap(self, make_client):
        body = "https://example.com/a\n\n  https://example.com/b  \n"
        handler = routes_handler({
            "https://example.com/urls.xml": httpx.Response(200, text=body),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("https://example.com/urls.xml")

        assert [e.loc for e in entries] == ["https://example.com/a", "https://example.com/b"]
        assert all(e.last_modified is None and e.priority is None for e in entries)

    @pytest.mark.asyncio
    async def test_xml_sniffed_despite_wrong_content_type(self, make_client):
        handler = routes_handler({
            "https://example.com/sitemap.xml": httpx.Response(
                200, text=urlset("https://example.com/a"), headers={"content-type": "text/html"},
            ),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("example.com")

        assert [e.loc for e in entries] == ["https://example.com/a"]

    @pytest.mark.asyncio
    async def test_gzipped_sitemap_candidate(self, make_client):
        body = gzip.compress(urlset("https://example.com/zipped").encode())
        handler = routes_handler({
            "https://example.com/sitemap.xml.gz": httpx.Response(
                200, content=body, headers={"content-type": "application/x-gzip"},
            ),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("example.com")

        assert [e.loc for e in entries] == ["https://example.com/zipped"]

    @pytest.mark.asyncio
    async def test_corrupt_gzip_falls_back_to_next_candidate(self, make_client):
        handler = routes_handler({
            "https://example.com/sitemap.xml": httpx.Response(
                200, content=b"\x1f\x8b\x08\x00" + b"not a deflate stream" * 4, headers=XML,
            ),
            "https://example.com/sitemap_index.xml": httpx.Response(
                200, text=urlset("https://example.com/a", "https://example.com/b"), headers=XML,
            ),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("example.com")

        assert [e.loc for e in entries] == ["https://example.com/a", "https://example.com/b"]

    @pytest.mark.asyncio
    async def test_corrupt_gzip_reason_is_recorded(self, make_client):
        handler = routes_handler({
            "https://example.com/map.xml.gz": httpx.Response(200, content=b"\x1f\x8b\x08\x00garbage"),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        with pytest.raises(SitemapNotFoundError) as exc_info:
            await resolver.resolve("https://example.com/map.xml.gz")

        [(url, reason)] = exc_info.value.attempts
        assert url == "https://example.com/map.xml.gz"
        assert reason.startswith("Invalid sitemap content")

    @pytest.mark.asyncio
    async def test_untyped_body_read_as_plain_text(self, make_client):
        body = b"https://example.com/a\n<!-- stray -->\nhttps://example.com/b\n"
        handler = routes_handler({
            "https://example.com/urls.xml": httpx.Response(200, content=body),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("https://example.com/urls.xml")

        assert [e.loc for e in entries] == ["https://example.com/a", "https://example.com/b"]

    @pytest.mark.asyncio
    async def test_octet_stream_body_read_as_plain_text(self, make_client):
        handler = routes_handler({
            "https://example.com/urls.xml": httpx.Response(
                200, content=b"https://example.com/a\n", headers={"content-type": "application/octet-stream"},
            ),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        entries = await resolver.resolve("https://example.com/urls.xml")

        assert [e.loc for e in entries] == ["https://example.com/a"]

    @pytest.mark.asyncio
    async def test_html_body_is_not_a_sitemap(self, make_client):
        handler = routes_handler({
            "https://example.com/urls.xml": httpx.Response(200, html="<p>https://example.com/a</p>"),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        with pytest.raises(SitemapNotFoundError):
            await resolver.resolve("https://example.com/urls.xml")

    @pytest.mark.asyncio
    async def test_shared_child_expanded_under_each_index(self, make_client):
        shared = "https://example.com/shared.xml"
        handler = routes_handler({
            "https://example.com/root.xml": httpx.Response(
                200, text=sitemapindex("https://example.com/a.xml", "https://example.com/b.xml"), headers=XML,
            ),
            "https://example.com/a.xml": httpx.Response(200, text=sitemapindex(shared), headers=XML),
            "https://example.com/b.xml": httpx.Response(200, text=sitemapindex(shared), headers=XML),
            shared: httpx.Response(200, text=urlset("https://example.com/s"), headers=XML),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        combined = await resolver.fetch_entries("https://example.com/root.xml")
        first = await resolver.fetch_entries("https://example.com/a.xml")
        second = await resolver.fetch_entries("https://example.com/b.xml")

        assert [e.loc for e in combined] == [e.loc for e in first + second]
        assert [e.loc for e in combined] == ["https://example.com/s", "https://example.com/s"]

    @pytest.mark.asyncio
    async def test_all_candidates_exhausted(self, make_client):
        handler = routes_handler({
            "https://example.com/wp-sitemap.xml": httpx.Response(403, text="forbidden"),
        })
        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        with pytest.raises(SitemapNotFoundError) as exc_info:
            await resolver.resolve("example.com")

        error = exc_info.value
        assert error.attempted_urls == candidate_urls("https://example.com/sitemap.xml")
        message = str(error)
        for url in error.attempted_urls:
            assert url in message
        assert "Access denied (HTTP 403)" in message
        assert "Sitemap not found (HTTP 404)" in message

    @pytest.mark.asyncio
    async def test_network_failure_on_every_candidate(self, make_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

        resolver = SitemapResolver(make_client(handler), user_agent=USER_AGENT)

        with pytest.raises(SitemapNotFoundError) as exc_info:
            await resolver.resolve("nope.invalid")

        reasons = [reason for _, reason in exc_info.value.attempts]
        assert len(reasons) == 4
        assert all("DNS" in reason for reason in reasons)
