"""
Shared fixtures.
HTTP is faked with httpx.MockTransport; no test touches the network.
"""

from typing import Callable

import httpx
import pytest

from sitemap_audit.core.http import build_http_client

USER_AGENT = "SitemapCrawler/1.0"

TITLE_60 = "T" * 60
DESCRIPTION_155 = "D" * 155


def render_page(
    title: str | None = None,
    description: str | None = None,
    h1: str | None = None,
    canonical: str | None = None,
    og: tuple[str, ...] = (),
    hreflangs: tuple[str, ...] = (),
) -> str:
    head = []
    if title is not None:
        head.append(f"<title>{title}</title>")
    if description is not None:
        head.append(f'<meta name="description" content="{description}">')
    if canonical is not None:
        head.append(f'<link rel="canonical" href="{canonical}">')
    for prop in og:
        head.append(f'<meta property="og:{prop}" content="x">')
    for lang in hreflangs:
        head.append(f'<link rel="alternate" hreflang="{lang}" href="https://example.com/{lang}/">')
    body = f"<h1>{h1}</h1>" if h1 is not None else "<p>content</p>"
    return f"<html><head>{''.join(head)}</head><body>{body}</body></html>"


def perfect_page(url: str) -> str:
    return render_page(
        title=TITLE_60,
        description=DESCRIPTION_155,
        h1="Welcome",
        canonical=url,
        og=("image", "title", "description"),
        hreflangs=("en", "de"),
    )


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def make_client() -> Callable[..., httpx.AsyncClient]:
    def factory(handler) -> httpx.AsyncClient:
        return build_http_client(transport=httpx.MockTransport(handler))
    return factory


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def page():
    return render_page


@pytest.fixture
def good_page():
    return perfect_page
