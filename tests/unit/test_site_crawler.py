import httpx
import pytest
import respx

from services.audit_service.crawler.site_crawler import SiteCrawler, _normalize_url, discover_pages

HOME = (
    '<html><body><nav><a href="/pricing">Pricing</a><a href="/about#team">About</a>'
    '<a href="mailto:hi@example.com">Mail</a><a href="/brochure.pdf">PDF</a>'
    '<a href="https://twitter.com/example">Twitter</a></nav></body></html>'
)


def test_normalize_url_skips_non_pages():
    base = "https://example.com/shop/"
    assert _normalize_url(base, "mailto:hi@example.com") is None
    assert _normalize_url(base, "javascript:void(0)") is None
    assert _normalize_url(base, "/files/report.pdf") is None
    assert _normalize_url(base, "item-1#reviews") == "https://example.com/shop/item-1"
    assert _normalize_url(base, "https://example.com") == "https://example.com/"


@pytest.mark.asyncio
async def test_discover_pages_stays_on_site():
    with respx.mock:
        respx.get("https://example.com/").respond(200, html=HOME)
        respx.get("https://example.com/pricing").respond(200, html="<html><body>Plans</body></html>")
        respx.get("https://example.com/about").respond(200, html="<html><body>Team</body></html>")

        pages = await discover_pages("https://example.com/", max_pages=10, max_depth=2, timeout_s=5.0)

    assert [page.url for page in pages] == [
        "https://example.com/",
        "https://example.com/pricing",
        "https://example.com/about",
    ]
    assert pages[0].links == ["https://example.com/pricing", "https://example.com/about"]


@pytest.mark.asyncio
async def test_discover_pages_respects_page_limit():
    with respx.mock:
        respx.get("https://example.com/").respond(200, html=HOME)
        respx.get("https://example.com/pricing").respond(200, html="<html></html>")

        pages = await discover_pages("https://example.com/", max_pages=2, max_depth=2, timeout_s=5.0)

    assert len(pages) == 2


@pytest.mark.asyncio
async def test_broken_pages_are_skipped_but_seed_is_kept():
    with respx.mock:
        respx.get("https://example.com/").respond(200, html=HOME)
        respx.get("https://example.com/pricing").respond(404)
        respx.get("https://example.com/about").mock(side_effect=httpx.ConnectError("refused"))

        pages = await discover_pages("https://example.com/", max_pages=10, max_depth=1, timeout_s=5.0)

    assert [page.url for page in pages] == ["https://example.com/"]


@pytest.mark.asyncio
async def test_unreachable_seed_is_reported():
    with respx.mock:
        respx.get("https://example.com/").respond(503)

        pages = await discover_pages("https://example.com/", max_pages=10, max_depth=1, timeout_s=5.0)

    assert len(pages) == 1
    assert pages[0].status_code == 503


def test_site_crawler_returns_urls():
    with respx.mock:
        respx.get("https://example.com/").respond(200, html=HOME)

        urls = SiteCrawler(max_pages=5, max_depth=0, timeout_s=5.0).crawl("https://example.com/")

    assert urls == ["https://example.com/"]
