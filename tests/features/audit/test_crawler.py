import httpx
import pytest

from app.features.audit.services.crawler import CrawlerService
from app.platform.exceptions import CrawlFetchError

SEED = "https://example.com"

HOME_HTML = """
<html><body>
  <a href="/random">Random</a>
  <a href="/team">Team</a>
  <a href="https://example.com/pricing">Pricing</a>
  <a href="https://other.com/pricing">Elsewhere</a>
  <a href="/#hero">Hero</a>
  <a href="/random#details">Random again</a>
  <a href="mailto:hello@example.com">Mail</a>
  <a href="/about-us">About</a>
</body></html>
"""


def make_crawler(handler, **kwargs) -> CrawlerService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CrawlerService(http_client=client, **kwargs)


def test_extract_links_keeps_same_host_in_discovery_order():
    links = CrawlerService.extract_links(HOME_HTML, SEED)

    assert links == [
        "https://example.com/random",
        "https://example.com/team",
        "https://example.com/pricing",
        "https://example.com/about-us",
    ]


def test_extract_links_skips_the_seed_itself():
    html = '<a href="/">Home</a><a href="https://example.com/#top">Top</a><a href="/pricing">P</a>'

    assert CrawlerService.extract_links(html, SEED + "/") == ["https://example.com/pricing"]


def test_extract_links_skips_fragment_links():
    html = '<a href="/pricing#plans">P</a><a href="https://example.com/about#team">A</a>'

    assert CrawlerService.extract_links(html, SEED) == []


def test_rank_links_prioritizes_keywords_and_is_stable():
    ranked = CrawlerService.rank_links([
        "https://example.com/random",
        "https://example.com/pricing",
        "https://example.com/team",
        "https://example.com/signup",
    ])

    assert [c.absolute_url for c in ranked] == [
        "https://example.com/pricing",
        "https://example.com/signup",
        "https://example.com/random",
        "https://example.com/team",
    ]
    assert [c.priority_score for c in ranked] == [1, 1, 0, 0]


@pytest.mark.asyncio
async def test_discover_returns_seed_plus_top_two():
    seen_headers = {}

    def handler(request):
        seen_headers.update(request.headers)
        return httpx.Response(200, text=HOME_HTML)

    crawler = make_crawler(handler)
    candidates = await crawler.discover(SEED)

    assert [c.absolute_url for c in candidates] == [
        SEED,
        "https://example.com/pricing",
        "https://example.com/about-us",
    ]
    assert seen_headers["user-agent"] == "Mozilla/5.0 (AuditBot/1.0)"


@pytest.mark.asyncio
async def test_discover_with_no_priority_links_keeps_discovery_order():
    html = '<a href="/random">R</a><a href="/team">T</a><a href="/blog">B</a>'
    crawler = make_crawler(lambda request: httpx.Response(200, text=html))

    candidates = await crawler.discover(SEED)

    assert [c.absolute_url for c in candidates] == [
        SEED,
        "https://example.com/random",
        "https://example.com/team",
    ]


@pytest.mark.asyncio
async def test_discover_without_links_returns_seed_only():
    crawler = make_crawler(lambda request: httpx.Response(200, text="<html><body>Hi</body></html>"))

    candidates = await crawler.discover(SEED)

    assert [c.absolute_url for c in candidates] == [SEED]


@pytest.mark.asyncio
async def test_discover_respects_page_cap():
    crawler = make_crawler(lambda request: httpx.Response(200, text=HOME_HTML), max_pages=2)

    candidates = await crawler.discover(SEED)

    assert len(candidates) == 2


@pytest.mark.asyncio
async def test_seed_http_error_raises_fetch_error():
    crawler = make_crawler(lambda request: httpx.Response(404, text="not found"))

    with pytest.raises(CrawlFetchError) as exc_info:
        await crawler.discover(SEED)

    assert exc_info.value.reason == "fetch_failed"


@pytest.mark.asyncio
async def test_seed_transport_error_raises_fetch_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    crawler = make_crawler(handler)

    with pytest.raises(CrawlFetchError):
        await crawler.discover(SEED)
