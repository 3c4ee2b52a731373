"""Tests for page fetching, extraction and the fetch cache."""

import httpx
import pytest

from rivalscope.fetcher.cache import CachingFetcher
from rivalscope.fetcher.extractor import ContentExtractor
from rivalscope.fetcher.http import HttpContentFetcher
from rivalscope.fetcher.types import FetchError

from .factories import FakeFetcher

PAGE = """<html>
<head>
  <title> Pricing | Rival </title>
  <meta name="description" content="Plans for every team">
  <script>var tracking = 1;</script>
</head>
<body>
  <nav><a href="/about">About</a></nav>
  <main>
    <h1>Pricing</h1>
    <ul><li>Starter   $10</li><li>Pro $25</li></ul>
    <div style="display: none">Hidden promo</div>
    <!-- internal note -->
    <a href="/pricing#faq">FAQ</a>
    <a href="https://elsewhere.example/x">Partner</a>
    <a href="mailto:sales@rival.example">Sales</a>
  </main>
</body>
</html>
"""


def fetcher_for(handler, **kwargs) -> HttpContentFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpContentFetcher(client=client, retry_delay=0, **kwargs)


class TestContentExtractor:
    def test_main_content_and_metadata(self):
        extracted = ContentExtractor().extract(PAGE, "https://rival.example/pricing")

        assert extracted["title"] == "Pricing | Rival"
        assert extracted["description"] == "Plans for every team"
        assert extracted["text"].splitlines() == ["Pricing", "Starter $10", "Pro $25", "FAQ", "Partner", "Sales"]
        assert "Hidden promo" not in extracted["text"]
        assert "tracking" not in extracted["text"]

    def test_same_site_links_only(self):
        links = ContentExtractor().extract(PAGE, "https://rival.example/pricing")["links"]
        assert links == ["https://rival.example/about", "https://rival.example/pricing"]

    def test_body_fallback_drops_chrome(self):
        html = "<body><header>Logo</header><p>Hello there</p><footer>Legal</footer></body>"
        assert ContentExtractor().extract(html, "https://rival.example")["text"] == "Hello there"


class TestHttpContentFetcher:
    """Fetching through an httpx mock transport."""

    async def test_fetch_extracts_text(self):
        fetcher = fetcher_for(
            lambda request: httpx.Response(200, html=PAGE)
        )

        result = await fetcher.fetch_content("https://rival.example/pricing")

        assert "Pro $25" in result.text
        assert result.metadata.title == "Pricing | Rival"
        assert result.metadata.status_code == 200
        assert result.html == PAGE

    async def test_retries_server_errors(self):
        attempts = []

        def handler(request):
            attempts.append(request.url)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, html="<main>Back online</main>")

        fetcher = fetcher_for(handler, max_retries=2)

        result = await fetcher.fetch_content("https://rival.example")

        assert result.text == "Back online"
        assert len(attempts) == 3

    async def test_gives_up_after_retries(self):
        fetcher = fetcher_for(lambda request: httpx.Response(502), max_retries=1)

        with pytest.raises(FetchError) as excinfo:
            await fetcher.fetch_content("https://rival.example")
        assert excinfo.value.status_code == 502

    async def test_client_error_not_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request.url)
            return httpx.Response(404)

        fetcher = fetcher_for(handler, max_retries=3)

        with pytest.raises(FetchError, match="HTTP 404"):
            await fetcher.fetch_content("https://rival.example/gone")
        assert len(attempts) == 1

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, content=b"%PDF-1.7", headers={"content-type": "application/pdf"}),
            httpx.Response(200, html="<html><body><script>x()</script></body></html>"),
        ],
    )
    async def test_unusable_responses(self, response):
        fetcher = fetcher_for(lambda request: response)
        with pytest.raises(FetchError):
            await fetcher.fetch_content("https://rival.example/file")

    async def test_oversized_response(self):
        fetcher = fetcher_for(
            lambda request: httpx.Response(200, html="<main>" + "x" * 200 + "</main>"),
            max_content_bytes=100,
        )
        with pytest.raises(FetchError, match="too large"):
            await fetcher.fetch_content("https://rival.example")

    async def test_discover_urls(self):
        fetcher = fetcher_for(lambda request: httpx.Response(200, html=PAGE))

        urls = await fetcher.discover_urls("https://rival.example/pricing")

        assert urls == ["https://rival.example/pricing", "https://rival.example/about"]


class TestCachingFetcher:
    async def test_hit_after_miss(self):
        inner = FakeFetcher({"https://rival.example": "Hello"})
        cache = CachingFetcher(inner, ttl=60)

        first = await cache.fetch_content("https://rival.example")
        second = await cache.fetch_content("https://rival.example")

        assert inner.calls == ["https://rival.example"]
        assert not first.from_cache
        assert second.from_cache
        assert second.text == "Hello"
        assert (cache.hits, cache.misses) == (1, 1)

    async def test_failures_not_cached(self):
        inner = FakeFetcher()
        cache = CachingFetcher(inner, ttl=60)

        for _ in range(2):
            with pytest.raises(FetchError):
                await cache.fetch_content("https://rival.example")
        assert len(inner.calls) == 2

    async def test_expired_entries_refetched(self):
        inner = FakeFetcher({"https://rival.example": "Hello"})
        cache = CachingFetcher(inner, ttl=0)

        await cache.fetch_content("https://rival.example")
        await cache.fetch_content("https://rival.example")

        assert len(inner.calls) == 2

    async def test_invalidate(self):
        inner = FakeFetcher({"https://rival.example": "Hello"})
        cache = CachingFetcher(inner, ttl=60)

        await cache.fetch_content("https://rival.example")
        cache.invalidate("https://rival.example")
        await cache.fetch_content("https://rival.example")

        assert len(inner.calls) == 2

    async def test_evicts_oldest(self):
        inner = FakeFetcher({"https://a.example": "a", "https://b.example": "b"})
        cache = CachingFetcher(inner, ttl=60, max_entries=1)

        await cache.fetch_content("https://a.example")
        await cache.fetch_content("https://b.example")
        await cache.fetch_content("https://a.example")

        assert inner.calls == ["https://a.example", "https://b.example", "https://a.example"]
