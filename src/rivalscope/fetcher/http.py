"""HTTP content fetcher built on httpx."""

from typing import Optional

import httpx

from ..detection.types import PageMetadata
from ..utils.async_utils import AsyncContextManager, retry_async
from ..utils.logging import get_structured_logger
from .extractor import ContentExtractor
from .types import FetchError, FetchResult

logger = get_structured_logger(__name__)

TEXT_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "text/plain")


class _RetryableFetchError(FetchError):
    """Transient failure worth another attempt (5xx, 429, transport errors)."""


class HttpContentFetcher(AsyncContextManager):
    """Fetches pages over HTTP and reduces them to main-content text."""

    def __init__(
        self,
        timeout: float = 20.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        max_content_bytes: int = 5 * 1024 * 1024,
        user_agent: str = "Mozilla/5.0 (compatible; RivalScopeBot/1.0)",
        max_discovered_urls: int = 500,
        client: Optional[httpx.AsyncClient] = None,
        extractor: Optional[ContentExtractor] = None,
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_content_bytes = max_content_bytes
        self.user_agent = user_agent
        self.max_discovered_urls = max_discovered_urls
        self.extractor = extractor or ContentExtractor()
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings, client: Optional[httpx.AsyncClient] = None):
        fetcher_settings = settings.fetcher
        return cls(
            timeout=fetcher_settings.timeout,
            max_retries=fetcher_settings.max_retries,
            max_content_bytes=fetcher_settings.max_content_bytes,
            user_agent=fetcher_settings.user_agent,
            max_discovered_urls=settings.tracking.sitemap_max_urls,
            client=client,
        )

    async def setup(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
                    "Accept-Language": "en-US,en;q=0.5",
                },
            )
            self._owns_client = True

    async def cleanup(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch_content(self, url: str) -> FetchResult:
        """Fetch a URL and extract its main content.

        Raises:
            FetchError: If the page is unreachable, errors, or has no text
        """
        try:
            html, status_code = await retry_async(
                lambda: self._get(url),
                max_retries=self.max_retries,
                delay=self.retry_delay,
                exceptions=(_RetryableFetchError,),
            )
        except _RetryableFetchError as e:
            raise FetchError(str(e), url=url, status_code=e.status_code) from e

        extracted = self.extractor.extract(html, url)
        if not extracted["text"]:
            raise FetchError("Page has no extractable text", url=url, status_code=status_code)

        logger.debug(
            "Fetched page",
            url=url,
            status_code=status_code,
            words=extracted["word_count"],
        )

        return FetchResult(
            url=url,
            text=extracted["text"],
            html=html,
            metadata=PageMetadata(
                title=extracted["title"],
                description=extracted["description"],
                status_code=status_code,
            ),
        )

    async def discover_urls(self, origin: str) -> list[str]:
        """Discover same-site URLs linked from the origin page."""
        html, _ = await retry_async(
            lambda: self._get(origin),
            max_retries=self.max_retries,
            delay=self.retry_delay,
            exceptions=(_RetryableFetchError,),
        )
        links = self.extractor.extract(html, origin)["links"]

        urls = [origin] + [link for link in links if link.rstrip("/") != origin.rstrip("/")]
        logger.info("Discovered URLs from page links", url=origin, count=len(urls))
        return urls[: self.max_discovered_urls]

    async def _get(self, url: str) -> tuple[str, int]:
        if self._client is None:
            await self.setup()

        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise _RetryableFetchError(f"Timeout fetching {url}", url=url) from e
        except httpx.TransportError as e:
            raise _RetryableFetchError(f"Connection failed for {url}: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Request failed for {url}: {e}", url=url) from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise _RetryableFetchError(f"HTTP {status} for {url}", url=url, status_code=status)
        if status >= 400:
            raise FetchError(f"HTTP {status} for {url}", url=url, status_code=status)

        content_type = response.headers.get("content-type", "text/html").lower()
        if not any(kind in content_type for kind in TEXT_CONTENT_TYPES):
            raise FetchError(
                f"Unsupported content type {content_type}", url=url, status_code=status
            )

        if len(response.content) > self.max_content_bytes:
            raise FetchError(
                f"Response too large: {len(response.content)} bytes",
                url=url,
                status_code=status,
            )

        return response.text, status
