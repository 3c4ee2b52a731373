"""Type definitions for the fetcher module."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from ..detection.types import PageMetadata


class FetcherError(Exception):
    """Base exception for fetcher-related errors."""

    pass


class FetchError(FetcherError):
    """A URL could not be retrieved or yielded no usable content."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


@dataclass
class FetchResult:
    """Normalized main-content text and metadata for one URL."""

    url: str
    text: str
    metadata: PageMetadata = field(default_factory=PageMetadata)
    html: Optional[str] = None
    fetched_at: datetime = field(default_factory=datetime.utcnow)
    from_cache: bool = False


class ContentFetcher(Protocol):
    """Retrieves page content and discovers URLs on a site."""

    async def fetch_content(self, url: str) -> FetchResult:
        """Fetch one URL. Raises FetchError on failure."""
        ...

    async def discover_urls(self, origin: str) -> list[str]:
        """Bulk URL discovery for a site. Raises FetchError on failure."""
        ...
