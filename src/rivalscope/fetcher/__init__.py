"""Page fetching and main-content extraction."""

from .cache import CachingFetcher
from .extractor import ContentExtractor
from .http import HttpContentFetcher
from .types import ContentFetcher, FetchError, FetcherError, FetchResult

__all__ = [
    "CachingFetcher",
    "ContentExtractor",
    "HttpContentFetcher",
    "ContentFetcher",
    "FetchError",
    "FetcherError",
    "FetchResult",
]
