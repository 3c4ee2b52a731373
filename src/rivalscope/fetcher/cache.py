"""Optional response cache in front of a content fetcher."""

import hashlib
import time
from dataclasses import replace
from typing import Optional

from ..utils.logging import get_structured_logger
from .types import ContentFetcher, FetchResult

logger = get_structured_logger(__name__)


class CachingFetcher:
    """Wraps a fetcher and reuses successful results for ``ttl`` seconds.

    Failures are never cached. Results served from cache are returned with
    ``from_cache=True`` and are otherwise identical to the original fetch.
    """

    def __init__(self, fetcher: ContentFetcher, ttl: float = 3600, max_entries: int = 1000):
        self.fetcher = fetcher
        self.ttl = ttl
        self.max_entries = max_entries
        self._entries: dict[str, tuple[float, FetchResult]] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def cache_key(url: str) -> str:
        return "page:" + hashlib.sha256(url.encode("utf-8")).hexdigest()[:32]

    async def fetch_content(self, url: str) -> FetchResult:
        key = self.cache_key(url)
        cached = self._get(key)
        if cached is not None:
            self.hits += 1
            logger.debug("Fetch cache hit", url=url)
            return replace(cached, from_cache=True)

        self.misses += 1
        result = await self.fetcher.fetch_content(url)
        self._put(key, result)
        return result

    async def discover_urls(self, origin: str) -> list[str]:
        return await self.fetcher.discover_urls(origin)

    def invalidate(self, url: Optional[str] = None) -> None:
        if url is None:
            self._entries.clear()
        else:
            self._entries.pop(self.cache_key(url), None)

    def _get(self, key: str) -> Optional[FetchResult]:
        item = self._entries.get(key)
        if item is None:
            return None
        stored_at, result = item
        if time.monotonic() - stored_at > self.ttl:
            del self._entries[key]
            return None
        return result

    def _put(self, key: str, result: FetchResult) -> None:
        if len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]
        self._entries[key] = (time.monotonic(), result)
