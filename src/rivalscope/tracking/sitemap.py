"""Sitemap fetching, parsing and URL universe discovery.

Parses standard ``<urlset>`` sitemaps and ``<sitemapindex>`` documents,
namespaced or not, plain or gzipped. Discovery tries a few conventional
locations relative to the target and falls back to the content fetcher's
own URL discovery when none of them yields entries.
"""

import gzip
import time
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse
from xml.etree import ElementTree as ET

import httpx

from ..fetcher.types import FetcherError
from ..utils.logging import get_structured_logger
from .types import SitemapDocument, SitemapEntry, SitemapParseError

logger = get_structured_logger(__name__)

SITEMAP_NS = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M%z",
)


class SitemapParser:
    """Fetches and parses individual sitemap documents."""

    def __init__(
        self,
        timeout: float = 20.0,
        max_size_bytes: int = 10 * 1024 * 1024,
        user_agent: str = "Mozilla/5.0 (compatible; RivalScopeBot/1.0)",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.max_size_bytes = max_size_bytes
        self.user_agent = user_agent
        self._client = client

    async def fetch_document(self, url: str) -> SitemapDocument:
        """Fetch and parse a sitemap.

        Raises:
            SitemapParseError: If the sitemap cannot be fetched or parsed
        """
        logger.debug("Fetching sitemap", url=url)

        try:
            content = await self._fetch_content(url)
        except SitemapParseError:
            raise
        except httpx.HTTPError as e:
            raise SitemapParseError(f"Failed to fetch sitemap {url}: {e}") from e

        if url.endswith(".gz") or self._is_gzipped(content):
            try:
                content = gzip.decompress(content)
            except (OSError, EOFError) as e:
                raise SitemapParseError(f"Failed to decompress sitemap: {e}") from e

        return self.parse_xml(content, url)

    async def _fetch_content(self, url: str) -> bytes:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/xml, text/xml, application/gzip, */*",
        }

        if self._client is not None:
            response = await self._client.get(url, headers=headers, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers=headers, follow_redirects=True)

        if response.status_code >= 400:
            raise SitemapParseError(f"HTTP {response.status_code} for {url}")

        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > self.max_size_bytes:
                raise SitemapParseError(f"Sitemap too large: {content_length} bytes")

        if len(response.content) > self.max_size_bytes:
            raise SitemapParseError(f"Sitemap too large: {len(response.content)} bytes")

        return response.content

    @staticmethod
    def _is_gzipped(content: bytes) -> bool:
        return len(content) >= 2 and content[:2] == b"\x1f\x8b"

    def parse_xml(self, content, source_url: str) -> SitemapDocument:
        """Parse sitemap XML into a document.

        Raises:
            SitemapParseError: If the XML is invalid or not a sitemap
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise SitemapParseError(f"Invalid XML in {source_url}: {e}") from e

        root_tag = root.tag.lower()
        if root_tag.endswith("sitemapindex"):
            return self._parse_index(root, source_url)
        if root_tag.endswith("urlset"):
            return self._parse_urlset(root, source_url)

        raise SitemapParseError(f"Unknown sitemap root element: {root.tag}")

    def _parse_index(self, root: ET.Element, source_url: str) -> SitemapDocument:
        children = []
        sitemaps = root.findall("sm:sitemap", SITEMAP_NS) or root.findall("sitemap")
        for sitemap in sitemaps:
            loc = self._child_text(sitemap, "loc")
            if loc:
                children.append(loc)

        logger.debug("Parsed sitemap index", url=source_url, children=len(children))
        return SitemapDocument(source_url=source_url, is_index=True, child_sitemaps=children)

    def _parse_urlset(self, root: ET.Element, source_url: str) -> SitemapDocument:
        document = SitemapDocument(source_url=source_url)

        url_elements = root.findall("sm:url", SITEMAP_NS) or root.findall("url")
        for url_elem in url_elements:
            loc = self._child_text(url_elem, "loc")
            if not loc:
                continue

            lastmod = None
            lastmod_text = self._child_text(url_elem, "lastmod")
            if lastmod_text:
                lastmod = parse_lastmod(lastmod_text)
                if lastmod is None:
                    document.parse_errors.append(f"Invalid date format: {lastmod_text}")

            priority = None
            priority_text = self._child_text(url_elem, "priority")
            if priority_text:
                priority = parse_priority(priority_text)
                if priority is None:
                    document.parse_errors.append(f"Invalid priority value: {priority_text}")

            document.entries.append(
                SitemapEntry(
                    url=loc,
                    lastmod=lastmod,
                    priority=priority,
                    changefreq=self._child_text(url_elem, "changefreq"),
                )
            )

        logger.debug(
            "Parsed sitemap",
            url=source_url,
            entries=len(document.entries),
            errors=len(document.parse_errors),
        )
        return document

    @staticmethod
    def _child_text(element: ET.Element, name: str) -> Optional[str]:
        child = element.find(f"sm:{name}", SITEMAP_NS)
        if child is None:
            child = element.find(name)
        if child is None or not child.text:
            return None
        return child.text.strip() or None


def parse_lastmod(value: str) -> Optional[datetime]:
    """Parse a W3C datetime into naive UTC, or None when unparseable."""
    value = value.strip()
    parsed = None

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
            break
        except ValueError:
            continue

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_priority(value: str) -> Optional[float]:
    """Parse a sitemap priority, rejecting values outside 0.0-1.0."""
    try:
        priority = float(value)
    except ValueError:
        return None
    if 0.0 <= priority <= 1.0:
        return priority
    return None


def mark_priority_paths(
    entries: list[SitemapEntry], priority_paths: list[str]
) -> list[SitemapEntry]:
    """Flag entries whose URL contains or ends with a declared priority path."""
    paths = [p for p in (priority_paths or []) if p]
    for entry in entries:
        entry.is_priority = any(
            path in entry.url or entry.url.endswith(path) for path in paths
        )
    return entries


def candidate_locations(base_url: str) -> list[str]:
    """Conventional sitemap locations for a target, deduplicated in order."""
    base = base_url.rstrip("/")
    parsed = urlparse(base)
    origin = f"{parsed.scheme}://{parsed.netloc}"

    locations = []
    for location in (
        f"{base}/sitemap.xml",
        f"{base}/sitemap_index.xml",
        f"{origin}/sitemap.xml",
    ):
        if location not in locations:
            locations.append(location)
    return locations


class SitemapDiscovery:
    """Builds a target's URL universe from sitemaps or fetcher discovery."""

    def __init__(
        self,
        parser: Optional[SitemapParser] = None,
        fetcher=None,
        max_urls: int = 5000,
        index_depth: int = 1,
        cache_ttl: Optional[float] = None,
    ):
        self.parser = parser or SitemapParser()
        self.fetcher = fetcher
        self.max_urls = max_urls
        self.index_depth = index_depth
        self.cache_ttl = cache_ttl
        self._cache: dict[str, tuple[float, list[SitemapEntry]]] = {}

    @classmethod
    def from_settings(cls, settings, fetcher=None, client: Optional[httpx.AsyncClient] = None):
        parser = SitemapParser(
            timeout=settings.fetcher.timeout,
            max_size_bytes=settings.fetcher.max_content_bytes,
            user_agent=settings.fetcher.user_agent,
            client=client,
        )
        return cls(
            parser=parser,
            fetcher=fetcher,
            max_urls=settings.tracking.sitemap_max_urls,
            index_depth=settings.tracking.sitemap_index_depth,
            cache_ttl=settings.fetcher.cache_ttl_seconds,
        )

    async def discover(self, base_url: str) -> list[SitemapEntry]:
        """Return the discovered URL universe, or [] when nothing resolves."""
        cache_key = f"sitemap_parsed:{urlparse(base_url).netloc}"
        cached = self._cache_get(cache_key)
        if cached is not None:
            logger.debug("Using cached sitemap", key=cache_key, entries=len(cached))
            return [self._copy(entry) for entry in cached]

        entries: list[SitemapEntry] = []
        for location in candidate_locations(base_url):
            try:
                document = await self.parser.fetch_document(location)
                entries = await self._collect(document, depth=0)
            except SitemapParseError as e:
                logger.debug("Sitemap location unavailable", url=location, error=str(e))
                continue

            if entries:
                logger.info("Found sitemap", url=location, entries=len(entries))
                break

        if not entries:
            entries = await self._fallback_discovery(base_url)

        entries = self._dedupe(entries)[: self.max_urls]

        if entries:
            self._cache_put(cache_key, entries)

        return entries

    async def _collect(self, document: SitemapDocument, depth: int) -> list[SitemapEntry]:
        if not document.is_index:
            return list(document.entries)

        if depth >= self.index_depth:
            logger.debug(
                "Sitemap index depth reached",
                url=document.source_url,
                children=len(document.child_sitemaps),
            )
            return []

        entries: list[SitemapEntry] = []
        for child_url in document.child_sitemaps:
            if len(entries) >= self.max_urls:
                break
            try:
                child = await self.parser.fetch_document(child_url)
            except SitemapParseError as e:
                logger.warning("Child sitemap failed", url=child_url, error=str(e))
                continue
            entries.extend(await self._collect(child, depth + 1))

        return entries

    async def _fallback_discovery(self, base_url: str) -> list[SitemapEntry]:
        if self.fetcher is None:
            return []

        logger.info("No XML sitemap found, using fetcher discovery", url=base_url)
        try:
            urls = await self.fetcher.discover_urls(base_url)
        except FetcherError as e:
            logger.warning("Fetcher discovery failed", url=base_url, error=str(e))
            return []

        return [SitemapEntry(url=url) for url in urls]

    @staticmethod
    def _dedupe(entries: list[SitemapEntry]) -> list[SitemapEntry]:
        seen = set()
        unique = []
        for entry in entries:
            if entry.url in seen:
                continue
            seen.add(entry.url)
            unique.append(entry)
        return unique

    @staticmethod
    def _copy(entry: SitemapEntry) -> SitemapEntry:
        return SitemapEntry(
            url=entry.url,
            lastmod=entry.lastmod,
            priority=entry.priority,
            changefreq=entry.changefreq,
        )

    def _cache_get(self, key: str) -> Optional[list[SitemapEntry]]:
        if not self.cache_ttl:
            return None
        item = self._cache.get(key)
        if item is None:
            return None
        stored_at, entries = item
        if time.monotonic() - stored_at > self.cache_ttl:
            del self._cache[key]
            return None
        return entries

    def _cache_put(self, key: str, entries: list[SitemapEntry]) -> None:
        if self.cache_ttl:
            self._cache[key] = (time.monotonic(), [self._copy(e) for e in entries])

    def clear_cache(self) -> None:
        self._cache.clear()
