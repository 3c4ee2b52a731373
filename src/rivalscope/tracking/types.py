"""Type definitions for sitemap discovery and smart URL selection."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol


class TrackingError(Exception):
    """Base exception for tracking-related errors."""

    pass


class SitemapParseError(TrackingError):
    """Exception raised when a sitemap cannot be fetched or parsed."""

    pass


class MonitoringMode(str, Enum):
    """How much of a target is crawled each cycle."""

    SINGLE_PAGE = "SINGLE_PAGE"
    SECTION = "SECTION"
    SMART = "SMART"


class CrawlCadence(str, Enum):
    """How often a target is crawled."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"

    @property
    def interval_days(self) -> int:
        return {"DAILY": 1, "WEEKLY": 7, "MONTHLY": 30}[self.value]


@dataclass
class SitemapEntry:
    """A discovered URL belonging to a target's universe."""

    url: str
    lastmod: Optional[datetime] = None
    priority: Optional[float] = None
    changefreq: Optional[str] = None
    is_priority: bool = False
    last_crawled: Optional[datetime] = None
    last_fingerprint: Optional[str] = None
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "lastmod": self.lastmod.isoformat() if self.lastmod else None,
            "priority": self.priority,
            "changefreq": self.changefreq,
            "is_priority": self.is_priority,
            "last_crawled": self.last_crawled.isoformat() if self.last_crawled else None,
            "is_active": self.is_active,
        }


@dataclass
class SitemapDocument:
    """Result of parsing one sitemap document."""

    source_url: str
    entries: list[SitemapEntry] = field(default_factory=list)
    is_index: bool = False
    child_sitemaps: list[str] = field(default_factory=list)
    parse_errors: list[str] = field(default_factory=list)


class TrackedTarget(Protocol):
    """Attributes of a monitored target read by the selector."""

    url: str
    last_sitemap_check: Optional[datetime]


@dataclass
class MonitoredTarget:
    """A website watched for changes."""

    url: str
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    mode: MonitoringMode = MonitoringMode.SINGLE_PAGE
    cadence: CrawlCadence = CrawlCadence.DAILY
    priority_paths: list[str] = field(default_factory=list)
    max_signals: int = 8
    crawl_attempts: int = 0
    successful_crawls: int = 0
    last_crawled_at: Optional[datetime] = None
    last_successful_crawl_at: Optional[datetime] = None
    last_sitemap_check: Optional[datetime] = None
    account_id: Optional[str] = None


@dataclass
class TierResult:
    """URLs one selection tier contributed, in order."""

    tier: int
    label: str
    urls: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.urls)


@dataclass
class SelectionResult:
    """URLs chosen for one crawl cycle and the trace explaining them."""

    urls: list[str]
    estimated_cost: int
    rationale: str
    trace: list[TierResult] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.urls

    def tier_count(self, label: str) -> int:
        return sum(t.count for t in self.trace if t.label == label)


@dataclass
class PageRecommendation:
    """A scored page suggested for monitoring."""

    url: str
    score: float
    reason: str


@dataclass
class TrackingPreview:
    """Summary of a target's URL universe for display."""

    total_urls: int
    priority_urls: int
    recent_changes: int
    estimated_signals: int
    top_paths: list[tuple[str, int]] = field(default_factory=list)
    rationale: str = ""
