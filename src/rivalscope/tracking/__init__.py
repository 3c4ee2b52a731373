"""Sitemap discovery and budgeted URL selection."""

from .preview import build_preview
from .scorer import KeywordPageScorer, PageScorer, recommend_pages
from .selector import UrlSelector, build_rationale, order_universe, plan_crawl, select_urls
from .sitemap import (
    SitemapDiscovery,
    SitemapParser,
    candidate_locations,
    mark_priority_paths,
    parse_lastmod,
    parse_priority,
)
from .types import (
    CrawlCadence,
    MonitoredTarget,
    MonitoringMode,
    PageRecommendation,
    SelectionResult,
    SitemapDocument,
    SitemapEntry,
    SitemapParseError,
    TierResult,
    TrackingError,
    TrackingPreview,
)

__all__ = [
    "build_preview",
    "KeywordPageScorer",
    "PageScorer",
    "recommend_pages",
    "UrlSelector",
    "build_rationale",
    "order_universe",
    "plan_crawl",
    "select_urls",
    "SitemapDiscovery",
    "SitemapParser",
    "candidate_locations",
    "mark_priority_paths",
    "parse_lastmod",
    "parse_priority",
    "CrawlCadence",
    "MonitoredTarget",
    "MonitoringMode",
    "PageRecommendation",
    "SelectionResult",
    "SitemapDocument",
    "SitemapEntry",
    "SitemapParseError",
    "TierResult",
    "TrackingError",
    "TrackingPreview",
]
