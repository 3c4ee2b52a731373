"""Crawl orchestration."""

from .service import CrawlService
from .types import CrawlError, CrawlOutcome, InsufficientSignalsError

__all__ = ["CrawlService", "CrawlError", "CrawlOutcome", "InsufficientSignalsError"]
