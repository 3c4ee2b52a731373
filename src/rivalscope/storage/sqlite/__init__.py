"""SQLAlchemy persistence for targets, snapshots and changes."""

from .database import DatabaseManager, engine_options, to_async_url
from .models import (
    Account,
    ActivityNotification,
    Base,
    CrawlLog,
    DetectedChange,
    PageSnapshot,
    SignalTransaction,
    SitemapUrl,
    Target,
)

__all__ = [
    "DatabaseManager",
    "engine_options",
    "to_async_url",
    "Account",
    "ActivityNotification",
    "Base",
    "CrawlLog",
    "DetectedChange",
    "PageSnapshot",
    "SignalTransaction",
    "SitemapUrl",
    "Target",
]
