"""Persistence for targets, snapshots, changes and crawl bookkeeping."""

from .interface import StorageManager
from .memory import InMemorySnapshotStore, InMemoryStore
from .sqlite import DatabaseManager
from .types import (
    ActivityEntry,
    CrawlAttempt,
    CrawlStatus,
    MonitoringStore,
    SnapshotStore,
    StorageError,
    TargetNotFoundError,
)

__all__ = [
    "StorageManager",
    "InMemorySnapshotStore",
    "InMemoryStore",
    "DatabaseManager",
    "ActivityEntry",
    "CrawlAttempt",
    "CrawlStatus",
    "MonitoringStore",
    "SnapshotStore",
    "StorageError",
    "TargetNotFoundError",
]
