"""Type definitions for storage components."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from ..detection.types import ChangeRecord, Severity, Snapshot
from ..tracking.types import SitemapEntry


class StorageError(Exception):
    """Base exception for storage-related errors."""

    pass


class TargetNotFoundError(StorageError):
    """Raised when a target id does not exist."""

    pass


class CrawlStatus(str, Enum):
    """Lifecycle of one crawl execution."""

    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass
class CrawlAttempt:
    """Record of one crawl execution."""

    target_id: str
    status: CrawlStatus = CrawlStatus.IN_PROGRESS
    signals_used: int = 0
    pages_found: int = 0
    changes_found: int = 0
    error_message: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    id: Optional[str] = None


@dataclass
class ActivityEntry:
    """In-app activity feed entry."""

    change_id: str
    title: str
    message: str
    channel: str = "IN_APP"
    account_id: Optional[str] = None
    sent_at: datetime = field(default_factory=datetime.utcnow)
    id: Optional[str] = None


class SnapshotStore(Protocol):
    """Append-only snapshot persistence with prior-snapshot lookup."""

    async def add_snapshot(self, snapshot: Snapshot) -> Snapshot:
        ...

    async def get_latest_snapshot(
        self, target_id: str, url: str, exclude_id: Optional[str] = None
    ) -> Optional[Snapshot]:
        ...


class MonitoringStore(SnapshotStore, Protocol):
    """Everything the crawl service reads and writes."""

    async def get_target(self, target_id: str) -> Optional[Any]:
        ...

    async def list_targets(self, active_only: bool = False) -> list[Any]:
        ...

    async def update_target(self, target_id: str, update_data: dict[str, Any]) -> Any:
        ...

    async def record_crawl_outcome(
        self, target_id: str, success: bool, at: Optional[datetime] = None
    ) -> None:
        ...

    async def add_change(self, record: ChangeRecord) -> ChangeRecord:
        ...

    async def list_changes(
        self,
        target_id: Optional[str] = None,
        min_severity: Optional[Severity] = None,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[ChangeRecord]:
        ...

    async def upsert_sitemap_entries(
        self, target_id: str, entries: list[SitemapEntry], checked_at: Optional[datetime] = None
    ) -> int:
        ...

    async def list_sitemap_entries(
        self, target_id: str, active_only: bool = False
    ) -> list[SitemapEntry]:
        ...

    async def mark_url_crawled(
        self, target_id: str, url: str, fingerprint: str, at: Optional[datetime] = None
    ) -> None:
        ...

    async def start_crawl_log(self, target_id: str, signals_used: int) -> str:
        ...

    async def finish_crawl_log(
        self,
        log_id: str,
        status: CrawlStatus,
        pages_found: int = 0,
        changes_found: int = 0,
        error_message: Optional[str] = None,
    ) -> None:
        ...

    async def add_activity(self, entry: ActivityEntry) -> ActivityEntry:
        ...
