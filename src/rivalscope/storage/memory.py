"""In-memory stores for tests and ephemeral runs."""

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

from ..detection.types import ChangeRecord, Severity, Snapshot
from ..tracking.types import MonitoredTarget, SitemapEntry
from ..utils.logging import get_structured_logger
from .types import ActivityEntry, CrawlAttempt, CrawlStatus, TargetNotFoundError

logger = get_structured_logger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemorySnapshotStore:
    """Append-only snapshots keyed by (target, url)."""

    def __init__(self):
        self._snapshots: dict[tuple[str, str], list[Snapshot]] = {}

    async def add_snapshot(self, snapshot: Snapshot) -> Snapshot:
        stored = replace(snapshot, id=snapshot.id or _new_id())
        self._snapshots.setdefault((stored.target_id, stored.url), []).append(stored)
        return stored

    async def get_latest_snapshot(
        self, target_id: str, url: str, exclude_id: Optional[str] = None
    ) -> Optional[Snapshot]:
        history = self._snapshots.get((target_id, url), [])
        candidates = [
            (snapshot.captured_at, index, snapshot)
            for index, snapshot in enumerate(history)
            if snapshot.id != exclude_id
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda item: (item[0], item[1]))[2]

    async def list_snapshots(self, target_id: str, url: Optional[str] = None) -> list[Snapshot]:
        return [
            snapshot
            for (tid, snapshot_url), history in self._snapshots.items()
            if tid == target_id and (url is None or snapshot_url == url)
            for snapshot in history
        ]

    def _drop_target(self, target_id: str) -> None:
        for key in [key for key in self._snapshots if key[0] == target_id]:
            del self._snapshots[key]


class InMemoryStore(InMemorySnapshotStore):
    """Dictionary-backed implementation of the full monitoring store."""

    def __init__(self):
        super().__init__()
        self.targets: dict[str, MonitoredTarget] = {}
        self.changes: dict[str, ChangeRecord] = {}
        self.sitemap: dict[str, dict[str, SitemapEntry]] = {}
        self.crawl_logs: dict[str, CrawlAttempt] = {}
        self.activity: list[ActivityEntry] = []

    # Targets

    async def create_target(self, target_data: dict[str, Any]) -> MonitoredTarget:
        target = MonitoredTarget(**target_data)
        target.id = target.id or _new_id()
        self.targets[target.id] = target
        return target

    async def get_target(self, target_id: str) -> Optional[MonitoredTarget]:
        return self.targets.get(target_id)

    async def get_target_by_url(self, url: str) -> Optional[MonitoredTarget]:
        return next((t for t in self.targets.values() if t.url == url), None)

    async def list_targets(self, active_only: bool = False) -> list[MonitoredTarget]:
        return [t for t in self.targets.values() if t.is_active or not active_only]

    async def update_target(self, target_id: str, update_data: dict[str, Any]) -> MonitoredTarget:
        target = self.targets.get(target_id)
        if target is None:
            raise TargetNotFoundError(f"Target not found: {target_id}")
        for key, value in update_data.items():
            if hasattr(target, key):
                setattr(target, key, value)
        return target

    async def delete_target(self, target_id: str) -> bool:
        if self.targets.pop(target_id, None) is None:
            return False
        self._drop_target(target_id)
        removed_changes = {cid for cid, c in self.changes.items() if c.target_id == target_id}
        for change_id in removed_changes:
            del self.changes[change_id]
        self.activity = [a for a in self.activity if a.change_id not in removed_changes]
        self.sitemap.pop(target_id, None)
        for log_id in [lid for lid, log in self.crawl_logs.items() if log.target_id == target_id]:
            del self.crawl_logs[log_id]
        return True

    async def record_crawl_outcome(
        self, target_id: str, success: bool, at: Optional[datetime] = None
    ) -> None:
        target = self.targets.get(target_id)
        if target is None:
            raise TargetNotFoundError(f"Target not found: {target_id}")
        at = at or datetime.utcnow()
        target.crawl_attempts += 1
        if success:
            target.successful_crawls += 1
            target.last_crawled_at = at
            target.last_successful_crawl_at = at

    # Changes

    async def add_change(self, record: ChangeRecord) -> ChangeRecord:
        stored = replace(record, id=record.id or _new_id())
        self.changes[stored.id] = stored
        return stored

    async def list_changes(
        self,
        target_id: Optional[str] = None,
        min_severity: Optional[Severity] = None,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[ChangeRecord]:
        records = [
            c
            for c in self.changes.values()
            if (target_id is None or c.target_id == target_id)
            and (min_severity is None or c.severity >= min_severity)
            and (not unread_only or not c.is_read)
        ]
        records.sort(key=lambda c: c.detected_at, reverse=True)
        return records[:limit]

    async def mark_change_read(self, change_id: str) -> bool:
        record = self.changes.get(change_id)
        if record is None:
            return False
        record.is_read = True
        return True

    # Sitemap

    async def upsert_sitemap_entries(
        self, target_id: str, entries: list[SitemapEntry], checked_at: Optional[datetime] = None
    ) -> int:
        existing = self.sitemap.setdefault(target_id, {})
        for entry in entries:
            current = existing.get(entry.url)
            if current is None:
                existing[entry.url] = replace(entry)
            else:
                current.lastmod = entry.lastmod
                current.priority = entry.priority
                current.changefreq = entry.changefreq
                current.is_priority = entry.is_priority
                current.is_active = True
        target = self.targets.get(target_id)
        if target is not None:
            target.last_sitemap_check = checked_at or datetime.utcnow()
        return len(entries)

    async def list_sitemap_entries(
        self, target_id: str, active_only: bool = False
    ) -> list[SitemapEntry]:
        entries = self.sitemap.get(target_id, {}).values()
        return [replace(e) for e in entries if e.is_active or not active_only]

    async def mark_url_crawled(
        self, target_id: str, url: str, fingerprint: str, at: Optional[datetime] = None
    ) -> None:
        entry = self.sitemap.get(target_id, {}).get(url)
        if entry is not None:
            entry.last_crawled = at or datetime.utcnow()
            entry.last_fingerprint = fingerprint

    # Crawl logs

    async def start_crawl_log(self, target_id: str, signals_used: int) -> str:
        attempt = CrawlAttempt(target_id=target_id, signals_used=signals_used, id=_new_id())
        self.crawl_logs[attempt.id] = attempt
        return attempt.id

    async def finish_crawl_log(
        self,
        log_id: str,
        status: CrawlStatus,
        pages_found: int = 0,
        changes_found: int = 0,
        error_message: Optional[str] = None,
    ) -> None:
        attempt = self.crawl_logs[log_id]
        attempt.status = CrawlStatus(status)
        attempt.pages_found = pages_found
        attempt.changes_found = changes_found
        attempt.error_message = error_message
        attempt.completed_at = datetime.utcnow()

    async def list_crawl_logs(self, target_id: str, limit: int = 20) -> list[CrawlAttempt]:
        logs = [log for log in self.crawl_logs.values() if log.target_id == target_id]
        logs.sort(key=lambda log: log.started_at, reverse=True)
        return logs[:limit]

    # Activity

    async def add_activity(self, entry: ActivityEntry) -> ActivityEntry:
        stored = replace(entry, id=entry.id or _new_id())
        self.activity.append(stored)
        return stored
