"""SQLAlchemy-backed storage for targets, snapshots, changes and crawl logs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, desc, select

from ..detection.types import ChangeRecord, Severity, Snapshot
from ..tracking.types import SitemapEntry
from ..utils.async_utils import AsyncContextManager
from ..utils.logging import get_structured_logger
from .sqlite import (
    ActivityNotification,
    CrawlLog,
    DatabaseManager,
    DetectedChange,
    PageSnapshot,
    SitemapUrl,
    Target,
)
from .types import ActivityEntry, CrawlStatus, TargetNotFoundError

logger = get_structured_logger(__name__)

SEVERITY_ORDER = ["LOW", "MEDIUM", "HIGH", "CRITICAL"]


class StorageManager(AsyncContextManager):
    """Relational implementation of the monitoring store."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self._initialized = False

    async def setup(self) -> None:
        if self._initialized:
            return

        await self.db_manager.setup()

        self._initialized = True
        logger.debug("Storage manager initialized")

    async def cleanup(self) -> None:
        self._initialized = False

    def _session(self):
        return self.db_manager.get_session()

    # Target Management

    async def create_target(self, target_data: dict[str, Any]) -> Target:
        """Create a new target for monitoring."""
        data = dict(target_data)
        for key in ("mode", "cadence"):
            if key in data and data[key] is not None:
                data[key] = getattr(data[key], "value", data[key])

        async with self._session() as session:
            target = Target(**data)
            session.add(target)
            await session.flush()
            await session.refresh(target)
            logger.info("Target created", target_id=target.id, url=target.url)
            return target

    async def get_target(self, target_id: str) -> Optional[Target]:
        async with self._session() as session:
            result = await session.execute(select(Target).where(Target.id == target_id))
            return result.scalar_one_or_none()

    async def get_target_by_url(self, url: str) -> Optional[Target]:
        async with self._session() as session:
            result = await session.execute(select(Target).where(Target.url == url).limit(1))
            return result.scalar_one_or_none()

    async def list_targets(self, active_only: bool = False) -> list[Target]:
        async with self._session() as session:
            query = select(Target)
            if active_only:
                query = query.where(Target.is_active.is_(True))
            result = await session.execute(query.order_by(Target.created_at))
            return list(result.scalars().all())

    async def update_target(self, target_id: str, update_data: dict[str, Any]) -> Target:
        async with self._session() as session:
            result = await session.execute(select(Target).where(Target.id == target_id))
            target = result.scalar_one_or_none()
            if not target:
                raise TargetNotFoundError(f"Target not found: {target_id}")

            for key, value in update_data.items():
                if hasattr(target, key):
                    setattr(target, key, getattr(value, "value", value))

            target.updated_at = datetime.utcnow()
            await session.flush()
            await session.refresh(target)
            logger.info("Target updated", target_id=target_id, fields=sorted(update_data))
            return target

    async def delete_target(self, target_id: str) -> bool:
        """Delete a target and everything it owns in one transaction."""
        async with self._session() as session:
            result = await session.execute(select(Target.id).where(Target.id == target_id))
            if result.scalar_one_or_none() is None:
                return False

            change_ids = select(DetectedChange.id).where(DetectedChange.target_id == target_id)
            await session.execute(
                delete(ActivityNotification).where(ActivityNotification.change_id.in_(change_ids))
            )
            await session.execute(delete(DetectedChange).where(DetectedChange.target_id == target_id))
            await session.execute(delete(PageSnapshot).where(PageSnapshot.target_id == target_id))
            await session.execute(delete(SitemapUrl).where(SitemapUrl.target_id == target_id))
            await session.execute(delete(CrawlLog).where(CrawlLog.target_id == target_id))
            await session.execute(delete(Target).where(Target.id == target_id))

            logger.info("Target deleted", target_id=target_id)
            return True

    async def record_crawl_outcome(
        self, target_id: str, success: bool, at: Optional[datetime] = None
    ) -> None:
        at = at or datetime.utcnow()
        async with self._session() as session:
            result = await session.execute(select(Target).where(Target.id == target_id))
            target = result.scalar_one_or_none()
            if not target:
                raise TargetNotFoundError(f"Target not found: {target_id}")

            target.crawl_attempts = (target.crawl_attempts or 0) + 1
            if success:
                target.successful_crawls = (target.successful_crawls or 0) + 1
                target.last_crawled_at = at
                target.last_successful_crawl_at = at

    # Snapshots

    async def add_snapshot(self, snapshot: Snapshot) -> Snapshot:
        async with self._session() as session:
            row = PageSnapshot(
                target_id=snapshot.target_id,
                url=snapshot.url,
                content=snapshot.content,
                fingerprint=snapshot.fingerprint,
                page_metadata=snapshot.metadata.to_dict(),
                captured_at=snapshot.captured_at,
            )
            if snapshot.id:
                row.id = snapshot.id
            session.add(row)
            await session.flush()
            logger.debug("Snapshot stored", snapshot_id=row.id, url=row.url)
            return row.to_domain()

    async def get_latest_snapshot(
        self, target_id: str, url: str, exclude_id: Optional[str] = None
    ) -> Optional[Snapshot]:
        async with self._session() as session:
            query = select(PageSnapshot).where(
                PageSnapshot.target_id == target_id, PageSnapshot.url == url
            )
            if exclude_id:
                query = query.where(PageSnapshot.id != exclude_id)
            result = await session.execute(
                query.order_by(desc(PageSnapshot.captured_at)).limit(1)
            )
            row = result.scalar_one_or_none()
            return row.to_domain() if row else None

    async def count_snapshots(self, target_id: str) -> int:
        async with self._session() as session:
            result = await session.execute(
                select(PageSnapshot.id).where(PageSnapshot.target_id == target_id)
            )
            return len(result.all())

    # Changes

    async def add_change(self, record: ChangeRecord) -> ChangeRecord:
        async with self._session() as session:
            row = DetectedChange.from_domain(record)
            session.add(row)
            await session.flush()
            return row.to_domain()

    async def list_changes(
        self,
        target_id: Optional[str] = None,
        min_severity: Optional[Severity] = None,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[ChangeRecord]:
        async with self._session() as session:
            query = select(DetectedChange)
            if target_id:
                query = query.where(DetectedChange.target_id == target_id)
            if min_severity is not None:
                allowed = SEVERITY_ORDER[Severity(min_severity).rank - 1 :]
                query = query.where(DetectedChange.severity.in_(allowed))
            if unread_only:
                query = query.where(DetectedChange.is_read.is_(False))

            result = await session.execute(
                query.order_by(desc(DetectedChange.detected_at)).limit(limit)
            )
            return [row.to_domain() for row in result.scalars().all()]

    async def mark_change_read(self, change_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                select(DetectedChange).where(DetectedChange.id == change_id)
            )
            row = result.scalar_one_or_none()
            if not row:
                return False
            row.is_read = True
            return True

    # Sitemap URLs

    async def upsert_sitemap_entries(
        self, target_id: str, entries: list[SitemapEntry], checked_at: Optional[datetime] = None
    ) -> int:
        """Insert or refresh discovered URLs and stamp the target's sitemap check."""
        async with self._session() as session:
            result = await session.execute(
                select(SitemapUrl).where(SitemapUrl.target_id == target_id)
            )
            existing = {row.url: row for row in result.scalars().all()}

            for entry in entries:
                row = existing.get(entry.url)
                if row is None:
                    row = SitemapUrl(target_id=target_id, url=entry.url)
                    session.add(row)
                    existing[entry.url] = row
                row.lastmod = entry.lastmod
                row.priority = entry.priority
                row.changefreq = entry.changefreq
                row.is_priority = entry.is_priority
                row.is_active = True

            target = await session.get(Target, target_id)
            if target is not None:
                target.last_sitemap_check = checked_at or datetime.utcnow()

            logger.info("Sitemap URLs updated", target_id=target_id, count=len(entries))
            return len(entries)

    async def list_sitemap_entries(
        self, target_id: str, active_only: bool = False
    ) -> list[SitemapEntry]:
        async with self._session() as session:
            query = select(SitemapUrl).where(SitemapUrl.target_id == target_id)
            if active_only:
                query = query.where(SitemapUrl.is_active.is_(True))
            result = await session.execute(query.order_by(SitemapUrl.created_at))
            return [row.to_entry() for row in result.scalars().all()]

    async def mark_url_crawled(
        self, target_id: str, url: str, fingerprint: str, at: Optional[datetime] = None
    ) -> None:
        async with self._session() as session:
            result = await session.execute(
                select(SitemapUrl).where(SitemapUrl.target_id == target_id, SitemapUrl.url == url)
            )
            row = result.scalar_one_or_none()
            if row is not None:
                row.last_crawled = at or datetime.utcnow()
                row.content_hash = fingerprint

    # Crawl logs

    async def start_crawl_log(self, target_id: str, signals_used: int) -> str:
        async with self._session() as session:
            log = CrawlLog(
                target_id=target_id,
                status=CrawlStatus.IN_PROGRESS.value,
                signals_used=signals_used,
                started_at=datetime.utcnow(),
            )
            session.add(log)
            await session.flush()
            return log.id

    async def finish_crawl_log(
        self,
        log_id: str,
        status: CrawlStatus,
        pages_found: int = 0,
        changes_found: int = 0,
        error_message: Optional[str] = None,
    ) -> None:
        async with self._session() as session:
            log = await session.get(CrawlLog, log_id)
            if log is None:
                logger.warning("Crawl log vanished before finalization", log_id=log_id)
                return
            log.status = CrawlStatus(status).value
            log.pages_found = pages_found
            log.changes_found = changes_found
            log.error_message = error_message
            log.completed_at = datetime.utcnow()

    async def list_crawl_logs(self, target_id: str, limit: int = 20) -> list[CrawlLog]:
        async with self._session() as session:
            result = await session.execute(
                select(CrawlLog)
                .where(CrawlLog.target_id == target_id)
                .order_by(desc(CrawlLog.started_at))
                .limit(limit)
            )
            return list(result.scalars().all())

    # Activity feed

    async def add_activity(self, entry: ActivityEntry) -> ActivityEntry:
        async with self._session() as session:
            row = ActivityNotification(
                account_id=entry.account_id,
                change_id=entry.change_id,
                channel=entry.channel,
                title=entry.title,
                message=entry.message,
                sent_at=entry.sent_at,
            )
            session.add(row)
            await session.flush()
            return ActivityEntry(
                id=row.id,
                account_id=row.account_id,
                change_id=row.change_id,
                channel=row.channel,
                title=row.title,
                message=row.message,
                sent_at=row.sent_at,
            )

    async def list_activity(self, account_id: Optional[str] = None, limit: int = 50) -> list[ActivityEntry]:
        async with self._session() as session:
            query = select(ActivityNotification)
            if account_id:
                query = query.where(ActivityNotification.account_id == account_id)
            result = await session.execute(
                query.order_by(desc(ActivityNotification.sent_at)).limit(limit)
            )
            return [
                ActivityEntry(
                    id=row.id,
                    account_id=row.account_id,
                    change_id=row.change_id,
                    channel=row.channel,
                    title=row.title,
                    message=row.message,
                    sent_at=row.sent_at,
                )
                for row in result.scalars().all()
            ]

    # Health

    async def health_check(self) -> dict[str, bool]:
        return {"database": await self.db_manager.health_check()}

    async def get_storage_stats(self) -> dict[str, Any]:
        return {"row_counts": await self.db_manager.row_counts()}

