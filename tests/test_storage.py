"""Tests for the relational and in-memory monitoring stores."""

from datetime import datetime, timedelta

import pytest

from rivalscope.detection.types import ChangeKind, ChangeRecord, Severity
from rivalscope.storage.types import ActivityEntry, CrawlStatus, TargetNotFoundError
from rivalscope.tracking.types import CrawlCadence, MonitoringMode

from .factories import make_entry, make_snapshot

ROOT = "https://rival.example"


def change(target_id: str, severity=Severity.HIGH, title="Pricing Updated", **kwargs) -> ChangeRecord:
    return ChangeRecord(
        target_id=target_id,
        kind=ChangeKind.PRICE_CHANGE,
        title=title,
        description="Price changes detected.",
        severity=severity,
        **kwargs,
    )


class TestStorageManager:
    """StorageManager over an in-memory SQLite database."""

    async def test_create_and_get_target(self, storage):
        target = await storage.create_target(
            {
                "url": ROOT,
                "name": "Rival",
                "mode": MonitoringMode.SMART,
                "cadence": CrawlCadence.WEEKLY,
                "priority_paths": ["/pricing"],
            }
        )

        fetched = await storage.get_target(target.id)
        assert fetched.url == ROOT
        assert fetched.mode == "SMART"
        assert fetched.cadence == "WEEKLY"
        assert fetched.priority_paths == ["/pricing"]
        assert fetched.max_signals == 8
        assert fetched.is_active
        assert (await storage.get_target_by_url(ROOT)).id == target.id

    async def test_list_active_targets(self, storage):
        await storage.create_target({"url": ROOT})
        paused = await storage.create_target({"url": f"{ROOT}/other"})
        await storage.update_target(paused.id, {"is_active": False})

        assert len(await storage.list_targets()) == 2
        assert [t.url for t in await storage.list_targets(active_only=True)] == [ROOT]

    async def test_update_unknown_target(self, storage):
        with pytest.raises(TargetNotFoundError):
            await storage.update_target("missing", {"name": "x"})

    async def test_record_crawl_outcome(self, storage):
        target = await storage.create_target({"url": ROOT})

        await storage.record_crawl_outcome(target.id, success=False)
        after_failure = await storage.get_target(target.id)
        assert after_failure.crawl_attempts == 1
        assert after_failure.successful_crawls == 0
        assert after_failure.last_crawled_at is None

        await storage.record_crawl_outcome(target.id, success=True)
        after_success = await storage.get_target(target.id)
        assert after_success.crawl_attempts == 2
        assert after_success.successful_crawls == 1
        assert after_success.last_successful_crawl_at is not None

    async def test_latest_snapshot_excludes_given_id(self, storage):
        target = await storage.create_target({"url": ROOT})
        now = datetime.utcnow()
        first = await storage.add_snapshot(
            make_snapshot("Pro $10", target_id=target.id, captured_at=now - timedelta(minutes=5))
        )
        second = await storage.add_snapshot(
            make_snapshot("Pro $12", target_id=target.id, captured_at=now)
        )

        latest = await storage.get_latest_snapshot(target.id, second.url)
        assert latest.id == second.id
        assert latest.content == "Pro $12"

        previous = await storage.get_latest_snapshot(target.id, second.url, exclude_id=second.id)
        assert previous.id == first.id
        assert await storage.count_snapshots(target.id) == 2

    async def test_snapshot_metadata_round_trip(self, storage):
        target = await storage.create_target({"url": ROOT})
        stored = await storage.add_snapshot(
            make_snapshot("text", title="Pricing", target_id=target.id)
        )
        assert stored.metadata.title == "Pricing"

    async def test_changes_filtering_and_read_flag(self, storage):
        target = await storage.create_target({"url": ROOT})
        high = await storage.add_change(change(target.id, Severity.HIGH))
        await storage.add_change(change(target.id, Severity.MEDIUM, title="Page Title Changed"))

        assert len(await storage.list_changes(target_id=target.id)) == 2
        important = await storage.list_changes(target_id=target.id, min_severity=Severity.HIGH)
        assert [c.id for c in important] == [high.id]

        assert await storage.mark_change_read(high.id)
        unread = await storage.list_changes(target_id=target.id, unread_only=True)
        assert [c.title for c in unread] == ["Page Title Changed"]
        assert not await storage.mark_change_read("missing")

    async def test_sitemap_upsert_stamps_check_time(self, storage):
        target = await storage.create_target({"url": ROOT})
        checked = datetime(2024, 6, 1, 12, 0)

        await storage.upsert_sitemap_entries(
            target.id,
            [make_entry(f"{ROOT}/pricing", priority=0.9), make_entry(f"{ROOT}/blog")],
            checked_at=checked,
        )
        await storage.upsert_sitemap_entries(
            target.id, [make_entry(f"{ROOT}/pricing", priority=0.5, is_priority=True)]
        )

        entries = {e.url: e for e in await storage.list_sitemap_entries(target.id)}
        assert len(entries) == 2
        assert entries[f"{ROOT}/pricing"].priority == 0.5
        assert entries[f"{ROOT}/pricing"].is_priority

        refreshed = await storage.get_target(target.id)
        assert refreshed.last_sitemap_check > checked

    async def test_mark_url_crawled(self, storage):
        target = await storage.create_target({"url": ROOT})
        await storage.upsert_sitemap_entries(target.id, [make_entry(f"{ROOT}/pricing")])

        await storage.mark_url_crawled(target.id, f"{ROOT}/pricing", "abc123")
        entry = (await storage.list_sitemap_entries(target.id))[0]
        assert entry.last_fingerprint == "abc123"
        assert entry.last_crawled is not None

    async def test_crawl_log_lifecycle(self, storage):
        target = await storage.create_target({"url": ROOT})
        log_id = await storage.start_crawl_log(target.id, signals_used=3)

        logs = await storage.list_crawl_logs(target.id)
        assert logs[0].status == CrawlStatus.IN_PROGRESS.value

        await storage.finish_crawl_log(log_id, CrawlStatus.SUCCESS, pages_found=3, changes_found=1)
        log = (await storage.list_crawl_logs(target.id))[0]
        assert log.status == "SUCCESS"
        assert log.pages_found == 3
        assert log.changes_found == 1
        assert log.completed_at is not None

    async def test_delete_target_removes_owned_rows(self, storage, db_manager):
        target = await storage.create_target({"url": ROOT})
        snapshot = await storage.add_snapshot(make_snapshot("x", target_id=target.id))
        record = await storage.add_change(change(target.id, snapshot_id=snapshot.id))
        await storage.add_activity(
            ActivityEntry(change_id=record.id, title=record.title, message=record.description)
        )
        await storage.upsert_sitemap_entries(target.id, [make_entry(f"{ROOT}/pricing")])
        await storage.start_crawl_log(target.id, signals_used=1)

        assert await storage.delete_target(target.id)
        assert await storage.get_target(target.id) is None
        assert not await storage.delete_target(target.id)

        counts = await db_manager.row_counts()
        for table in ("snapshots", "changes", "activity_notifications", "sitemap_urls", "crawl_logs"):
            assert counts[table] == 0

    async def test_health_check(self, storage):
        assert await storage.health_check() == {"database": True}
        await storage.create_target({"url": ROOT})
        stats = await storage.get_storage_stats()
        assert stats["row_counts"]["targets"] == 1


class TestInMemoryStore:
    """The dictionary store behaves like the relational one."""

    async def test_target_lifecycle(self, memory_store):
        target = await memory_store.create_target({"url": ROOT, "mode": MonitoringMode.SMART})
        assert target.id

        await memory_store.update_target(target.id, {"is_active": False})
        assert await memory_store.list_targets(active_only=True) == []

        with pytest.raises(TargetNotFoundError):
            await memory_store.update_target("missing", {"is_active": True})

    async def test_sitemap_and_crawl_marking(self, memory_store):
        target = await memory_store.create_target({"url": ROOT})
        await memory_store.upsert_sitemap_entries(target.id, [make_entry(f"{ROOT}/a")])
        await memory_store.mark_url_crawled(target.id, f"{ROOT}/a", "fp")

        entry = (await memory_store.list_sitemap_entries(target.id))[0]
        assert entry.last_fingerprint == "fp"
        assert target.last_sitemap_check is not None

    async def test_delete_cascades(self, memory_store):
        target = await memory_store.create_target({"url": ROOT})
        await memory_store.add_snapshot(make_snapshot("x", target_id=target.id))
        record = await memory_store.add_change(change(target.id))
        await memory_store.add_activity(
            ActivityEntry(change_id=record.id, title=record.title, message=record.description)
        )
        await memory_store.start_crawl_log(target.id, 1)

        assert await memory_store.delete_target(target.id)
        assert await memory_store.list_snapshots(target.id) == []
        assert await memory_store.list_changes(target_id=target.id) == []
        assert memory_store.activity == []
        assert await memory_store.list_crawl_logs(target.id) == []
