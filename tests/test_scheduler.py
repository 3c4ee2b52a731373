"""Tests for the recurring crawl scheduler."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from rivalscope.crawl.types import CrawlError, CrawlOutcome, InsufficientSignalsError
from rivalscope.scheduler.manager import CrawlScheduler, job_id_for
from rivalscope.scheduler.types import SchedulerError, SchedulerStats
from rivalscope.storage.types import CrawlStatus
from rivalscope.tracking.types import CrawlCadence


def outcome(status=CrawlStatus.SUCCESS):
    return CrawlOutcome(target_id="t1", status=status, urls=["https://rival.example"], rationale="Single page")


@pytest.fixture
def crawl_service(memory_store):
    service = MagicMock()
    service.store = memory_store
    service.crawl_target = AsyncMock(return_value=outcome())
    return service


@pytest_asyncio.fixture
async def running_scheduler(crawl_service):
    scheduler = CrawlScheduler(crawl_service)
    await scheduler.setup()
    yield scheduler
    await scheduler.cleanup()


async def recently_crawled(store, url, cadence=CrawlCadence.DAILY, **kwargs):
    """A target whose next run lies in the future, so no job fires mid-test."""
    target = await store.create_target({"url": url, "cadence": cadence, **kwargs})
    target.last_crawled_at = datetime.utcnow()
    return target


class TestScheduling:
    async def test_setup_schedules_active_targets(self, crawl_service, memory_store):
        active = await recently_crawled(memory_store, "https://a.example", CrawlCadence.WEEKLY)
        await recently_crawled(memory_store, "https://b.example", is_active=False)

        async with CrawlScheduler(crawl_service) as scheduler:
            jobs = scheduler.list_jobs()

        assert [job.target_id for job in jobs] == [active.id]
        assert jobs[0].job_id == job_id_for(active.id)
        assert jobs[0].interval_days == 7

    async def test_first_run_follows_last_crawl(self, running_scheduler, memory_store):
        target = await recently_crawled(memory_store, "https://a.example", CrawlCadence.WEEKLY)

        scheduled = running_scheduler.schedule_target(target)

        expected = (target.last_crawled_at + timedelta(days=7)).replace(tzinfo=timezone.utc)
        assert abs(scheduled.next_run_time - expected) < timedelta(seconds=1)

    async def test_reschedule_replaces_job(self, running_scheduler, memory_store):
        target = await recently_crawled(memory_store, "https://a.example")
        running_scheduler.schedule_target(target)

        target.cadence = CrawlCadence.MONTHLY
        running_scheduler.schedule_target(target)

        jobs = running_scheduler.list_jobs()
        assert len(jobs) == 1
        assert jobs[0].interval_days == 30

    async def test_sync_removes_paused_targets(self, running_scheduler, memory_store):
        target = await recently_crawled(memory_store, "https://a.example")
        await running_scheduler.sync_jobs()
        assert len(running_scheduler.list_jobs()) == 1

        await memory_store.update_target(target.id, {"is_active": False})

        assert await running_scheduler.sync_jobs() == 0
        assert running_scheduler.list_jobs() == []

    async def test_unschedule(self, running_scheduler, memory_store):
        target = await recently_crawled(memory_store, "https://a.example")
        running_scheduler.schedule_target(target)

        assert running_scheduler.unschedule_target(target.id)
        assert not running_scheduler.unschedule_target(target.id)

    async def test_requires_running_scheduler(self, crawl_service, smart_target):
        scheduler = CrawlScheduler(crawl_service)
        with pytest.raises(SchedulerError):
            scheduler.schedule_target(smart_target)
        with pytest.raises(SchedulerError):
            await scheduler.sync_jobs()
        assert scheduler.list_jobs() == []


class TestRunCrawl:
    """Counters kept by the scheduled job body."""

    async def test_success_and_failure_counted(self, crawl_service):
        scheduler = CrawlScheduler(crawl_service)
        crawl_service.crawl_target.side_effect = [
            outcome(),
            outcome(CrawlStatus.FAILED),
            CrawlError("Target is inactive: t1"),
            InsufficientSignalsError(3, 1),
        ]

        for _ in range(4):
            await scheduler._run_crawl("t1")

        stats = scheduler.get_stats()
        assert stats.crawls_executed == 4
        assert stats.crawls_succeeded == 1
        assert stats.crawls_failed == 2
        assert stats.crawls_skipped == 1
        assert stats.success_rate == 0.25

    def test_success_rate_without_runs(self):
        assert SchedulerStats().success_rate == 0.0
