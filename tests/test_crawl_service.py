"""Tests for crawl orchestration."""

import asyncio
from datetime import datetime, timedelta

import pytest

from rivalscope.billing.ledger import InMemoryLedger
from rivalscope.crawl.service import CrawlService
from rivalscope.crawl.types import CrawlError, InsufficientSignalsError
from rivalscope.detection.types import ChangeKind, Severity
from rivalscope.notification.channels import LoggingNotifier
from rivalscope.notification.dispatcher import NotificationDispatcher
from rivalscope.storage.memory import InMemoryStore
from rivalscope.storage.types import CrawlStatus
from rivalscope.tracking.types import MonitoringMode

from .factories import FakeFetcher, make_entry

ROOT = "https://rival.example"


class StubDiscovery:
    """Returns a fixed URL universe and counts refreshes."""

    def __init__(self, entries):
        self.entries = entries
        self.calls = 0

    async def discover(self, base_url):
        self.calls += 1
        return [make_entry(e.url, lastmod=e.lastmod, priority=e.priority) for e in self.entries]


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def service_factory(memory_store, ledger, fake_fetcher, notifier):
    def build(discovery=None, **kwargs):
        dispatcher = NotificationDispatcher(channels=[notifier], store=memory_store)
        return CrawlService(
            store=memory_store,
            fetcher=fake_fetcher,
            ledger=ledger,
            discovery=discovery,
            dispatcher=dispatcher,
            **kwargs,
        )

    return build


async def add_target(store, **overrides):
    data = {"url": ROOT, "name": "Rival", "account_id": "acct-1"}
    data.update(overrides)
    return await store.create_target(data)


class TestSinglePageCrawl:
    """Baseline, change detection and billing for one URL."""

    async def test_first_crawl_is_baseline(self, service_factory, memory_store, ledger, fake_fetcher):
        target = await add_target(memory_store)
        fake_fetcher.set_page(ROOT, "Pro plan $10", title="Pricing")

        outcome = await service_factory().crawl_target(target.id)

        assert outcome.status == CrawlStatus.SUCCESS
        assert outcome.urls == [ROOT]
        assert outcome.pages_fetched == 1
        assert outcome.changes == []
        assert outcome.signals_used == 1
        assert outcome.signals_remaining == 99
        assert await ledger.get_balance("acct-1") == 99
        assert ledger.entries[-1].description == "Crawled Rival"

        log = memory_store.crawl_logs[outcome.crawl_log_id]
        assert log.status == CrawlStatus.SUCCESS
        assert log.pages_found == 1
        assert target.crawl_attempts == 1
        assert target.successful_crawls == 1
        assert target.last_crawled_at is not None

    async def test_price_change_detected_and_notified(
        self, service_factory, memory_store, fake_fetcher, notifier
    ):
        target = await add_target(memory_store)
        service = service_factory()

        fake_fetcher.set_page(ROOT, "Pro plan $10", title="Pricing")
        await service.crawl_target(target.id)
        fake_fetcher.set_page(ROOT, "Pro plan $12", title="Pricing")
        outcome = await service.crawl_target(target.id)

        assert [c.kind for c in outcome.changes] == [ChangeKind.PRICE_CHANGE]
        stored = await memory_store.list_changes(target_id=target.id)
        assert len(stored) == 1
        assert stored[0].old_value == "$10"
        assert stored[0].new_value == "$12"

        assert len(notifier.sent) == 1
        summary = notifier.sent[0]
        assert summary.severity == Severity.HIGH
        assert summary.changes_url.endswith(f"/competitors/{target.id}/changes")
        assert [a.change_id for a in memory_store.activity] == [stored[0].id]

    async def test_unchanged_page_produces_no_changes(
        self, service_factory, memory_store, fake_fetcher, notifier
    ):
        target = await add_target(memory_store)
        service = service_factory()
        fake_fetcher.set_page(ROOT, "Same text")

        await service.crawl_target(target.id)
        outcome = await service.crawl_target(target.id)

        assert outcome.changes == []
        assert notifier.sent == []
        assert len(await memory_store.list_snapshots(target.id)) == 2

    async def test_medium_changes_are_stored_but_not_notified(
        self, service_factory, memory_store, fake_fetcher, notifier
    ):
        target = await add_target(memory_store)
        service = service_factory()

        fake_fetcher.set_page(ROOT, "Welcome", title="Home")
        await service.crawl_target(target.id)
        fake_fetcher.set_page(ROOT, "Welcome!", title="Home page")
        outcome = await service.crawl_target(target.id)

        assert [c.severity for c in outcome.changes] == [Severity.MEDIUM]
        assert notifier.sent == []
        assert memory_store.activity == []


class TestBilling:
    async def test_insufficient_balance_blocks_crawl(self, memory_store, fake_fetcher):
        ledger = InMemoryLedger({"acct-1": 0})
        service = CrawlService(store=memory_store, fetcher=fake_fetcher, ledger=ledger)
        target = await add_target(memory_store)

        with pytest.raises(InsufficientSignalsError) as excinfo:
            await service.crawl_target(target.id)

        assert excinfo.value.needed == 1
        assert excinfo.value.available == 0
        assert fake_fetcher.calls == []
        assert memory_store.crawl_logs == {}
        assert target.crawl_attempts == 0

    async def test_all_failures_not_charged(self, service_factory, memory_store, ledger):
        target = await add_target(memory_store)

        outcome = await service_factory().crawl_target(target.id)

        assert outcome.status == CrawlStatus.FAILED
        assert outcome.signals_used == 0
        assert ROOT in outcome.failed_urls
        assert await ledger.get_balance("acct-1") == 100
        assert target.crawl_attempts == 1
        assert target.successful_crawls == 0

        log = memory_store.crawl_logs[outcome.crawl_log_id]
        assert log.status == CrawlStatus.FAILED
        assert log.error_message == "All URLs failed to crawl"

    async def test_target_without_account_is_unmetered(self, service_factory, memory_store, fake_fetcher, ledger):
        target = await add_target(memory_store, account_id=None)
        fake_fetcher.set_page(ROOT, "Hello")

        outcome = await service_factory().crawl_target(target.id)

        assert outcome.succeeded
        assert outcome.signals_remaining is None
        assert ledger.entries == []

    async def test_section_without_discovery_charges_flat_cost(
        self, service_factory, memory_store, fake_fetcher, ledger
    ):
        target = await add_target(memory_store, mode=MonitoringMode.SECTION)
        fake_fetcher.set_page(ROOT, "Docs home")

        outcome = await service_factory(section_fallback_cost=10).crawl_target(target.id)

        assert outcome.urls == [ROOT]
        assert outcome.signals_used == 10
        assert await ledger.get_balance("acct-1") == 90

    async def test_section_fetches_are_capped(self, service_factory, memory_store, fake_fetcher, ledger):
        entries = [make_entry(f"{ROOT}/docs/{i}") for i in range(12)]
        for entry in entries:
            fake_fetcher.set_page(entry.url, f"Content of {entry.url}")
        target = await add_target(memory_store, mode=MonitoringMode.SECTION)

        service = service_factory(discovery=StubDiscovery(entries), section_max_fetch=5)
        outcome = await service.crawl_target(target.id)

        assert len(fake_fetcher.calls) == 5
        assert outcome.signals_used == 12
        assert await ledger.get_balance("acct-1") == 88


class TestSmartCrawl:
    """Sitemap-driven selection inside the crawl."""

    async def test_smart_crawl_uses_budget_and_priority_paths(
        self, service_factory, memory_store, fake_fetcher, ledger
    ):
        entries = [make_entry(f"{ROOT}/page{i}") for i in range(10)]
        entries.append(make_entry(f"{ROOT}/pricing"))
        discovery = StubDiscovery(entries)
        target = await add_target(
            memory_store, mode=MonitoringMode.SMART, max_signals=3, priority_paths=["/pricing"]
        )
        for entry in entries:
            fake_fetcher.set_page(entry.url, f"Content of {entry.url}")

        outcome = await service_factory(discovery=discovery).crawl_target(target.id)

        assert outcome.urls[0] == f"{ROOT}/pricing"
        assert len(outcome.urls) == 3
        assert outcome.signals_used == 3
        assert await ledger.get_balance("acct-1") == 97
        assert "1 priority path" in outcome.rationale

        stored = {e.url: e for e in await memory_store.list_sitemap_entries(target.id)}
        assert stored[f"{ROOT}/pricing"].last_crawled is not None
        assert stored[f"{ROOT}/pricing"].is_priority

    async def test_crawled_urls_are_not_new_next_time(
        self, service_factory, memory_store, fake_fetcher
    ):
        entries = [make_entry(f"{ROOT}/page{i}") for i in range(4)]
        target = await add_target(memory_store, mode=MonitoringMode.SMART, max_signals=2)
        for entry in entries:
            fake_fetcher.set_page(entry.url, "text")
        service = service_factory(discovery=StubDiscovery(entries))

        first = await service.crawl_target(target.id)
        second = await service.crawl_target(target.id)

        assert set(first.urls).isdisjoint(second.urls)

    async def test_recent_changes_measured_against_previous_check(
        self, service_factory, memory_store, fake_fetcher
    ):
        previous_check = datetime.utcnow() - timedelta(days=3)
        entries = [
            make_entry(f"{ROOT}/old", lastmod=previous_check - timedelta(days=10)),
            make_entry(f"{ROOT}/updated", lastmod=previous_check + timedelta(days=1)),
        ]
        target = await add_target(memory_store, mode=MonitoringMode.SMART, max_signals=1)
        target.last_sitemap_check = previous_check
        for entry in entries:
            fake_fetcher.set_page(entry.url, "text")

        outcome = await service_factory(discovery=StubDiscovery(entries)).crawl_target(target.id)

        assert outcome.urls == [f"{ROOT}/updated"]
        assert outcome.rationale == "1 recent change"

    async def test_fresh_universe_not_rediscovered(self, service_factory, memory_store, fake_fetcher):
        entries = [make_entry(f"{ROOT}/a")]
        discovery = StubDiscovery(entries)
        target = await add_target(memory_store, mode=MonitoringMode.SMART)
        fake_fetcher.set_page(f"{ROOT}/a", "text")
        service = service_factory(discovery=discovery)

        await service.crawl_target(target.id)
        await service.crawl_target(target.id)

        assert discovery.calls == 1

    async def test_smart_without_universe_crawls_root(
        self, service_factory, memory_store, fake_fetcher, ledger
    ):
        target = await add_target(memory_store, mode=MonitoringMode.SMART, max_signals=8)
        fake_fetcher.set_page(ROOT, "Home")

        outcome = await service_factory(discovery=StubDiscovery([])).crawl_target(target.id)

        assert outcome.urls == [ROOT]
        assert outcome.signals_used == 1
        assert await ledger.get_balance("acct-1") == 99

    async def test_partial_failure_still_succeeds(self, service_factory, memory_store, fake_fetcher, ledger):
        entries = [make_entry(f"{ROOT}/ok"), make_entry(f"{ROOT}/broken")]
        target = await add_target(memory_store, mode=MonitoringMode.SMART, max_signals=2)
        fake_fetcher.set_page(f"{ROOT}/ok", "Fine")

        outcome = await service_factory(discovery=StubDiscovery(entries)).crawl_target(target.id)

        assert outcome.succeeded
        assert outcome.pages_fetched == 1
        assert list(outcome.failed_urls) == [f"{ROOT}/broken"]
        assert outcome.signals_used == 2
        assert await ledger.get_balance("acct-1") == 98


class TestFailureIsolation:
    async def test_snapshot_storage_failure_isolated_to_url(self, ledger, fake_fetcher):
        class FlakyStore(InMemoryStore):
            async def add_snapshot(self, snapshot):
                if snapshot.url.endswith("/bad"):
                    raise RuntimeError("disk full")
                return await super().add_snapshot(snapshot)

        store = FlakyStore()
        entries = [make_entry(f"{ROOT}/good"), make_entry(f"{ROOT}/bad")]
        target = await add_target(store, mode=MonitoringMode.SMART, max_signals=2)
        fake_fetcher.set_page(f"{ROOT}/good", "one")
        fake_fetcher.set_page(f"{ROOT}/bad", "two")
        service = CrawlService(
            store=store, fetcher=fake_fetcher, ledger=ledger, discovery=StubDiscovery(entries)
        )

        outcome = await service.crawl_target(target.id)

        assert outcome.succeeded
        assert outcome.pages_fetched == 1
        assert "disk full" in outcome.failed_urls[f"{ROOT}/bad"]

    async def test_unknown_and_inactive_targets(self, service_factory, memory_store):
        service = service_factory()
        with pytest.raises(CrawlError):
            await service.crawl_target("missing")

        target = await add_target(memory_store, is_active=False)
        with pytest.raises(CrawlError):
            await service.crawl_target(target.id)


class TestConcurrency:
    async def test_same_target_crawls_are_serialized(self, memory_store, ledger):
        class SlowFetcher(FakeFetcher):
            def __init__(self):
                super().__init__({ROOT: "text"})
                self.active = 0
                self.max_active = 0

            async def fetch_content(self, url):
                self.active += 1
                self.max_active = max(self.max_active, self.active)
                await asyncio.sleep(0.01)
                try:
                    return await super().fetch_content(url)
                finally:
                    self.active -= 1

        fetcher = SlowFetcher()
        service = CrawlService(store=memory_store, fetcher=fetcher, ledger=ledger)
        target = await add_target(memory_store)

        first, second = await asyncio.gather(
            service.crawl_target(target.id), service.crawl_target(target.id)
        )

        assert first.succeeded and second.succeeded
        assert fetcher.max_active == 1
        assert await ledger.get_balance("acct-1") == 98
        assert not service.is_crawling(target.id)
