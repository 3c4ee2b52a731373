"""Crawl orchestration: plan, charge, fetch, snapshot, detect, notify."""

from datetime import datetime, timedelta
from typing import Optional

from ..billing.types import BillingError
from ..detection.detector import ChangeDetector
from ..detection.hashing import ContentHasher
from ..detection.types import ChangeRecord, Snapshot
from ..fetcher.types import ContentFetcher, FetchResult
from ..storage.types import CrawlStatus, MonitoringStore
from ..tracking.preview import build_preview
from ..tracking.selector import UrlSelector, plan_crawl
from ..tracking.sitemap import SitemapDiscovery, mark_priority_paths
from ..tracking.types import (
    MonitoredTarget,
    MonitoringMode,
    SelectionResult,
    SitemapEntry,
    TrackingPreview,
)
from ..utils.async_utils import KeyedLocks, gather_with_limit
from ..utils.logging import bind_crawl_context, clear_crawl_context, get_structured_logger
from .types import CrawlError, CrawlOutcome, InsufficientSignalsError

logger = get_structured_logger(__name__)


class CrawlService:
    """Runs crawls for monitored targets.

    At most one crawl per target is in flight: a second request for the same
    target waits for the first to finish. Fetches within one crawl run
    concurrently, and a failure on one URL never affects the others. The
    planned signal cost is charged only when at least one URL was fetched.
    """

    def __init__(
        self,
        store: MonitoringStore,
        fetcher: ContentFetcher,
        ledger=None,
        detector: Optional[ChangeDetector] = None,
        selector: Optional[UrlSelector] = None,
        discovery: Optional[SitemapDiscovery] = None,
        dispatcher=None,
        hasher: Optional[ContentHasher] = None,
        max_concurrency: int = 4,
        section_fallback_cost: int = 10,
        section_max_fetch: int = 25,
        sitemap_refresh: timedelta = timedelta(hours=24),
    ):
        self.store = store
        self.fetcher = fetcher
        self.ledger = ledger
        self.detector = detector or ChangeDetector(store=store)
        if self.detector.store is None:
            self.detector.store = store
        self.selector = selector or UrlSelector()
        self.discovery = discovery
        self.dispatcher = dispatcher
        self.hasher = hasher or ContentHasher()
        self.max_concurrency = max_concurrency
        self.section_fallback_cost = section_fallback_cost
        self.section_max_fetch = section_max_fetch
        self.sitemap_refresh = sitemap_refresh
        self._locks = KeyedLocks()

    @classmethod
    def from_settings(
        cls, settings, store: MonitoringStore, fetcher: ContentFetcher, ledger=None, dispatcher=None
    ):
        return cls(
            store=store,
            fetcher=fetcher,
            ledger=ledger,
            detector=ChangeDetector.from_settings(settings, store=store),
            discovery=SitemapDiscovery.from_settings(settings, fetcher=fetcher),
            dispatcher=dispatcher,
            hasher=ContentHasher(settings.detection.hash_algorithm),
            max_concurrency=settings.fetcher.max_concurrency,
            section_fallback_cost=settings.tracking.section_fallback_cost,
            section_max_fetch=settings.tracking.section_max_fetch,
            sitemap_refresh=timedelta(hours=settings.tracking.sitemap_refresh_hours),
        )

    def is_crawling(self, target_id: str) -> bool:
        return self._locks.is_locked(target_id)

    async def crawl_target(self, target_id: str) -> CrawlOutcome:
        """Crawl one target.

        Raises:
            CrawlError: If the target is unknown or inactive
            InsufficientSignalsError: If the owner cannot pay the planned cost
        """
        async with self._locks.get(target_id):
            return await self._crawl(target_id)

    async def _crawl(self, target_id: str) -> CrawlOutcome:
        target = await self._get_target(target_id)
        if not target.is_active:
            raise CrawlError(f"Target is inactive: {target_id}")

        plan = await self.plan(target)
        available = await self._check_balance(target, plan.estimated_cost)

        log_id = await self.store.start_crawl_log(target_id, plan.estimated_cost)
        bind_crawl_context(target_id, log_id)
        logger.info(
            "Crawl started",
            mode=str(getattr(target.mode, "value", target.mode)),
            urls=len(plan.urls),
            cost=plan.estimated_cost,
            rationale=plan.rationale,
        )

        outcome = CrawlOutcome(
            target_id=target_id,
            status=CrawlStatus.FAILED,
            urls=list(plan.urls),
            rationale=plan.rationale,
            crawl_log_id=log_id,
        )
        error_message: Optional[str] = "Crawl aborted"

        try:
            await self._fetch_and_detect(target, plan.urls, outcome)
            if outcome.pages_fetched == 0:
                error_message = "All URLs failed to crawl"
            else:
                outcome.status = CrawlStatus.SUCCESS
                error_message = None
        except Exception as e:
            error_message = str(e)
            logger.error("Crawl aborted", error=error_message)
            await self._record_outcome(target_id, success=False)
            raise
        finally:
            await self.store.finish_crawl_log(
                log_id,
                outcome.status,
                pages_found=outcome.pages_fetched,
                changes_found=len(outcome.changes),
                error_message=error_message,
            )
            clear_crawl_context()

        if not outcome.succeeded:
            logger.warning(
                "Crawl failed", target_id=target_id, failed_urls=len(outcome.failed_urls)
            )
            await self._record_outcome(target_id, success=False)
            outcome.signals_remaining = available
            return outcome

        outcome.signals_used = plan.estimated_cost
        outcome.signals_remaining = await self._charge(target, plan.estimated_cost, available)
        await self._record_outcome(target_id, success=True)

        if outcome.changes and self.dispatcher is not None:
            await self.dispatcher.notify(target, outcome.changes)

        logger.info(
            "Crawl completed",
            target_id=target_id,
            pages=outcome.pages_fetched,
            changes=len(outcome.changes),
            signals_used=outcome.signals_used,
        )
        return outcome

    async def _fetch_and_detect(self, target, urls: list[str], outcome: CrawlOutcome) -> None:
        results = await gather_with_limit(
            *(self.fetcher.fetch_content(url) for url in urls),
            limit=self.max_concurrency,
            return_exceptions=True,
        )

        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                outcome.failed_urls[url] = str(result) or type(result).__name__
                logger.warning("Fetch failed", url=url, error=outcome.failed_urls[url])
                continue

            try:
                records = await self._process_page(target, url, result)
            except Exception as e:
                outcome.failed_urls[url] = f"Snapshot storage failed: {e}"
                logger.error("Failed to store snapshot", url=url, error=str(e))
                continue

            outcome.pages_fetched += 1
            outcome.changes.extend(records)

    async def _process_page(self, target, url: str, result: FetchResult) -> list[ChangeRecord]:
        fingerprint = self.hasher.fingerprint(result.text)
        snapshot = await self.store.add_snapshot(
            Snapshot(
                target_id=target.id,
                url=url,
                content=result.text,
                fingerprint=fingerprint,
                metadata=result.metadata,
            )
        )

        records = await self.detector.detect(target.id, snapshot)

        persisted = []
        for record in records:
            try:
                persisted.append(await self.store.add_change(record))
            except Exception as e:
                logger.error(
                    "Failed to persist change", url=url, kind=record.kind.value, error=str(e)
                )
                persisted.append(record)

        try:
            await self.store.mark_url_crawled(target.id, url, fingerprint)
        except Exception as e:
            logger.warning("Failed to update sitemap entry", url=url, error=str(e))

        return persisted

    async def plan(self, target) -> SelectionResult:
        """Choose this cycle's URLs and their signal cost for a target."""
        mode = MonitoringMode(target.mode)
        if mode == MonitoringMode.SINGLE_PAGE:
            return plan_crawl(target, [])

        entries, previous_check = await self.refresh_universe(target)
        view = MonitoredTarget(
            id=target.id,
            url=target.url,
            mode=mode,
            max_signals=target.max_signals,
            last_sitemap_check=previous_check,
        )

        if mode == MonitoringMode.SMART and not any(e.is_active for e in entries):
            logger.warning("No URLs discovered, crawling as single page", target_id=target.id)
            view.mode = MonitoringMode.SINGLE_PAGE

        return plan_crawl(
            view, entries, self.section_fallback_cost, self.selector, self.section_max_fetch
        )

    async def refresh_universe(
        self, target, force: bool = False
    ) -> tuple[list[SitemapEntry], Optional[datetime]]:
        """Return the target's URL universe, rediscovering it when stale.

        The second element is the sitemap check time from before any refresh,
        so URLs modified since the previous check still count as recent.
        """
        previous_check = target.last_sitemap_check
        entries = await self.store.list_sitemap_entries(target.id)

        stale = (
            force
            or not entries
            or previous_check is None
            or datetime.utcnow() - previous_check > self.sitemap_refresh
        )
        if stale and self.discovery is not None:
            discovered = await self.discovery.discover(target.url)
            if discovered:
                mark_priority_paths(discovered, list(target.priority_paths or []))
                await self.store.upsert_sitemap_entries(target.id, discovered)
                entries = await self.store.list_sitemap_entries(target.id)

        mark_priority_paths(entries, list(target.priority_paths or []))
        return entries, previous_check

    async def refresh_sitemap(self, target_id: str) -> list[SitemapEntry]:
        target = await self._get_target(target_id)
        entries, _ = await self.refresh_universe(target, force=True)
        return entries

    async def preview(self, target_id: str) -> TrackingPreview:
        target = await self._get_target(target_id)
        entries, previous_check = await self.refresh_universe(target)
        view = MonitoredTarget(
            id=target.id,
            url=target.url,
            max_signals=target.max_signals,
            last_sitemap_check=previous_check,
        )
        return build_preview(view, entries, selector=self.selector)

    async def _get_target(self, target_id: str):
        target = await self.store.get_target(target_id)
        if target is None:
            raise CrawlError(f"Target not found: {target_id}")
        return target

    async def _check_balance(self, target, cost: int) -> Optional[int]:
        account_id = getattr(target, "account_id", None)
        if self.ledger is None or account_id is None:
            return None

        try:
            balance = await self.ledger.get_balance(account_id)
        except BillingError as e:
            raise CrawlError(str(e)) from e

        if balance < cost:
            logger.warning(
                "Insufficient signals", target_id=target.id, needed=cost, available=balance
            )
            raise InsufficientSignalsError(cost, balance)
        return balance

    async def _charge(self, target, cost: int, available: Optional[int]) -> Optional[int]:
        account_id = getattr(target, "account_id", None)
        if self.ledger is None or account_id is None:
            return available

        try:
            return await self.ledger.debit(
                account_id,
                cost,
                target_id=target.id,
                mode=str(getattr(target.mode, "value", target.mode)),
                description=f"Crawled {target.name or target.url}",
            )
        except BillingError as e:
            logger.error("Failed to debit signals", target_id=target.id, cost=cost, error=str(e))
            return available

    async def _record_outcome(self, target_id: str, success: bool) -> None:
        try:
            await self.store.record_crawl_outcome(target_id, success=success)
        except Exception as e:
            logger.error("Failed to update target counters", target_id=target_id, error=str(e))
