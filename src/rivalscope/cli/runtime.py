"""Wiring of stores, fetcher, ledger and services for one CLI invocation."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from ..billing.ledger import SqlSignalLedger
from ..config import AppSettings, get_settings, validate_settings
from ..crawl.service import CrawlService
from ..fetcher.cache import CachingFetcher
from ..fetcher.http import HttpContentFetcher
from ..notification.dispatcher import NotificationDispatcher
from ..storage.interface import StorageManager
from ..storage.sqlite.database import DatabaseManager


class Runtime:
    """Everything a command needs, built from one settings object."""

    def __init__(self, settings: AppSettings, store, ledger, crawl_service: CrawlService):
        self.settings = settings
        self.store = store
        self.ledger = ledger
        self.crawl_service = crawl_service


@asynccontextmanager
async def open_runtime(settings: Optional[AppSettings] = None) -> AsyncIterator[Runtime]:
    settings = settings or get_settings()
    validate_settings(settings)

    db_manager = DatabaseManager(settings.database)
    storage = StorageManager(db_manager)
    await storage.setup()

    http_fetcher = HttpContentFetcher.from_settings(settings)
    await http_fetcher.setup()

    try:
        fetcher = CachingFetcher(http_fetcher, ttl=settings.fetcher.cache_ttl_seconds)
        ledger = SqlSignalLedger(db_manager)
        dispatcher = NotificationDispatcher.from_settings(settings, store=storage)
        crawl_service = CrawlService.from_settings(
            settings, storage, fetcher, ledger=ledger, dispatcher=dispatcher
        )
        yield Runtime(settings, storage, ledger, crawl_service)
    finally:
        await http_fetcher.cleanup()
        await storage.cleanup()
        await db_manager.cleanup()
