"""Test configuration and fixtures for the rivalscope test suite."""

import pytest
import pytest_asyncio

from rivalscope.billing.ledger import InMemoryLedger
from rivalscope.config.settings import AppSettings, DatabaseSettings
from rivalscope.storage.interface import StorageManager
from rivalscope.storage.memory import InMemoryStore
from rivalscope.storage.sqlite.database import DatabaseManager
from rivalscope.tracking.types import MonitoredTarget

from .factories import FakeFetcher


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")


@pytest.fixture
def test_settings():
    return AppSettings(database=DatabaseSettings(url="sqlite:///:memory:"))


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def ledger():
    return InMemoryLedger({"acct-1": 100})


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def smart_target():
    return MonitoredTarget(
        id="t1",
        url="https://rival.example",
        name="Rival",
        max_signals=4,
    )


@pytest_asyncio.fixture
async def db_manager():
    manager = DatabaseManager(DatabaseSettings(url="sqlite:///:memory:"))
    await manager.setup()
    yield manager
    await manager.cleanup()


@pytest_asyncio.fixture
async def storage(db_manager):
    manager = StorageManager(db_manager)
    await manager.setup()
    yield manager
    await manager.cleanup()
