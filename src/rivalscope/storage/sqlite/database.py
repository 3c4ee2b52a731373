"""Async engine and session handling for the monitoring database."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Optional

from sqlalchemy import event, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.asyncio.engine import AsyncEngine
from sqlalchemy.pool import StaticPool

from ...config.settings import DatabaseSettings
from ...utils.async_utils import AsyncContextManager
from ...utils.logging import get_structured_logger
from .models import Base

logger = get_structured_logger(__name__)


def to_async_url(url: str) -> str:
    """Map a plain sqlite URL onto the aiosqlite driver."""
    if url.startswith("sqlite+"):
        return url
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("sqlite:"):
        return url.replace("sqlite:", "sqlite+aiosqlite:", 1)
    return url


def engine_options(async_url: str, settings: DatabaseSettings) -> dict[str, Any]:
    """Engine keyword arguments for the given backend.

    SQLite shares one connection (StaticPool) so that ``:memory:`` databases
    survive across sessions; other backends get a sized, pre-pinged pool.
    """
    options: dict[str, Any] = {"echo": settings.echo}
    if async_url.startswith("sqlite"):
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        options["pool_size"] = settings.pool_size
        options["max_overflow"] = settings.max_overflow
        options["pool_pre_ping"] = True
        options["pool_recycle"] = 3600
    return options


def _install_sqlite_pragmas(engine: AsyncEngine, in_memory: bool) -> None:
    # Cascading deletes of a target's rows rely on foreign keys being enforced
    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()


class DatabaseManager(AsyncContextManager):
    """Owns the engine for the monitoring database and hands out sessions."""

    def __init__(self, settings: DatabaseSettings):
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_ready(self) -> bool:
        return self.session_factory is not None

    async def setup(self) -> None:
        """Create the engine and any missing tables."""
        if self.is_ready:
            return

        async_url = to_async_url(self.settings.url)
        logger.info("Opening monitoring database", url=async_url)

        self.engine = create_async_engine(async_url, **engine_options(async_url, self.settings))
        if async_url.startswith("sqlite"):
            _install_sqlite_pragmas(self.engine, in_memory=":memory:" in async_url)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.session_factory = async_sessionmaker(
            bind=self.engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.debug("Monitoring database ready", tables=len(Base.metadata.sorted_tables))

    async def cleanup(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self.session_factory = None
        logger.debug("Monitoring database closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on success and rolls back on error."""
        if not self.is_ready:
            raise RuntimeError("Database not initialized")

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                logger.error("Rolling back monitoring session", error=str(e))
                await session.rollback()
                raise

    async def health_check(self) -> bool:
        if not self.is_ready:
            return False
        try:
            async with self.get_session() as session:
                return (await session.execute(text("SELECT 1"))).scalar() == 1
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    async def row_counts(self) -> dict[str, int]:
        """Number of rows in each table, keyed by table name."""
        if not self.is_ready:
            return {}

        counts = {}
        async with self.get_session() as session:
            for table in Base.metadata.sorted_tables:
                counts[table.name] = (
                    await session.execute(select(func.count()).select_from(table))
                ).scalar_one()
        return counts
