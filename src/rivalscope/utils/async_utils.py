"""Concurrency helpers shared by the fetcher, crawl service and notifiers."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .logging import get_structured_logger

logger = get_structured_logger(__name__)

T = TypeVar("T")


async def gather_with_limit(
    *aws: Awaitable[T], limit: int = 10, return_exceptions: bool = False
) -> list[Any]:
    """Await ``aws`` with at most ``limit`` running at once.

    Results come back in argument order, as with ``asyncio.gather``.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def bounded(aw: Awaitable[T]) -> T:
        async with semaphore:
            return await aw

    return await asyncio.gather(
        *(bounded(aw) for aw in aws), return_exceptions=return_exceptions
    )


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,),
) -> T:
    """Call ``func`` until it succeeds, sleeping with exponential backoff.

    Only ``exceptions`` trigger a retry; anything else propagates at once.
    The last error is re-raised after ``max_retries`` retries.
    """
    attempt = 0
    wait = delay
    while True:
        try:
            return await func()
        except exceptions as e:
            if attempt >= max_retries:
                logger.error("Giving up after retries", attempts=attempt + 1, error=str(e))
                raise
            attempt += 1
            logger.warning("Retrying after failure", attempt=attempt, wait=wait, error=str(e))
            await asyncio.sleep(wait)
            wait *= backoff_factor


class AsyncContextManager:
    """Base for components with async ``setup``/``cleanup`` lifecycles."""

    async def __aenter__(self):
        await self.setup()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()

    async def setup(self) -> None:
        pass

    async def cleanup(self) -> None:
        pass


class KeyedLocks:
    """Lazily created asyncio locks, one per key."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
