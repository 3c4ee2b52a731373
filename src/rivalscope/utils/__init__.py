"""Shared utilities for RivalScope."""

from .async_utils import AsyncContextManager, KeyedLocks, gather_with_limit, retry_async
from .logging import get_structured_logger, setup_logging

__all__ = [
    "setup_logging",
    "get_structured_logger",
    "gather_with_limit",
    "retry_async",
    "AsyncContextManager",
    "KeyedLocks",
]
