"""Type definitions for the scheduler module."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class SchedulerError(Exception):
    """Base exception for scheduler-related errors."""

    pass


@dataclass
class ScheduledCrawl:
    """A recurring crawl job for one target."""

    job_id: str
    target_id: str
    interval_days: int
    next_run_time: Optional[datetime] = None


@dataclass
class SchedulerStats:
    """Counters for crawls run by the scheduler."""

    scheduled_targets: int = 0
    crawls_executed: int = 0
    crawls_succeeded: int = 0
    crawls_failed: int = 0
    crawls_skipped: int = 0
    uptime_seconds: float = 0.0

    @property
    def success_rate(self) -> float:
        return self.crawls_succeeded / max(self.crawls_executed, 1)
