"""Recurring crawl scheduling."""

from .manager import CrawlScheduler, job_id_for
from .types import ScheduledCrawl, SchedulerError, SchedulerStats

__all__ = ["CrawlScheduler", "job_id_for", "ScheduledCrawl", "SchedulerError", "SchedulerStats"]
