"""APScheduler-based recurring crawl scheduling."""

from datetime import datetime, timedelta
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..crawl.service import CrawlService
from ..crawl.types import CrawlError, InsufficientSignalsError
from ..tracking.types import CrawlCadence
from ..utils.async_utils import AsyncContextManager
from ..utils.logging import get_structured_logger
from .types import ScheduledCrawl, SchedulerError, SchedulerStats

logger = get_structured_logger(__name__)

JOB_PREFIX = "crawl:"


def job_id_for(target_id: str) -> str:
    return f"{JOB_PREFIX}{target_id}"


class CrawlScheduler(AsyncContextManager):
    """Runs each active target's crawl on its cadence.

    One job per target; APScheduler's max_instances=1 keeps a slow crawl
    from overlapping the next run of the same target.
    """

    def __init__(self, crawl_service: CrawlService, misfire_grace_time: int = 300):
        self.crawl_service = crawl_service
        self.misfire_grace_time = misfire_grace_time
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.is_running = False
        self.start_time: Optional[datetime] = None

        self.crawls_executed = 0
        self.crawls_succeeded = 0
        self.crawls_failed = 0
        self.crawls_skipped = 0

    async def setup(self) -> None:
        """Create and start the underlying scheduler."""
        if self.is_running:
            return

        logger.info("Starting crawl scheduler")

        try:
            self.scheduler = AsyncIOScheduler(
                executors={"default": AsyncIOExecutor()},
                job_defaults={
                    "coalesce": True,
                    "max_instances": 1,
                    "misfire_grace_time": self.misfire_grace_time,
                },
                timezone="UTC",
            )
            self.scheduler.add_listener(self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
            self.scheduler.start()
            self.is_running = True
            self.start_time = datetime.utcnow()
        except Exception as e:
            logger.error("Failed to start scheduler", error=str(e))
            raise SchedulerError(f"Scheduler startup failed: {str(e)}") from e

        await self.sync_jobs()
        logger.info("Crawl scheduler started", jobs=len(self.list_jobs()))

    async def cleanup(self) -> None:
        if not self.is_running:
            return

        logger.info("Stopping crawl scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
        self.is_running = False

    def _on_job_event(self, event) -> None:
        if getattr(event, "exception", None) is not None:
            logger.error("Scheduled job raised", job_id=event.job_id, error=str(event.exception))
        else:
            logger.warning("Scheduled job missed", job_id=event.job_id)

    async def sync_jobs(self) -> int:
        """Align scheduled jobs with the store's active targets.

        Returns:
            Number of targets scheduled
        """
        if not self.is_running:
            raise SchedulerError("Scheduler is not running")

        targets = await self.crawl_service.store.list_targets(active_only=True)
        wanted = {job_id_for(t.id) for t in targets}

        for job in self.scheduler.get_jobs():
            if job.id.startswith(JOB_PREFIX) and job.id not in wanted:
                self.scheduler.remove_job(job.id)
                logger.info("Crawl unscheduled", job_id=job.id)

        for target in targets:
            self.schedule_target(target)

        return len(targets)

    def schedule_target(self, target, run_now: bool = False) -> ScheduledCrawl:
        """Add or replace the recurring crawl job for a target."""
        if not self.is_running:
            raise SchedulerError("Scheduler is not running")

        cadence = CrawlCadence(target.cadence)
        job_id = job_id_for(target.id)
        next_run = datetime.utcnow() if run_now else self._first_run(target, cadence)

        job = self.scheduler.add_job(
            func=self._run_crawl,
            trigger=IntervalTrigger(days=cadence.interval_days, timezone="UTC"),
            id=job_id,
            args=[target.id],
            name=f"crawl-{target.id}",
            next_run_time=next_run,
            replace_existing=True,
            max_instances=1,
        )

        logger.info(
            "Crawl scheduled",
            job_id=job_id,
            cadence=cadence.value,
            next_run_time=str(job.next_run_time),
        )
        return ScheduledCrawl(
            job_id=job_id,
            target_id=target.id,
            interval_days=cadence.interval_days,
            next_run_time=job.next_run_time,
        )

    @staticmethod
    def _first_run(target, cadence: CrawlCadence) -> datetime:
        last = target.last_crawled_at
        if last is None:
            return datetime.utcnow()
        return max(datetime.utcnow(), last + timedelta(days=cadence.interval_days))

    def unschedule_target(self, target_id: str) -> bool:
        if not self.is_running:
            raise SchedulerError("Scheduler is not running")

        job_id = job_id_for(target_id)
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        logger.info("Crawl unscheduled", job_id=job_id)
        return True

    def list_jobs(self) -> list[ScheduledCrawl]:
        if not self.scheduler:
            return []

        jobs = []
        for job in self.scheduler.get_jobs():
            if not job.id.startswith(JOB_PREFIX):
                continue
            trigger = job.trigger
            interval = getattr(trigger, "interval", timedelta(days=1))
            jobs.append(
                ScheduledCrawl(
                    job_id=job.id,
                    target_id=job.id[len(JOB_PREFIX) :],
                    interval_days=interval.days,
                    next_run_time=job.next_run_time,
                )
            )
        return jobs

    async def _run_crawl(self, target_id: str) -> None:
        self.crawls_executed += 1
        try:
            outcome = await self.crawl_service.crawl_target(target_id)
        except InsufficientSignalsError as e:
            self.crawls_skipped += 1
            logger.warning("Scheduled crawl skipped", target_id=target_id, reason=str(e))
            return
        except CrawlError as e:
            self.crawls_failed += 1
            logger.error("Scheduled crawl failed", target_id=target_id, error=str(e))
            return

        if outcome.succeeded:
            self.crawls_succeeded += 1
        else:
            self.crawls_failed += 1

    def get_stats(self) -> SchedulerStats:
        uptime = 0.0
        if self.is_running and self.start_time:
            uptime = (datetime.utcnow() - self.start_time).total_seconds()

        return SchedulerStats(
            scheduled_targets=len(self.list_jobs()),
            crawls_executed=self.crawls_executed,
            crawls_succeeded=self.crawls_succeeded,
            crawls_failed=self.crawls_failed,
            crawls_skipped=self.crawls_skipped,
            uptime_seconds=uptime,
        )
