"""
Scheduler for the Azure Updates service.
Runs the periodic staleness check / sync on the application's event loop.
"""

from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .logger import get_logger

logger = get_logger(__name__)

SYNC_JOB_ID = 'azure_updates_sync'


class SyncScheduler:
    """Manages scheduled sync jobs."""

    def __init__(self):
        """Initialize scheduler."""
        self.scheduler = AsyncIOScheduler()
        self.is_running = False

    def add_sync_job(
        self,
        sync_func: Callable[[], Awaitable],
        interval_minutes: int = 60
    ) -> None:
        """Schedule periodic sync.

        The sync itself skips when data is still fresh, so the interval only
        bounds how late a stale index is noticed.

        Args:
            sync_func: Coroutine function to call
            interval_minutes: Check interval in minutes
        """
        self.scheduler.add_job(
            func=sync_func,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=SYNC_JOB_ID,
            name='Azure Updates Sync',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        logger.info(f"Scheduled sync check every {interval_minutes} minutes")

    def start(self) -> None:
        """Start the scheduler (needs a running event loop)."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting scheduler")
        self.scheduler.start()
        self.is_running = True

        jobs = self.scheduler.get_jobs()
        logger.info(f"Scheduler started with {len(jobs)} jobs")
        for job in jobs:
            logger.debug(f"  - {job.name} (next run: {job.next_run_time})")

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self.is_running:
            return

        logger.info("Stopping scheduler")
        # Running coroutine jobs are cancelled with the loop; don't block on them
        self.scheduler.shutdown(wait=False)
        self.is_running = False

        logger.info("Scheduler stopped")

    def get_jobs(self) -> list:
        """Get list of scheduled jobs."""
        return self.scheduler.get_jobs()
