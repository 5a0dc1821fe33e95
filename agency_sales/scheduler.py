"""Periodic sales stats refresh built on APScheduler."""

import logging
from typing import Any, Callable, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

JOB_ID = "refresh_sales_stats"


class StatsRefreshScheduler:
    """Runs a stats refresh callable on a fixed interval.

    The owner starts the scheduler and must stop it on shutdown. Overlapping
    runs are not allowed and missed runs collapse into one.

    Usage::

        sched = StatsRefreshScheduler(refresh_all_stats, interval_minutes=10)
        sched.start()
        ...
        sched.stop()
    """

    def __init__(
        self,
        refresh: Callable[[], Any],
        interval_minutes: int = 10,
        timezone: str = "UTC",
    ):
        if interval_minutes <= 0:
            raise ValueError(f"Refresh interval must be positive, got {interval_minutes}")

        self._refresh = refresh
        self.interval_minutes = interval_minutes
        self._scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": interval_minutes * 60,
            },
            timezone=timezone,
        )
        self._running = False
        logger.info(f"StatsRefreshScheduler initialized (every {interval_minutes} min)")

    @property
    def is_running(self) -> bool:
        """Whether the scheduler is currently active."""
        return self._running

    def _run(self) -> None:
        try:
            self._refresh()
        except Exception:
            # A failed run must not unschedule the job.
            logger.exception("Scheduled sales stats refresh failed")

    def start(self) -> None:
        """Start the scheduler and register the refresh job."""
        if self._running:
            logger.warning("Scheduler is already running.")
            return
        self._scheduler.add_job(
            self._run,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started.")

    def stop(self, wait: bool = True) -> None:
        """Shut down the scheduler."""
        if not self._running:
            return
        self._scheduler.shutdown(wait=wait)
        self._running = False
        logger.info("Scheduler stopped.")

    def next_run_time(self) -> Optional[str]:
        """ISO timestamp of the next scheduled refresh, if any."""
        job = self._scheduler.get_job(JOB_ID)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()

    def run_now(self) -> Any:
        """Run the refresh immediately in the calling thread.

        Returns:
            Whatever the refresh callable returns.
        """
        logger.info("Running sales stats refresh now")
        return self._refresh()
