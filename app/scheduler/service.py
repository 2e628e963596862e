"""Periodic full matching runs on APScheduler."""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.logging import get_logger

logger = get_logger(__name__, component="scheduler")

JOB_ID = "matching-run"


class SchedulerService:
    """
    Runs a callable (normally ``MatchingPipeline.run_all``) at a fixed interval.

    Uses BackgroundScheduler so ticks run on a worker thread while the main
    thread waits for signals. The first run starts immediately. Runs never
    overlap: a run that is still going when the next one is due causes that
    tick to be dropped.
    """

    def __init__(
        self,
        run_callable: Callable[[], Any],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            run_callable: Called on every tick; a result with a ``message``
                attribute has that message logged
            interval_seconds: Seconds between ticks
            shutdown_event: Set once the scheduler has shut down
        """
        self.run_callable = run_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event
        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """
        Register the matching job and start the scheduler.

        The first run executes right away; later runs follow the interval.

        Example:
            >>> service = SchedulerService(pipeline.run_all, interval_seconds=900)
            >>> service.start()
        """
        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self._tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=JOB_ID,
            name="Buyer/property matching",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()
        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def _tick(self) -> None:
        """Run once, logging failures so the schedule keeps going."""
        try:
            result = self.run_callable()
        except Exception as e:
            logger.error(
                f"Scheduled run raised: {e}",
                extra={"event": "scheduler.run.failed", "error_type": type(e).__name__},
                exc_info=True,
            )
            return
        message = getattr(result, "message", None)
        if message:
            logger.info(message, extra={"event": "scheduler.run.completed"})

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the scheduler and set the shutdown event.

        Args:
            wait: If True, block until a running job finishes
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
        if self.shutdown_event:
            self.shutdown_event.set()
        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """
        Run once synchronously in the calling thread.

        Failures are logged the same way as scheduled ticks.
        """
        logger.info("Triggering immediate matching run", extra={"event": "scheduler.trigger_now"})
        self._tick()

    def is_running(self) -> bool:
        """
        Check whether the scheduler is running.

        Returns:
            True once started and until shut down
        """
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get the next scheduled run time.

        Returns:
            Next run time, or None when the job is not scheduled
        """
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
