"""
Background Job Scheduler

Jobs are an explicit list of ScheduledJob(job_id, interval, handler) built
at start-up (see app.jobs.build_jobs). JobScheduler decides which jobs are
due from an injected clock, so tests drive it by moving the clock instead of
sleeping. In production APScheduler only provides the tick: an
AsyncIOScheduler interval job that calls JobScheduler.run_due.

Usage:
    job_scheduler = JobScheduler(build_jobs())

    # In FastAPI lifespan:
    async def lifespan(app):
        job_scheduler.start(settings.scheduler_tick_seconds)
        yield
        job_scheduler.stop()
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

TICK_JOB_ID = "job_scheduler_tick"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerConfig:
    """Configuration for the APScheduler ticker."""

    TIMEZONE = "UTC"

    JOB_DEFAULTS = {
        "coalesce": True,  # Combine missed ticks into one
        "max_instances": 1,  # Never overlap two ticks
        "misfire_grace_time": 60 * 5,
    }


@dataclass(frozen=True)
class ScheduledJob:
    """A handler run every interval. The handler receives the clock's current time."""

    job_id: str
    interval: timedelta
    handler: Callable[[datetime], Awaitable[Any]]


def _tick_listener(event: JobExecutionEvent) -> None:
    if event.exception:
        logger.error(f"Scheduler tick failed: {event.exception}", exc_info=event.exception)
    else:
        logger.debug("Scheduler tick completed")


class JobScheduler:
    def __init__(
        self,
        jobs: Iterable[ScheduledJob],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._jobs: Dict[str, ScheduledJob] = {}
        for job in jobs:
            if job.job_id in self._jobs:
                raise ValueError(f"Duplicate job id: {job.job_id}")
            if job.interval <= timedelta(0):
                raise ValueError(f"Job {job.job_id} needs a positive interval")
            self._jobs[job.job_id] = job
        self._clock = clock
        self._last_run: Dict[str, Optional[datetime]] = {job_id: None for job_id in self._jobs}
        self._running: Set[str] = set()
        self._apscheduler: Optional[AsyncIOScheduler] = None

    def next_run_at(self, job_id: str) -> Optional[datetime]:
        """None means the job has never run and is due on the next tick."""
        last = self._last_run[job_id]
        return last + self._jobs[job_id].interval if last else None

    def due_jobs(self, now: datetime) -> List[ScheduledJob]:
        due = []
        for job_id, job in self._jobs.items():
            if job_id in self._running:
                continue
            next_run = self.next_run_at(job_id)
            if next_run is None or now >= next_run:
                due.append(job)
        return due

    async def _execute(self, job: ScheduledJob, now: datetime) -> bool:
        self._running.add(job.job_id)
        try:
            await job.handler(now)
            logger.info(f"Job {job.job_id} executed successfully at {now.isoformat()}")
            return True
        except Exception as e:
            logger.error(f"Job {job.job_id} failed with exception: {e}", exc_info=True)
            return False
        finally:
            self._running.discard(job.job_id)

    async def run_due(self) -> List[str]:
        """
        Run every job whose interval has elapsed, one after another.

        The run is recorded before the handler starts, so a failing job waits a
        full interval before its next attempt. Returns the ids that ran.
        """
        now = self._clock()
        ran = []
        for job in self.due_jobs(now):
            self._last_run[job.job_id] = now
            await self._execute(job, now)
            ran.append(job.job_id)
        return ran

    async def trigger(self, job_id: str) -> Dict[str, Any]:
        """
        Run one job now, outside its schedule (maintenance and tests).

        Raises:
            ValueError: If job_id is not registered
        """
        if job_id not in self._jobs:
            raise ValueError(f"Job {job_id} not found. Available jobs: {list(self._jobs)}")
        now = self._clock()
        logger.info(f"Manually triggering job: {job_id}")
        ok = await self._execute(self._jobs[job_id], now)
        return {"job_id": job_id, "status": "success" if ok else "error", "executed_at": now.isoformat()}

    def list_jobs(self) -> List[Dict[str, Any]]:
        jobs = []
        for job_id, job in self._jobs.items():
            last = self._last_run[job_id]
            next_run = self.next_run_at(job_id)
            jobs.append(
                {
                    "job_id": job_id,
                    "interval_seconds": int(job.interval.total_seconds()),
                    "last_run_at": last.isoformat() if last else None,
                    "next_run_at": next_run.isoformat() if next_run else None,
                    "running": job_id in self._running,
                }
            )
        return jobs

    @property
    def running(self) -> bool:
        return self._apscheduler is not None and self._apscheduler.running

    def start(self, tick_seconds: int) -> AsyncIOScheduler:
        """Start the APScheduler ticker. Must be called from inside the running event loop."""
        if self.running:
            logger.warning("Scheduler already running, returning existing instance")
            return self._apscheduler

        logger.info(f"Starting job scheduler with {len(self._jobs)} job(s), tick every {tick_seconds}s")
        self._apscheduler = AsyncIOScheduler(
            timezone=SchedulerConfig.TIMEZONE,
            job_defaults=SchedulerConfig.JOB_DEFAULTS,
        )
        self._apscheduler.add_listener(_tick_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        self._apscheduler.add_job(
            self.run_due,
            trigger=IntervalTrigger(seconds=tick_seconds),
            id=TICK_JOB_ID,
            replace_existing=True,
        )
        self._apscheduler.start()
        return self._apscheduler

    def stop(self) -> None:
        if not self.running:
            logger.debug("Scheduler not running, nothing to stop")
            return
        logger.info("Stopping job scheduler...")
        self._apscheduler.shutdown(wait=False)
        self._apscheduler = None
        logger.info("Job scheduler stopped")
