"""
Asyncio cron scheduler for WhisperMap maintenance jobs.

The expiry sweep is the main client: it is registered at startup with the
cron expression from the ``cleanup`` config section and can also be fired
on demand from the admin API. ``croniter`` computes fire times. Nothing is
persisted; after a restart each job waits for its next slot.

Usage:
    scheduler = get_scheduler()
    scheduler.add_job("purge_expired_whispers", purge_expired_whispers, "0 * * * *")
    await scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from croniter import croniter

logger = logging.getLogger(__name__)

JobCallable = Callable[[], Awaitable[Optional[Dict[str, Any]]]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _validate_schedule(schedule: str) -> None:
    if not croniter.is_valid(schedule):
        raise ValueError(f"Invalid cron expression: {schedule}")


def _following(schedule: str, after: datetime) -> datetime:
    return croniter(schedule, after).get_next(datetime)


@dataclass
class CronJob:
    job_id: str
    func: JobCallable
    schedule: str
    enabled: bool = True
    description: str = ""
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    last_duration_seconds: Optional[float] = None
    run_count: int = 0
    running: bool = False
    last_error: Optional[str] = None
    last_result: Optional[Dict[str, Any]] = None

    def is_due(self, now: datetime) -> bool:
        return self.enabled and not self.running and self.next_run is not None and now >= self.next_run

    def status(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "description": self.description,
            "schedule": self.schedule,
            "enabled": self.enabled,
            "running": self.running,
            "run_count": self.run_count,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_duration_seconds": self.last_duration_seconds,
            "last_error": self.last_error,
        }


class CronScheduler:
    """Runs registered coroutines on cron schedules inside the app's event loop."""

    def __init__(self, poll_interval: float = 30.0) -> None:
        self.jobs: Dict[str, CronJob] = {}
        self.poll_interval = poll_interval
        self._loop_task: Optional[asyncio.Task] = None
        self._job_tasks: set = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def add_job(
        self,
        job_id: str,
        func: JobCallable,
        schedule: str,
        enabled: bool = True,
        description: str = "",
    ) -> CronJob:
        """Register a job, replacing any job with the same id."""
        _validate_schedule(schedule)
        job = CronJob(
            job_id=job_id,
            func=func,
            schedule=schedule,
            enabled=enabled,
            description=description,
            next_run=_following(schedule, _utc_now()),
        )
        self.jobs[job_id] = job
        logger.info(f"Scheduled job '{job_id}' on '{schedule}' (enabled={enabled}, next {job.next_run.isoformat()})")
        return job

    def _get(self, job_id: str) -> CronJob:
        try:
            return self.jobs[job_id]
        except KeyError:
            raise ValueError(f"Unknown cron job: {job_id}") from None

    def update_job(self, job_id: str, enabled: Optional[bool] = None, schedule: Optional[str] = None) -> CronJob:
        job = self._get(job_id)
        if schedule is not None:
            _validate_schedule(schedule)
            job.schedule = schedule
            job.next_run = _following(schedule, _utc_now())
        if enabled is not None:
            job.enabled = enabled
        logger.info(f"Job '{job_id}' now enabled={job.enabled} schedule='{job.schedule}'")
        return job

    def get_all_jobs_status(self) -> List[Dict[str, Any]]:
        return [job.status() for job in self.jobs.values()]

    async def run_job_now(self, job_id: str) -> Dict[str, Any]:
        """Fire a job immediately, outside its schedule."""
        job = self._get(job_id)
        if job.running:
            return {"error": f"Job '{job_id}' is already running"}
        return await self._run(job)

    async def _run(self, job: CronJob) -> Dict[str, Any]:
        job.running = True
        job.last_error = None
        started_at = _utc_now()
        started = time.monotonic()
        logger.info(f"Running job '{job.job_id}'")
        try:
            result = await job.func() or {}
            job.last_result = result
            logger.info(f"Job '{job.job_id}' finished: {result}")
            return result
        except Exception as e:
            job.last_error = str(e)
            logger.error(f"Job '{job.job_id}' raised: {e}", exc_info=True)
            return {"error": str(e)}
        finally:
            # A failing job still moves to its next slot
            job.running = False
            job.run_count += 1
            job.last_run = started_at
            job.last_duration_seconds = round(time.monotonic() - started, 3)
            job.next_run = _following(job.schedule, started_at)

    def _seconds_until_next_due(self, now: datetime) -> float:
        upcoming = [job.next_run for job in self.jobs.values() if job.enabled and not job.running and job.next_run]
        if not upcoming:
            return self.poll_interval
        wait = (min(upcoming) - now).total_seconds()
        return min(max(wait, 0.0), self.poll_interval)

    async def _tick(self) -> None:
        while True:
            now = _utc_now()
            for job in list(self.jobs.values()):
                if job.is_due(now):
                    task = asyncio.create_task(self._run(job))
                    self._job_tasks.add(task)
                    task.add_done_callback(self._job_tasks.discard)
            await asyncio.sleep(self._seconds_until_next_due(_utc_now()) or 0.01)

    async def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._tick())
        logger.info(f"Cron scheduler running {len(self.jobs)} job(s)")

    async def stop(self) -> None:
        """Cancel the scheduling loop and any job still in progress."""
        pending = [t for t in (self._loop_task, *self._job_tasks) if t is not None and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._loop_task = None
        logger.info("Cron scheduler stopped")


_scheduler: Optional[CronScheduler] = None


def get_scheduler() -> CronScheduler:
    """Process-wide scheduler shared by the app lifespan and the admin routes."""
    global _scheduler
    if _scheduler is None:
        _scheduler = CronScheduler()
    return _scheduler
