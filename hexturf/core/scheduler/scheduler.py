"""
JobScheduler: interval jobs fed through a queue to a single worker.

Purpose
-------
Drive periodic work (leaderboard aggregation) inside the engine process.
A timer task decides which jobs are due and enqueues them; one worker
task drains the queue, so jobs never overlap each other.

Responsibilities
----------------
- Register named async handlers with an interval
- Enqueue due jobs on each tick, never twice while queued or running
- Run queued jobs sequentially, recording success and failure per job
- Start/stop the timer and worker tasks

Non-Responsibilities
--------------------
- Cron expressions or wall-clock alignment
- Cross-process coordination (handlers take their own locks)

Usage
-----
>>> scheduler = JobScheduler()
>>> scheduler.register("leaderboard.global", refresh_global, timedelta(minutes=60))
>>> await scheduler.start()
>>> ...
>>> await scheduler.stop()

Tests drive it without background tasks:

>>> scheduler.tick(now)
>>> await scheduler.run_pending()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from hexturf.core.config.manager import ConfigManager
from hexturf.core.logging.logger import LogContext, get_logger

logger = get_logger(__name__)

JobHandler = Callable[[], Awaitable[Any]]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScheduledJob:
    """Registration and run state of one interval job."""

    name: str
    handler: JobHandler
    interval: timedelta
    next_run_at: datetime
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    run_count: int = 0
    failure_count: int = 0
    queued: bool = False
    running: bool = False

    def is_due(self, now: datetime) -> bool:
        return not self.queued and not self.running and now >= self.next_run_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval.total_seconds(),
            "next_run_at": self.next_run_at.isoformat(),
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
            "queued": self.queued,
            "running": self.running,
        }


@dataclass
class _Tasks:
    timer: Optional[asyncio.Task[None]] = None
    worker: Optional[asyncio.Task[None]] = None
    running: bool = False


class JobScheduler:
    """
    Timer → queue → single worker.

    Parameters
    ----------
    clock:
        Returns the current aware datetime. Injected by tests.
    poll_interval_seconds:
        Timer period; defaults to ``scheduler.poll_interval_seconds``.
    max_queue_size:
        Queue bound; defaults to ``scheduler.max_queue_size``.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        poll_interval_seconds: Optional[float] = None,
        max_queue_size: Optional[int] = None,
    ) -> None:
        self._clock: Clock = clock or utc_now
        self._poll_interval = float(
            poll_interval_seconds
            if poll_interval_seconds is not None
            else ConfigManager.get("scheduler.poll_interval_seconds", 1.0)
        )
        self._jobs: Dict[str, ScheduledJob] = {}
        self._queue: asyncio.Queue[str] = asyncio.Queue(
            maxsize=int(
                max_queue_size
                if max_queue_size is not None
                else ConfigManager.get("scheduler.max_queue_size", 100)
            )
        )
        self._tasks = _Tasks()
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #

    def register(
        self,
        name: str,
        handler: JobHandler,
        interval: timedelta,
        run_on_start: bool = True,
    ) -> ScheduledJob:
        """
        Register a job.

        Raises
        ------
        ValueError
            If the name is taken or the interval is not positive.
        """
        if name in self._jobs:
            raise ValueError(f"Job '{name}' is already registered")
        if interval <= timedelta(0):
            raise ValueError(f"Job '{name}' interval must be positive")

        now = self._clock()
        job = ScheduledJob(
            name=name,
            handler=handler,
            interval=interval,
            next_run_at=now if run_on_start else now + interval,
        )
        self._jobs[name] = job

        logger.info(
            "Scheduled job registered",
            extra={
                "job_name": name,
                "interval_seconds": interval.total_seconds(),
                "run_on_start": run_on_start,
            },
        )
        return job

    def get_job(self, name: str) -> Optional[ScheduledJob]:
        return self._jobs.get(name)

    @property
    def jobs(self) -> List[ScheduledJob]:
        return list(self._jobs.values())

    @property
    def is_running(self) -> bool:
        return self._tasks.running

    def queue_size(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------ #
    # Tick & Drain
    # ------------------------------------------------------------------ #

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """
        Enqueue every due job. Returns the names that were enqueued.

        The next run is scheduled one interval after this tick; missed
        intervals are not replayed.
        """
        current = now or self._clock()
        enqueued: List[str] = []

        for job in self._jobs.values():
            if not job.is_due(current):
                continue
            try:
                self._queue.put_nowait(job.name)
            except asyncio.QueueFull:
                logger.warning(
                    "Scheduler queue full; job deferred to next tick",
                    extra={"job_name": job.name, "queue_size": self._queue.qsize()},
                )
                continue
            job.queued = True
            job.next_run_at = current + job.interval
            enqueued.append(job.name)

        if enqueued:
            logger.debug("Scheduler tick enqueued jobs", extra={"jobs": enqueued})
        return enqueued

    async def run_pending(self) -> int:
        """Run every queued job on the calling task. Returns the number run."""
        executed = 0
        while not self._queue.empty():
            name = self._queue.get_nowait()
            try:
                await self._execute(name)
                executed += 1
            finally:
                self._queue.task_done()
        return executed

    async def _execute(self, name: str) -> None:
        job = self._jobs.get(name)
        if job is None:
            logger.warning("Dequeued unknown job", extra={"job_name": name})
            return

        job.queued = False
        job.running = True
        self._idle.clear()
        started = self._clock()

        async with LogContext(operation=f"job:{name}"):
            try:
                await job.handler()
            except Exception as exc:
                job.failure_count += 1
                job.last_error = f"{type(exc).__name__}: {exc}"
                logger.error(
                    "Scheduled job failed; will retry on next interval",
                    extra={
                        "job_name": name,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "next_run_at": job.next_run_at.isoformat(),
                    },
                    exc_info=True,
                )
            else:
                job.last_error = None
                logger.info(
                    "Scheduled job completed",
                    extra={
                        "job_name": name,
                        "duration_ms": (self._clock() - started).total_seconds() * 1000,
                    },
                )
            finally:
                job.running = False
                job.run_count += 1
                job.last_run_at = started
                self._idle.set()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        if self._tasks.running:
            logger.warning("JobScheduler already running")
            return

        self._tasks.running = True
        self._tasks.timer = asyncio.create_task(self._timer_loop(), name="scheduler-timer")
        self._tasks.worker = asyncio.create_task(self._worker_loop(), name="scheduler-worker")

        logger.info(
            "JobScheduler started",
            extra={"job_count": len(self._jobs), "poll_interval_seconds": self._poll_interval},
        )

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop ticking and wait up to ``timeout`` for the job in flight, then
        cancel the worker.

        Jobs still queued are dropped and made due again, so the next
        ``start()`` runs them on its first tick.
        """
        if not self._tasks.running:
            return

        self._tasks.running = False

        timer = self._tasks.timer
        if timer is not None:
            timer.cancel()
            await asyncio.gather(timer, return_exceptions=True)

        worker = self._tasks.worker
        if worker is not None:
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Scheduled job still running at stop; cancelling",
                    extra={"timeout_seconds": timeout},
                )
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)

        dropped = self._drop_queued()
        self._tasks.timer = None
        self._tasks.worker = None
        logger.info("JobScheduler stopped", extra={"dropped_jobs": dropped})

    def _drop_queued(self) -> List[str]:
        now = self._clock()
        dropped: List[str] = []
        while not self._queue.empty():
            name = self._queue.get_nowait()
            self._queue.task_done()
            job = self._jobs.get(name)
            if job is not None:
                job.queued = False
                job.next_run_at = min(job.next_run_at, now)
                dropped.append(name)
        return dropped

    async def _timer_loop(self) -> None:
        while self._tasks.running:
            self.tick()
            await asyncio.sleep(self._poll_interval)

    async def _worker_loop(self) -> None:
        while self._tasks.running:
            name = await self._queue.get()
            try:
                await self._execute(name)
            finally:
                self._queue.task_done()
