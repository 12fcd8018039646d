"""Periodic task scheduling and single-flight guards."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

TaskFn = Callable[[], Awaitable[Any]]


class SingleFlight:
    """Allows at most one active run of a task.

    A call made while a run is in progress is dropped (logged), not queued.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = asyncio.Lock()
        self.runs_started = 0
        self.runs_skipped = 0

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self, fn: TaskFn) -> tuple[bool, Any]:
        """Run `fn` unless a run is already active.

        Returns:
            (ran, result); result is None when the call was dropped
        """
        if self._lock.locked():
            self.runs_skipped += 1
            logger.info(f"{self.name} already running, skipping this tick")
            return False, None

        async with self._lock:
            self.runs_started += 1
            return True, await fn()


class Scheduler(ABC):
    """Registers periodic jobs and drives them."""

    @abstractmethod
    def every(self, interval_seconds: float, fn: TaskFn, name: str) -> None:
        pass

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass


async def _run_job(name: str, fn: TaskFn) -> None:
    try:
        await fn()
    except Exception as e:
        logger.error(f"Scheduled job {name} failed: {e}", exc_info=True)


class AsyncioScheduler(Scheduler):
    """Runs each job in its own asyncio loop task."""

    def __init__(self, run_at_start: bool = False):
        self.run_at_start = run_at_start
        self._jobs: list[tuple[float, TaskFn, str]] = []
        self._tasks: list[asyncio.Task] = []

    def every(self, interval_seconds: float, fn: TaskFn, name: str) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"Interval for {name} must be positive")
        self._jobs.append((interval_seconds, fn, name))

    async def _loop(self, interval: float, fn: TaskFn, name: str) -> None:
        if self.run_at_start:
            await _run_job(name, fn)
        while True:
            await asyncio.sleep(interval)
            await _run_job(name, fn)

    async def start(self) -> None:
        for interval, fn, name in self._jobs:
            logger.info(f"Scheduling {name} every {interval:.0f}s")
            self._tasks.append(asyncio.create_task(self._loop(interval, fn, name), name=name))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")


@dataclass
class _VirtualJob:
    interval: float
    fn: TaskFn
    name: str
    next_run: float


class VirtualScheduler(Scheduler):
    """Scheduler driven by explicit `advance()` calls instead of wall time."""

    def __init__(self):
        self.now = 0.0
        self.started = False
        self._jobs: list[_VirtualJob] = []

    def every(self, interval_seconds: float, fn: TaskFn, name: str) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"Interval for {name} must be positive")
        self._jobs.append(_VirtualJob(interval_seconds, fn, name, self.now + interval_seconds))

    @property
    def job_names(self) -> list[str]:
        return [job.name for job in self._jobs]

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def advance(self, seconds: float) -> int:
        """Move the clock forward, running every job that falls due in order.

        Returns:
            Number of job runs
        """
        target = self.now + seconds
        runs = 0
        while self.started:
            due = [job for job in self._jobs if job.next_run <= target]
            if not due:
                break
            job = min(due, key=lambda j: j.next_run)
            self.now = job.next_run
            job.next_run += job.interval
            await _run_job(job.name, job.fn)
            runs += 1
        self.now = target
        return runs
