"""Simple asyncio scheduler for periodic tasks (used by the customer status sweep)."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[object]]


@dataclass
class _Job:
    name: str
    interval_seconds: float
    task: Optional[asyncio.Task] = None
    running: bool = False
    runs: int = 0
    failures: int = 0


async def _periodic_task(job: _Job, interval_seconds: float, coro: Task, run_immediately: bool):
    if not run_immediately:
        await asyncio.sleep(interval_seconds)
    while True:
        job.running = True
        try:
            await coro()
        except Exception as e:
            job.failures += 1
            logger.error(f"Scheduled task '{job.name}' error: {e}", exc_info=True)
        finally:
            job.running = False
            job.runs += 1
        await asyncio.sleep(interval_seconds)


class PeriodicScheduler:
    """
    Named periodic jobs on the running event loop.

    A job runs sequentially: the next run starts `interval_seconds` after the
    previous one finished, so runs of the same job never overlap.
    """

    def __init__(self):
        self._jobs: Dict[str, _Job] = {}

    def schedule(self, interval_seconds: float, task: Task, name: Optional[str] = None, run_immediately: bool = False) -> asyncio.Task:
        """Start `task` every `interval_seconds`; replaces an existing job of the same name."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        name = name or getattr(task, "__name__", "job")
        self.stop(name)

        job = _Job(name=name, interval_seconds=interval_seconds)
        job.task = asyncio.create_task(
            _periodic_task(job, interval_seconds, task, run_immediately), name=f"scheduled:{name}"
        )
        self._jobs[name] = job
        logger.info(f"Scheduled job '{name}' every {interval_seconds}s")
        return job.task

    def stop(self, name: str) -> bool:
        job = self._jobs.pop(name, None)
        if job is None:
            return False
        if not job.task.done():
            job.task.cancel()
        logger.info(f"Stopped job '{name}'")
        return True

    async def stop_all(self) -> None:
        jobs = list(self._jobs.values())
        for name in list(self._jobs):
            self.stop(name)
        for job in jobs:
            try:
                await job.task
            except asyncio.CancelledError:
                pass

    def job_status(self) -> Dict[str, dict]:
        return {
            name: {
                "scheduled": not job.task.done(),
                "running": job.running,
                "interval_seconds": job.interval_seconds,
                "runs": job.runs,
                "failures": job.failures,
            }
            for name, job in self._jobs.items()
        }
