"""In-process scheduler for deferred background jobs.

Each job is an asyncio task that sleeps for its delay and then runs once.
Jobs are never cancelled individually and never retried here: failures are
logged and dropped. Callers that need an upper bound on a lost job (for
example, a lock held while it is pending) rely on their own TTLs.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger()

Job = Callable[[], Awaitable[object]]


class TaskScheduler:
    """Runs deferred jobs on the current event loop.

    Usage:
        scheduler = TaskScheduler()
        scheduler.schedule(30.0, lambda: do_work(key), name="work:key")
        ...
        await scheduler.shutdown()
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, delay: float, job: Job, *, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(self._run(delay, job, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, delay: float, job: Job, name: Optional[str]) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            await job()
        except Exception:
            logger.exception("scheduler.job_failed", job=name)

    async def drain(self) -> None:
        """Wait for every pending job, including ones scheduled meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding jobs (process exit)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("scheduler.stopped", cancelled=len(tasks))
