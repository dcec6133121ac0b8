"""Supervised background execution of sync jobs inside the API process."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog

logger = structlog.get_logger()

JobKey = tuple[str, str]


@dataclass(frozen=True)
class JobOutcome:
    """How the last supervised run for a key ended (or that it is still running)."""

    state: str
    finished_at: datetime | None = None
    error: str | None = None
    result: Any = None


class SyncSupervisor:
    """Owns background tasks so that failures are observed and logged."""

    def __init__(self) -> None:
        self._tasks: dict[JobKey, asyncio.Task] = {}
        self._outcomes: dict[JobKey, JobOutcome] = {}

    def submit(self, key: JobKey, job_factory: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """Start ``job_factory()`` as a task tracked under ``key``."""
        task = asyncio.create_task(self._run(key, job_factory))
        self._tasks[key] = task
        self._outcomes[key] = JobOutcome(state="running")
        task.add_done_callback(lambda done: self._forget(key, done))
        return task

    def _forget(self, key: JobKey, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def _run(self, key: JobKey, job_factory: Callable[[], Awaitable[Any]]) -> None:
        tenant_id, kind = key
        try:
            result = await job_factory()
        except asyncio.CancelledError:
            self._outcomes[key] = JobOutcome(
                state="cancelled", finished_at=datetime.now(timezone.utc)
            )
            raise
        except Exception as e:
            logger.error("Background job failed", tenant_id=tenant_id, kind=kind, error=str(e))
            self._outcomes[key] = JobOutcome(
                state="failed", finished_at=datetime.now(timezone.utc), error=str(e)
            )
            return
        logger.info("Background job finished", tenant_id=tenant_id, kind=kind)
        self._outcomes[key] = JobOutcome(
            state="succeeded", finished_at=datetime.now(timezone.utc), result=result
        )

    def outcome(self, key: JobKey) -> JobOutcome | None:
        return self._outcomes.get(key)

    def is_running(self, key: JobKey) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel outstanding tasks and wait briefly for them to unwind."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)
        self._tasks.clear()
