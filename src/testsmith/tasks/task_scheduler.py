# src/testsmith/tasks/task_scheduler.py

from __future__ import annotations

"""
Task scheduler.

A small polling loop that, once per interval:
- picks the first queued task,
- claims it (queued -> processing) before touching anything else,
- runs the workspace pipeline,
- marks the task processed or error.

Ticks fire on a fixed cadence. A tick that starts while the previous one is
still running is skipped, so at most one pipeline runs per scheduler.
"""

import asyncio
import logging
from enum import Enum

from ..core.ports import TaskProcessor, TaskRepo
from .task_models import Task, TaskStatus

logger = logging.getLogger(__name__)


class TickOutcome(str, Enum):
    IDLE = "idle"
    SKIPPED_BUSY = "skipped_busy"
    PROCESSED = "processed"
    FAILED = "failed"


class TaskScheduler:
    def __init__(
        self,
        task_store: TaskRepo,
        pipeline: TaskProcessor,
        *,
        interval_seconds: float = 60.0,
    ) -> None:
        self._store = task_store
        self._pipeline = pipeline
        self._interval = max(0.5, float(interval_seconds))
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def tick(self) -> TickOutcome:
        # Check-and-set without an await in between: atomic on the event loop.
        if self._busy:
            logger.warning("previous tick still running; skipping this one")
            return TickOutcome.SKIPPED_BUSY
        self._busy = True
        try:
            return await self._run_once()
        finally:
            self._busy = False

    async def _run_once(self) -> TickOutcome:
        try:
            task = self._store.find_first_queued()
        except Exception:
            logger.exception("find_first_queued failed")
            return TickOutcome.IDLE

        if task is None:
            logger.info("no files queued for enhancement")
            return TickOutcome.IDLE

        try:
            claimed = self._store.try_claim_task(task.id)
        except Exception:
            logger.exception("try_claim_task failed task_id=%s", task.id)
            return TickOutcome.IDLE

        if not claimed:
            logger.info("task %s was claimed elsewhere", task.id)
            return TickOutcome.IDLE

        logger.info("task %s -> processing (path=%s)", task.id, task.path)
        return await self._process_claimed(task)

    async def _process_claimed(self, task: Task) -> TickOutcome:
        try:
            result = await self._pipeline.process_task(task)
        except Exception as e:
            logger.exception("pipeline crashed task_id=%s", task.id)
            self._finish(task, TaskStatus.ERROR, error=f"unexpected error: {e!r}")
            return TickOutcome.FAILED

        if result.ok:
            self._finish(task, TaskStatus.PROCESSED)
            logger.info("task %s -> processed (branch=%s pr=%s)", task.id, result.branch, result.pr_url)
            return TickOutcome.PROCESSED

        self._finish(task, TaskStatus.ERROR, error=result.message)
        logger.error("Error generating improvements task_id=%s: %s", task.id, result.message)
        return TickOutcome.FAILED

    def _finish(self, task: Task, status: TaskStatus, *, error: str | None = None) -> None:
        try:
            self._store.update_task_status(task.id, status, error=error)
        except Exception:
            logger.exception("update_task_status(%s) failed task_id=%s", status.value, task.id)

    async def run_forever(self) -> None:
        """
        Fire tick() every interval until cancelled.

        Ticks are started on the cadence, not after the previous one finishes;
        overlapping ticks are turned away by the busy guard.
        """
        in_flight: set[asyncio.Task[TickOutcome]] = set()
        logger.info("Task scheduler started (interval=%.1fs)", self._interval)
        try:
            while True:
                t = asyncio.create_task(self.tick())
                in_flight.add(t)
                t.add_done_callback(in_flight.discard)
                await asyncio.sleep(self._interval)
        finally:
            for t in list(in_flight):
                t.cancel()
            logger.info("Task scheduler stopped")


async def run_task_scheduler(
        task_store: TaskRepo,
        pipeline: TaskProcessor,
        *,
        interval_seconds: float = 60.0,
) -> None:
    """
    Simple polling scheduler.

    To stop the scheduler, cancel the coroutine/task.
    """
    await TaskScheduler(task_store, pipeline, interval_seconds=interval_seconds).run_forever()
