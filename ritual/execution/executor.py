"""
TaskExecutor — what happens when a recurring job fires.

For every firing:
  1. look up the task (a missing task is a FAILURE log, not a crash;
     a PAUSED one is skipped)
  2. run the prompt through the ModelRouter
  3. write exactly one ExecutionLog, whatever the outcome
  4. on success, stamp last_run (and refresh next_run while ACTIVE)

The executor never touches the backend: a firing for a task deleted or
paused meanwhile cannot re-register its job. Cleanup of such orphans is
left to the next unschedule or resync pass.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime

from ritual.backend.base import JobPayload
from ritual.core.errors import LLMError, NotFound, ScheduleError, StorageError
from ritual.llm.router import ModelRouter
from ritual.schedule.parser import next_run_for
from ritual.tasks.store import TaskStore
from ritual.tasks.task import ExecutionLog, ExecutionStatus, Task, utcnow

logger = logging.getLogger(__name__)

UNKNOWN_TASK_NAME = "(deleted task)"


class TaskExecutor:
    """
    Usage:
        executor = TaskExecutor(store, router)
        backend.set_fire_callback(executor.run)

        log = await executor.run(payload)
        log = await executor.run(payload, force=True)   # "run now", even if paused
    """

    def __init__(self, store: TaskStore, router: ModelRouter) -> None:
        self._store = store
        self._router = router

    async def run(self, payload: JobPayload, force: bool = False) -> ExecutionLog | None:
        """
        Execute one firing. A PAUSED task is skipped (returns None) unless
        force is set, which is how "run now" works.
        """
        started = time.monotonic()
        executed_at = utcnow()

        try:
            task = await self._store.get_task(payload.task_id)
        except NotFound:
            logger.warning(f"Job fired for missing task {payload.task_id}")
            return await self._record(
                ExecutionLog(
                    task_id=payload.task_id,
                    task_name=UNKNOWN_TASK_NAME,
                    prompt=payload.prompt,
                    output="",
                    status=ExecutionStatus.FAILURE,
                    error="Task not found",
                    executed_at=executed_at,
                    duration=self._elapsed_ms(started),
                )
            )

        if not task.is_active and not force:
            logger.info(f"Job fired for paused task {task.id} ({task.name!r}), skipping")
            return None

        model = task.model or payload.model or self._router.default_model
        logger.info(f"Executing task {task.id} ({task.name!r}) with {model}")

        try:
            output = await self._router.execute(task.prompt, model=model)
        except LLMError as e:
            logger.warning(f"Task {task.id} ({task.name!r}) failed: {e}")
            return await self._record(self._failure(task, str(e), executed_at, started))
        except Exception as e:
            logger.warning(f"Task {task.id} ({task.name!r}) unexpected error: {e}")
            return await self._record(self._failure(task, str(e), executed_at, started))

        entry = await self._record(
            ExecutionLog(
                task_id=task.id,
                task_name=task.name,
                prompt=task.prompt,
                output=output,
                status=ExecutionStatus.SUCCESS,
                executed_at=executed_at,
                duration=self._elapsed_ms(started),
            )
        )
        await self._stamp_last_run(task, executed_at)
        return entry

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _failure(
        self, task: Task, error: str, executed_at: datetime, started: float
    ) -> ExecutionLog:
        return ExecutionLog(
            task_id=task.id,
            task_name=task.name,
            prompt=task.prompt,
            output="",
            status=ExecutionStatus.FAILURE,
            error=error,
            executed_at=executed_at,
            duration=self._elapsed_ms(started),
        )

    async def _record(self, entry: ExecutionLog) -> ExecutionLog:
        try:
            await self._store.create_execution_log(entry)
        except StorageError as e:
            logger.error(f"Could not record execution of task {entry.task_id}: {e}")
        return entry

    async def _stamp_last_run(self, task: Task, executed_at: datetime) -> None:
        next_run = None
        try:
            next_run = next_run_for(task.schedule, executed_at)
        except ScheduleError as e:
            logger.warning(f"Task {task.id} has an unparseable schedule: {e}")
        try:
            if not await self._store.record_run(task.id, executed_at, next_run):
                logger.info(f"Task {task.id} was deleted while executing")
        except StorageError as e:
            logger.error(f"Could not update last_run of task {task.id}: {e}")

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
