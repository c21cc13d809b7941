"""
TaskService — task mutations with their scheduling side effects.

Every mutation runs in the per-task critical section:

    load old → validate → persist → plan → execute → store handle

Schedule phrases are parsed before anything is written, so a bad phrase
rejects the whole request. Backend trouble never does: the mutation
commits, the result is flagged degraded, and a later mutation or resync
repairs the registration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ritual.backend.base import RecurringJobBackend
from ritual.core.config import RitualConfig
from ritual.core.errors import BackendUnavailable, ScheduleError
from ritual.schedule.parser import next_run_for, parse
from ritual.sync.executor import PlanExecutor, SyncResult
from ritual.sync.locks import KeyedLocks
from ritual.sync.plan import RegisterJob, SideEffectPlan, converge, repair, task_id_from_key
from ritual.tasks.store import TaskStore
from ritual.tasks.task import Task, TaskStatus

logger = logging.getLogger(__name__)

# Fields a caller may change through update_task()
EDITABLE_FIELDS = frozenset({"name", "prompt", "schedule", "output", "model", "status"})


@dataclass
class TaskResult:
    """A task after a mutation, and whether scheduling was skipped."""

    task: Task
    degraded: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {**self.task.to_dict(), "degraded": self.degraded}


@dataclass
class ResyncReport:
    """What a resync pass changed in the backend."""

    registered: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)  # task ids with bad schedules
    degraded: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "registered": list(self.registered),
            "removed": list(self.removed),
            "skipped": list(self.skipped),
            "degraded": self.degraded,
            "error": self.error,
        }


class TaskService:
    """
    Usage:
        service = TaskService(store, backend, config)

        result = await service.create_task(
            name="Morning brief", prompt="...", schedule="daily at 8:00 AM"
        )
        if result.degraded:
            ...  # saved, but not scheduled yet

        await service.pause_task(result.task.id)
        await service.delete_task(result.task.id)
    """

    def __init__(
        self,
        store: TaskStore,
        backend: RecurringJobBackend,
        config: RitualConfig | None = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._config = config or RitualConfig()
        self._executor = PlanExecutor(backend)
        self._locks = KeyedLocks()

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def backend(self) -> RecurringJobBackend:
        return self._backend

    @property
    def degraded(self) -> bool:
        return not self._backend.is_available()

    # ── Queries ───────────────────────────────────────────────────────────────

    async def list_tasks(self) -> list[Task]:
        return await self._store.list_tasks()

    async def get_task(self, task_id: str) -> Task:
        return await self._store.get_task(task_id)

    # ── Mutations ─────────────────────────────────────────────────────────────

    async def create_task(
        self,
        name: str,
        prompt: str,
        schedule: str,
        model: str | None = None,
        output: str = "",
        status: TaskStatus | str = TaskStatus.ACTIVE,
    ) -> TaskResult:
        """
        Validate, persist, and schedule a new task.

        Raises:
            ScheduleError: the schedule phrase cannot be parsed (nothing is saved)
        """
        parse(schedule)
        task = Task(
            name=name,
            prompt=prompt,
            schedule=schedule,
            model=model or self._config.llm.default_model,
            output=output,
            status=TaskStatus(status),
        )
        if task.is_active:
            task.next_run = next_run_for(schedule, task.created_at)

        async with self._locks.hold(task.id):
            await self._store.create_task(task)
            logger.info(f"Task created: {task.id} ({task.name!r}, {task.status.value})")
            result = await self._sync(converge(None, task))
            return await self._commit(task, result)

    async def update_task(self, task_id: str, **changes: Any) -> TaskResult:
        """
        Apply changes to a task and converge its registration.

        Raises:
            NotFound: no such task
            ScheduleError: the (new) schedule cannot be parsed (nothing is saved)
            ValueError: a field that cannot be edited was passed
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        async with self._locks.hold(task_id):
            old = await self._store.get_task(task_id)
            new = old.evolve(**changes)
            parse(new.schedule)

            if not new.is_active:
                changes["next_run"] = None
            elif new.schedule != old.schedule or not old.is_active or old.next_run is None:
                changes["next_run"] = next_run_for(new.schedule)

            stored = await self._store.update_task(task_id, **changes)
            logger.info(f"Task updated: {task_id} ({', '.join(sorted(changes))})")
            result = await self._sync(converge(old, stored))
            return await self._commit(stored, result)

    async def pause_task(self, task_id: str) -> TaskResult:
        return await self.update_task(task_id, status=TaskStatus.PAUSED)

    async def resume_task(self, task_id: str) -> TaskResult:
        return await self.update_task(task_id, status=TaskStatus.ACTIVE)

    async def delete_task(self, task_id: str) -> TaskResult:
        """
        Remove the task's registration, then its row. In degraded mode the
        row is deleted anyway and the leftover job is cleaned up by resync.

        Raises:
            NotFound: no such task
        """
        async with self._locks.hold(task_id):
            old = await self._store.get_task(task_id)
            result = await self._sync(converge(old, None))
            await self._store.delete_task(task_id)
            logger.info(f"Task deleted: {task_id} ({old.name!r})")
            return TaskResult(
                task=old.evolve(job_id=result.job_id),
                degraded=result.degraded,
                error=result.error,
            )

    # ── Resync ────────────────────────────────────────────────────────────────

    async def resync(self) -> ResyncReport:
        """
        Bring the backend in line with the task table.

        Registers ACTIVE tasks that are missing, replaces stale handles,
        removes registrations of PAUSED tasks, and removes task-derived keys
        whose task no longer exists.
        """
        report = ResyncReport()
        if not self._backend.is_available():
            report.degraded = True
            report.error = "Recurring job backend unavailable"
            logger.warning("Resync skipped: backend unavailable")
            return report

        try:
            live_keys = await self._backend.list_recurring_keys()
        except BackendUnavailable as e:
            report.degraded = True
            report.error = str(e)
            return report

        known: set[str] = set()
        for listed in await self._store.list_tasks():
            known.add(listed.id)
            async with self._locks.hold(listed.id):
                task = await self._store.find_task(listed.id)
                if task is None:
                    continue
                try:
                    plan = repair(task, live_keys)
                except ScheduleError as e:
                    logger.warning(f"Resync skipped task {task.id}: {e}")
                    report.skipped.append(task.id)
                    continue

                result = await self._sync(plan)
                await self._commit(task, result)
                report.registered.extend(
                    s.key for s in result.applied if isinstance(s, RegisterJob)
                )
                report.removed.extend(result.removed_keys)
                if result.degraded:
                    report.degraded = True
                    report.error = result.error
                    return report

        for key in live_keys:
            owner = task_id_from_key(key)
            if owner is None or owner in known or key in report.removed:
                continue
            try:
                if await self._backend.remove_recurring(key):
                    logger.info(f"Resync removed job {key!r} of deleted task {owner}")
                    report.removed.append(key)
            except BackendUnavailable as e:
                report.degraded = True
                report.error = str(e)
                return report

        logger.info(
            f"Resync done: {len(report.registered)} registered, "
            f"{len(report.removed)} removed, {len(report.skipped)} skipped"
        )
        return report

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _sync(self, plan: SideEffectPlan) -> SyncResult:
        result = await self._executor.execute(plan)
        if result.degraded:
            logger.warning(f"Task {plan.task_id} saved without scheduling: {result.error}")
        return result

    async def _commit(self, task: Task, result: SyncResult) -> TaskResult:
        """Store the handle (and next run) the plan left the task with."""
        next_run = task.next_run
        if not task.is_active:
            next_run = None
        elif result.next_run is not None:
            next_run = result.next_run

        if result.job_id != task.job_id or next_run != task.next_run:
            task = await self._store.update_task(task.id, job_id=result.job_id, next_run=next_run)
        return TaskResult(task=task, degraded=result.degraded, error=result.error)
