"""
PlanExecutor — runs a SideEffectPlan against a RecurringJobBackend.

An unreachable backend is not an error for the caller: the executor logs
it, stops, and returns a degraded SyncResult that records which steps did
get applied. The task mutation that produced the plan still commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ritual.backend.base import RecurringJobBackend
from ritual.core.errors import BackendUnavailable
from ritual.schedule.parser import next_occurrence
from ritual.sync.plan import PlanStep, RegisterJob, RemoveJob, SideEffectPlan, key_belongs_to

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of executing a plan."""

    task_id: str
    job_id: str | None
    next_run: datetime | None = None
    applied: list[PlanStep] = field(default_factory=list)
    removed_keys: list[str] = field(default_factory=list)
    degraded: bool = False
    error: str | None = None

    @property
    def complete(self) -> bool:
        return not self.degraded


class PlanExecutor:
    """
    Applies plans in order.

    Usage:
        executor = PlanExecutor(backend)
        result = await executor.execute(reconcile(old, new))
        if result.degraded:
            ...  # scheduling skipped, task mutation still stands
    """

    def __init__(self, backend: RecurringJobBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> RecurringJobBackend:
        return self._backend

    async def execute(self, plan: SideEffectPlan) -> SyncResult:
        result = SyncResult(task_id=plan.task_id, job_id=plan.prior_job_id)
        if plan.is_noop:
            return result

        if not self._backend.is_available():
            logger.warning(
                f"Backend unavailable, skipping scheduling for task {plan.task_id} "
                f"({len(plan.steps)} step(s))"
            )
            result.degraded = True
            result.error = "Recurring job backend unavailable"
            self._forget_unregistered(plan, result)
            return result

        try:
            for step in plan.steps:
                if isinstance(step, RemoveJob):
                    await self._remove(step, result)
                    result.job_id = None
                    result.next_run = None
                else:
                    await self._register(step, result)
                result.applied.append(step)
        except BackendUnavailable as e:
            logger.warning(
                f"Backend became unavailable while scheduling task {plan.task_id} "
                f"after {len(result.applied)}/{len(plan.steps)} step(s): {e}"
            )
            result.degraded = True
            result.error = str(e)
            self._forget_unregistered(plan, result)

        return result

    @staticmethod
    def _forget_unregistered(plan: SideEffectPlan, result: SyncResult) -> None:
        """
        A registration that did not run leaves the backend holding whatever
        recurrence it had before. Dropping the handle makes the next
        converge or repair register the current schedule again.
        """
        pending = [s for s in plan.registrations if s not in result.applied]
        if pending:
            result.job_id = None

    async def _register(self, step: RegisterJob, result: SyncResult) -> None:
        handle = await self._backend.ensure_recurring(step.key, step.recurrence, step.payload)
        result.job_id = handle.key
        result.next_run = handle.next_fire or next_occurrence(
            step.recurrence, datetime.now(timezone.utc)
        )
        logger.info(f"Task {step.payload.task_id} scheduled as {handle.key!r} ({step.recurrence})")

    async def _remove(self, step: RemoveJob, result: SyncResult) -> None:
        targets = [step.key]
        if step.stale_handle:
            targets.append(step.stale_handle)

        for key in targets:
            if await self._backend.remove_recurring(key):
                result.removed_keys.append(key)

        # Orphans left behind by an earlier partial failure
        for key in await self._backend.list_recurring_keys():
            if key not in targets and key_belongs_to(key, step.task_id):
                if await self._backend.remove_recurring(key):
                    logger.info(f"Removed orphaned job {key!r} for task {step.task_id}")
                    result.removed_keys.append(key)

        logger.info(f"Task {step.task_id} unscheduled")
