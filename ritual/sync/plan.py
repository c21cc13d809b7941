"""
Reconciliation planning — decide which backend calls converge a task.

reconcile(old, new) is pure: it looks at the task before and after a
mutation and returns an ordered SideEffectPlan. Nothing here performs I/O;
PlanExecutor runs the plan against a real backend.

    old      new      schedule changed   plan
    -        ACTIVE   -                  register
    -        PAUSED   -                  no-op
    ACTIVE   ACTIVE   no                 no-op
    ACTIVE   ACTIVE   yes                remove, register
    ACTIVE   PAUSED   -                  remove
    PAUSED   ACTIVE   -                  register
    PAUSED   PAUSED   -                  no-op
    ACTIVE   -        -                  remove
    PAUSED   -        -                  no-op

Job keys come from the task id alone (job_key), never from a stored
handle, so a task can own at most one registration.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Union

from ritual.backend.base import JobPayload
from ritual.schedule.parser import parse
from ritual.tasks.task import Task

JOB_KEY_PREFIX = "task:"


def job_key(task_id: str) -> str:
    """The one recurring-job key a task may own."""
    return f"{JOB_KEY_PREFIX}{task_id}"


def key_belongs_to(key: str, task_id: str) -> bool:
    """True if key embeds task_id as a whole token (used by the orphan sweep)."""
    if key == job_key(task_id):
        return True
    pattern = rf"(?<![0-9A-Za-z]){re.escape(task_id)}(?![0-9A-Za-z])"
    return re.search(pattern, key) is not None


def payload_for(task: Task) -> JobPayload:
    return JobPayload(
        task_id=task.id,
        prompt=task.prompt,
        model=task.model,
        output_channels=tuple(task.output_channels),
    )


# ── Plan steps ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RegisterJob:
    """ensure_recurring(key, recurrence, payload)"""

    key: str
    recurrence: str
    payload: JobPayload


@dataclass(frozen=True)
class RemoveJob:
    """
    remove_recurring(key), plus the stale stored handle if it differs, plus
    a sweep of any listed key that embeds task_id.
    """

    key: str
    task_id: str
    stale_handle: str | None = None


PlanStep = Union[RegisterJob, RemoveJob]


@dataclass(frozen=True)
class SideEffectPlan:
    """Ordered backend calls for one task mutation."""

    task_id: str
    steps: tuple[PlanStep, ...] = ()
    prior_job_id: str | None = None

    @property
    def is_noop(self) -> bool:
        return not self.steps

    @property
    def registrations(self) -> list[RegisterJob]:
        return [s for s in self.steps if isinstance(s, RegisterJob)]

    @property
    def removals(self) -> list[RemoveJob]:
        return [s for s in self.steps if isinstance(s, RemoveJob)]

    @property
    def desired_job_id(self) -> str | None:
        """The handle the task should carry once every step has run."""
        if self.registrations:
            return self.registrations[-1].key
        if self.removals:
            return None
        return self.prior_job_id


def _register(task: Task) -> RegisterJob:
    return RegisterJob(
        key=job_key(task.id),
        recurrence=parse(task.schedule).recurrence,
        payload=payload_for(task),
    )


def _remove(task: Task) -> RemoveJob:
    key = job_key(task.id)
    stale = task.job_id if task.job_id and task.job_id != key else None
    return RemoveJob(key=key, task_id=task.id, stale_handle=stale)


def reconcile(old: Task | None, new: Task | None) -> SideEffectPlan:
    """
    Plan the backend calls that take a task from old to new.

    old=None means the task is being created, new=None means it is being
    deleted. Raises ScheduleError subclasses if new.schedule must be
    registered and cannot be parsed.
    """
    if old is None:
        if new is None:
            raise ValueError("reconcile needs at least one of old or new")
        if not new.is_active:
            return SideEffectPlan(task_id=new.id)
        return SideEffectPlan(task_id=new.id, steps=(_register(new),))

    if new is None:
        removal: tuple[PlanStep, ...] = (_remove(old),) if old.is_active else ()
        return SideEffectPlan(task_id=old.id, steps=removal, prior_job_id=old.job_id)

    if old.id != new.id:
        raise ValueError(f"Cannot reconcile different tasks: {old.id} -> {new.id}")

    steps: tuple[PlanStep, ...] = ()
    if old.is_active and new.is_active:
        if old.schedule != new.schedule:
            steps = (_remove(old), _register(new))
    elif old.is_active:
        steps = (_remove(old),)
    elif new.is_active:
        steps = (_register(new),)

    return SideEffectPlan(task_id=new.id, steps=steps, prior_job_id=old.job_id)


def converge(old: Task | None, new: Task | None) -> SideEffectPlan:
    """
    reconcile(), plus repair of a stored handle that disagrees with the
    desired state.

    A mutation that reconcile() calls a no-op still re-registers an ACTIVE
    task whose handle is missing or stale, and removes the registration of a
    PAUSED or deleted task that still carries one. These cases only arise
    after an earlier plan was skipped in degraded mode.
    """
    plan = reconcile(old, new)
    if not plan.is_noop:
        return plan

    if new is not None:
        if new.is_active and new.job_id != job_key(new.id):
            steps: tuple[PlanStep, ...] = (_register(new),)
            if new.job_id:
                steps = (_remove(new), _register(new))
            return SideEffectPlan(task_id=new.id, steps=steps, prior_job_id=new.job_id)
        if not new.is_active and new.job_id:
            return SideEffectPlan(task_id=new.id, steps=(_remove(new),), prior_job_id=new.job_id)
    elif old is not None and old.job_id:
        return SideEffectPlan(task_id=old.id, steps=(_remove(old),), prior_job_id=old.job_id)

    return plan


def repair(task: Task, live_keys: Iterable[str]) -> SideEffectPlan:
    """
    Plan that brings the backend in line with a stored task, given the keys
    the backend currently holds. Used by the resync sweep.
    """
    key = job_key(task.id)
    live = set(live_keys)

    if task.is_active:
        if key in live and task.job_id == key:
            return SideEffectPlan(task_id=task.id, prior_job_id=task.job_id)
        steps: tuple[PlanStep, ...] = (_register(task),)
        if task.job_id and task.job_id != key:
            steps = (_remove(task), _register(task))
        return SideEffectPlan(task_id=task.id, steps=steps, prior_job_id=task.job_id)

    if task.job_id or any(key_belongs_to(k, task.id) for k in live):
        return SideEffectPlan(task_id=task.id, steps=(_remove(task),), prior_job_id=task.job_id)
    return SideEffectPlan(task_id=task.id, prior_job_id=task.job_id)


def task_id_from_key(key: str) -> str | None:
    """The task id a key was derived from, or None for foreign keys."""
    if key.startswith(JOB_KEY_PREFIX) and len(key) > len(JOB_KEY_PREFIX):
        return key[len(JOB_KEY_PREFIX):]
    return None
