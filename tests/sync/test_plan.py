"""Tests for ritual/sync/plan.py"""
from __future__ import annotations

import pytest

from ritual.core.errors import UnrecognizedSchedule
from ritual.sync.plan import (
    RegisterJob,
    RemoveJob,
    converge,
    job_key,
    key_belongs_to,
    payload_for,
    reconcile,
    repair,
    task_id_from_key,
)
from ritual.tasks.task import TaskStatus


ACTIVE = TaskStatus.ACTIVE
PAUSED = TaskStatus.PAUSED


def kinds(plan) -> list[str]:
    return ["register" if isinstance(s, RegisterJob) else "remove" for s in plan.steps]


# ── Keys ─────────────────────────────────────────────────────────────────────

class TestKeys:
    def test_job_key_derived_from_id(self):
        assert job_key("abc123") == "task:abc123"

    def test_key_belongs_to_exact_key(self):
        assert key_belongs_to("task:abc", "abc")

    def test_key_belongs_to_embedded_token(self):
        assert key_belongs_to("legacy-abc-1700000000", "abc")
        assert key_belongs_to("repeat:abc", "abc")

    def test_key_does_not_match_partial_ids(self):
        assert not key_belongs_to("task:abcd", "abc")
        assert not key_belongs_to("task:xabc", "abc")

    def test_task_id_from_key(self):
        assert task_id_from_key("task:abc") == "abc"
        assert task_id_from_key("task:") is None
        assert task_id_from_key("other:abc") is None

    def test_payload_carries_firing_fields(self, task_factory):
        task = task_factory(output="SMS, Slack #dev")
        payload = payload_for(task)
        assert payload.task_id == task.id
        assert payload.prompt == task.prompt
        assert payload.model == task.model
        assert payload.output_channels == ("SMS", "Slack #dev")


# ── Decision table ───────────────────────────────────────────────────────────

class TestReconcile:
    def test_create_active_registers_once(self, task_factory):
        new = task_factory()
        plan = reconcile(None, new)
        assert kinds(plan) == ["register"]
        step = plan.steps[0]
        assert step.key == job_key(new.id)
        assert step.recurrence == "0 8 * * *"
        assert step.payload.task_id == new.id

    def test_create_paused_is_noop(self, task_factory):
        assert reconcile(None, task_factory(status=PAUSED)).is_noop

    def test_active_unchanged_is_noop(self, task_factory):
        old = task_factory(job_id=None)
        new = old.evolve(name="Renamed", prompt="Something else")
        assert reconcile(old, new).is_noop

    def test_schedule_change_removes_then_registers(self, task_factory):
        old = task_factory(schedule="daily at 8:00 AM")
        old.job_id = job_key(old.id)
        new = old.evolve(schedule="every 2 hours")
        plan = reconcile(old, new)
        assert kinds(plan) == ["remove", "register"]
        assert plan.steps[0].key == job_key(old.id)
        assert plan.steps[1].recurrence == "0 */2 * * *"

    def test_schedule_change_is_raw_text_comparison(self, task_factory):
        old = task_factory(schedule="daily at 8:00 AM")
        new = old.evolve(schedule="DAILY at 8:00 am")
        assert kinds(reconcile(old, new)) == ["remove", "register"]

    def test_pause_removes_only(self, task_factory):
        old = task_factory()
        plan = reconcile(old, old.evolve(status=PAUSED))
        assert kinds(plan) == ["remove"]
        assert plan.registrations == []

    def test_resume_registers(self, task_factory):
        old = task_factory(status=PAUSED)
        assert kinds(reconcile(old, old.evolve(status=ACTIVE))) == ["register"]

    def test_paused_to_paused_is_noop(self, task_factory):
        old = task_factory(status=PAUSED)
        assert reconcile(old, old.evolve(schedule="every 3 hours")).is_noop

    def test_delete_active_removes(self, task_factory):
        old = task_factory()
        plan = reconcile(old, None)
        assert kinds(plan) == ["remove"]
        assert plan.steps[0].task_id == old.id

    def test_delete_paused_is_noop(self, task_factory):
        assert reconcile(task_factory(status=PAUSED), None).is_noop

    def test_register_uses_derived_key_not_stored_handle(self, task_factory):
        old = task_factory(status=PAUSED, job_id="something-else")
        plan = reconcile(old, old.evolve(status=ACTIVE))
        assert plan.steps[0].key == job_key(old.id)

    def test_remove_carries_stale_handle(self, task_factory):
        old = task_factory(job_id="legacy-handle")
        step = reconcile(old, None).steps[0]
        assert isinstance(step, RemoveJob)
        assert step.key == job_key(old.id)
        assert step.stale_handle == "legacy-handle"

    def test_remove_without_stale_handle(self, task_factory):
        old = task_factory()
        old.job_id = job_key(old.id)
        assert reconcile(old, None).steps[0].stale_handle is None

    def test_desired_job_id(self, task_factory):
        task = task_factory()
        assert reconcile(None, task).desired_job_id == job_key(task.id)
        assert reconcile(task, None).desired_job_id is None
        assert reconcile(task, task).desired_job_id == task.job_id

    def test_unparseable_schedule_raises_when_registering(self, task_factory):
        with pytest.raises(UnrecognizedSchedule):
            reconcile(None, task_factory(schedule="whenever"))

    def test_unparseable_schedule_ignored_when_not_registering(self, task_factory):
        assert reconcile(None, task_factory(schedule="whenever", status=PAUSED)).is_noop

    def test_needs_a_task(self):
        with pytest.raises(ValueError):
            reconcile(None, None)

    def test_rejects_different_tasks(self, task_factory):
        with pytest.raises(ValueError):
            reconcile(task_factory(), task_factory())

    def test_handles_carried_through(self, task_factory):
        task = task_factory(job_id="task:x")
        assert reconcile(None, task).prior_job_id is None
        assert reconcile(task, None).prior_job_id == "task:x"
        assert reconcile(task, task.evolve(name="n")).prior_job_id == "task:x"


# ── Repairs ──────────────────────────────────────────────────────────────────

class TestConverge:
    def test_same_as_reconcile_when_plan_has_steps(self, task_factory):
        old = task_factory()
        new = old.evolve(status=PAUSED)
        assert converge(old, new) == reconcile(old, new)

    def test_active_without_handle_is_registered(self, task_factory):
        old = task_factory(job_id=None)
        plan = converge(old, old.evolve(name="x"))
        assert kinds(plan) == ["register"]

    def test_active_with_current_handle_is_noop(self, task_factory):
        old = task_factory()
        old.job_id = job_key(old.id)
        assert converge(old, old.evolve(name="x")).is_noop

    def test_active_with_stale_handle_removes_then_registers(self, task_factory):
        old = task_factory(job_id="legacy-handle")
        plan = converge(old, old.evolve(name="x"))
        assert kinds(plan) == ["remove", "register"]
        assert plan.steps[0].stale_handle == "legacy-handle"

    def test_paused_still_holding_handle_is_removed(self, task_factory):
        old = task_factory(status=PAUSED)
        old.job_id = job_key(old.id)
        plan = converge(old, old.evolve(name="x"))
        assert kinds(plan) == ["remove"]

    def test_deleting_paused_task_with_handle_removes(self, task_factory):
        old = task_factory(status=PAUSED)
        old.job_id = job_key(old.id)
        assert kinds(converge(old, None)) == ["remove"]

    def test_create_paused_is_noop(self, task_factory):
        assert converge(None, task_factory(status=PAUSED)).is_noop


class TestRepair:
    def test_registered_active_task_is_noop(self, task_factory):
        task = task_factory()
        task.job_id = job_key(task.id)
        assert repair(task, [job_key(task.id)]).is_noop

    def test_missing_registration_is_added(self, task_factory):
        task = task_factory()
        task.job_id = job_key(task.id)
        assert kinds(repair(task, [])) == ["register"]

    def test_handle_missing_from_task(self, task_factory):
        task = task_factory()
        assert kinds(repair(task, [job_key(task.id)])) == ["register"]

    def test_paused_with_live_key_is_removed(self, task_factory):
        task = task_factory(status=PAUSED)
        assert kinds(repair(task, [job_key(task.id)])) == ["remove"]

    def test_paused_and_clean_is_noop(self, task_factory):
        assert repair(task_factory(status=PAUSED), ["task:someone-else"]).is_noop
