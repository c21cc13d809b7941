"""Tests for ritual/tasks/store.py"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ritual.core.errors import NotFound, StorageError
from ritual.tasks.task import ExecutionLog, ExecutionStatus, TaskStatus


def make_log(task_id: str, executed_at: datetime, status=ExecutionStatus.SUCCESS) -> ExecutionLog:
    return ExecutionLog(
        task_id=task_id,
        task_name="Morning brief",
        prompt="Summarize my calendar",
        output="All clear" if status == ExecutionStatus.SUCCESS else "",
        status=status,
        error=None if status == ExecutionStatus.SUCCESS else "rate limited",
        executed_at=executed_at,
        duration=1200,
    )


@pytest.mark.asyncio
class TestTasks:
    async def test_create_and_get(self, store, task_factory):
        task = await store.create_task(task_factory())
        fetched = await store.get_task(task.id)
        assert fetched.id == task.id
        assert fetched.name == "Morning brief"
        assert fetched.status == TaskStatus.ACTIVE
        assert fetched.job_id is None

    async def test_get_missing_raises_not_found(self, store):
        with pytest.raises(NotFound) as exc:
            await store.get_task("ghost")
        assert exc.value.record_id == "ghost"
        assert str(exc.value) == "Task not found: ghost"

    async def test_find_missing_returns_none(self, store):
        assert await store.find_task("ghost") is None

    async def test_list_newest_first(self, store, task_factory):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        first = await store.create_task(task_factory(name="first", created_at=base))
        second = await store.create_task(
            task_factory(name="second", created_at=base + timedelta(days=1))
        )
        assert [t.id for t in await store.list_tasks()] == [second.id, first.id]

    async def test_timestamps_round_trip_as_utc(self, store, task_factory):
        next_run = datetime(2024, 3, 11, 8, 0, tzinfo=timezone.utc)
        task = await store.create_task(task_factory(next_run=next_run))
        fetched = await store.get_task(task.id)
        assert fetched.next_run == next_run
        assert fetched.next_run.tzinfo is not None

    async def test_partial_update_only_touches_named_fields(self, store, task_factory):
        task = await store.create_task(task_factory())
        updated = await store.update_task(task.id, status=TaskStatus.PAUSED, job_id="task:x")
        assert updated.status == TaskStatus.PAUSED
        assert updated.job_id == "task:x"
        assert updated.prompt == task.prompt
        assert updated.updated_at >= task.updated_at.replace(microsecond=0)

    async def test_update_can_clear_fields(self, store, task_factory):
        task = await store.create_task(
            task_factory(job_id="task:x", next_run=datetime(2024, 3, 11, tzinfo=timezone.utc))
        )
        updated = await store.update_task(task.id, job_id=None, next_run=None)
        assert updated.job_id is None
        assert updated.next_run is None

    async def test_update_missing_raises_not_found(self, store):
        with pytest.raises(NotFound):
            await store.update_task("ghost", name="x")

    async def test_update_rejects_immutable_fields(self, store, task_factory):
        task = await store.create_task(task_factory())
        with pytest.raises(StorageError):
            await store.update_task(task.id, id="other")

    async def test_record_run_refreshes_next_run_while_active(self, store, task_factory):
        task = await store.create_task(task_factory())
        ran = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)
        nxt = datetime(2024, 3, 11, 8, 0, tzinfo=timezone.utc)
        assert await store.record_run(task.id, ran, nxt)
        fetched = await store.get_task(task.id)
        assert fetched.last_run == ran
        assert fetched.next_run == nxt

    async def test_record_run_keeps_paused_next_run(self, store, task_factory):
        task = await store.create_task(task_factory(status=TaskStatus.PAUSED))
        ran = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)
        await store.record_run(task.id, ran, datetime(2024, 3, 11, 8, 0, tzinfo=timezone.utc))
        fetched = await store.get_task(task.id)
        assert fetched.last_run == ran
        assert fetched.next_run is None
        assert fetched.status == TaskStatus.PAUSED

    async def test_record_run_for_deleted_task(self, store):
        ran = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)
        assert await store.record_run("ghost", ran, None) is False

    async def test_delete(self, store, task_factory):
        task = await store.create_task(task_factory())
        assert await store.delete_task(task.id) is True
        assert await store.delete_task(task.id) is False
        assert await store.find_task(task.id) is None


@pytest.mark.asyncio
class TestExecutionLogs:
    async def test_logs_newest_first(self, store):
        base = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)
        older = await store.create_execution_log(make_log("t1", base))
        newer = await store.create_execution_log(make_log("t1", base + timedelta(hours=1)))
        assert [e.id for e in await store.list_execution_logs()] == [newer.id, older.id]

    async def test_logs_for_one_task(self, store):
        base = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)
        mine = await store.create_execution_log(make_log("t1", base))
        await store.create_execution_log(make_log("t2", base))
        assert [e.id for e in await store.list_task_execution_logs("t1")] == [mine.id]

    async def test_limit(self, store):
        base = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)
        for i in range(5):
            await store.create_execution_log(make_log("t1", base + timedelta(minutes=i)))
        assert len(await store.list_execution_logs(limit=3)) == 3

    async def test_log_for_unknown_task_is_kept(self, store):
        entry = make_log("deleted-task", datetime.now(timezone.utc), ExecutionStatus.FAILURE)
        await store.create_execution_log(entry)
        logs = await store.list_task_execution_logs("deleted-task")
        assert len(logs) == 1
        assert logs[0].status == ExecutionStatus.FAILURE
        assert logs[0].error == "rate limited"
        assert logs[0].duration == 1200
