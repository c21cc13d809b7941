"""Tests for ritual/tasks/task.py"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ritual.tasks.task import ExecutionLog, ExecutionStatus, TaskStatus, from_iso, to_iso


def test_to_iso_is_utc_seconds_with_z():
    value = datetime(2024, 3, 10, 9, 30, 15, 123456, tzinfo=timezone(timedelta(hours=1)))
    assert to_iso(value) == "2024-03-10T08:30:15Z"
    assert to_iso(None) is None


def test_from_iso_accepts_z_and_naive():
    assert from_iso("2024-03-10T08:30:15Z") == datetime(2024, 3, 10, 8, 30, 15, tzinfo=timezone.utc)
    assert from_iso("2024-03-10T08:30:15").tzinfo == timezone.utc
    assert from_iso(None) is None
    assert from_iso("") is None


def test_wire_format_is_camel_case(task_factory):
    task = task_factory(job_id="task:x")
    data = task.to_dict()
    assert data["jobId"] == "task:x"
    assert data["status"] == "ACTIVE"
    assert set(data) >= {"nextRun", "lastRun", "createdAt", "updatedAt"}


def test_output_channels(task_factory):
    assert task_factory(output="SMS, Slack #dev ,").output_channels == ["SMS", "Slack #dev"]
    assert task_factory(output="").output_channels == []


def test_evolve_copies_and_coerces_status(task_factory):
    task = task_factory()
    paused = task.evolve(status="PAUSED")
    assert paused.status == TaskStatus.PAUSED
    assert not paused.is_active
    assert task.is_active
    assert paused.id == task.id


def test_evolve_rejects_unknown_status(task_factory):
    with pytest.raises(ValueError):
        task_factory().evolve(status="SLEEPING")


def test_execution_log_wire_format():
    entry = ExecutionLog(
        task_id="t1",
        task_name="Brief",
        prompt="p",
        output="",
        status=ExecutionStatus.FAILURE,
        error="boom",
        executed_at=datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc),
    )
    data = entry.to_dict()
    assert data["taskId"] == "t1"
    assert data["taskName"] == "Brief"
    assert data["executedAt"] == "2024-03-10T08:00:00Z"
    assert data["status"] == "FAILURE"
    assert not entry.succeeded
