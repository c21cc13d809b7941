"""
Task and ExecutionLog — the persisted data model.

A Task describes what to run (prompt, model), when to run it (schedule
phrase), where results go (output), and its scheduling state (status,
job_id). An ExecutionLog is written once per firing and never changed.

Timestamps are timezone-aware UTC datetimes in memory and ISO-8601 strings
on disk and on the wire.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


class ExecutionStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    normalized = value.astimezone(timezone.utc).replace(microsecond=0)
    return normalized.isoformat().replace("+00:00", "Z")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Task:
    """A recurring AI task."""

    name: str
    prompt: str
    schedule: str        # human phrase, e.g. "daily at 8:00 AM"
    model: str
    output: str = ""     # comma-separated output channels
    status: TaskStatus = TaskStatus.ACTIVE

    id: str = field(default_factory=new_id)
    job_id: str | None = None  # key of the registered recurring job, if any
    next_run: datetime | None = None
    last_run: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == TaskStatus.ACTIVE

    @property
    def output_channels(self) -> list[str]:
        return [c.strip() for c in self.output.split(",") if c.strip()]

    def evolve(self, **changes: Any) -> Task:
        """Copy with changes applied; the original is left untouched."""
        if "status" in changes:
            changes["status"] = TaskStatus(changes["status"])
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Wire format (camelCase, ISO timestamps)."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "prompt": self.prompt,
            "schedule": self.schedule,
            "output": self.output,
            "model": self.model,
            "nextRun": to_iso(self.next_run),
            "lastRun": to_iso(self.last_run),
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "jobId": self.job_id,
        }

    @classmethod
    def from_row(cls, d: dict[str, Any]) -> Task:
        """Build from a database row (snake_case, ISO timestamps)."""
        return cls(
            id=d["id"],
            name=d["name"],
            status=TaskStatus(d["status"]),
            prompt=d["prompt"],
            schedule=d["schedule"],
            output=d["output"],
            model=d["model"],
            next_run=from_iso(d["next_run"]),
            last_run=from_iso(d["last_run"]),
            created_at=from_iso(d["created_at"]) or utcnow(),
            updated_at=from_iso(d["updated_at"]) or utcnow(),
            job_id=d.get("job_id") or None,
        )


@dataclass(frozen=True)
class ExecutionLog:
    """Outcome of one firing. Append-only."""

    task_id: str
    task_name: str
    prompt: str
    output: str
    status: ExecutionStatus
    error: str | None = None
    executed_at: datetime = field(default_factory=utcnow)
    duration: int = 0  # milliseconds
    id: str = field(default_factory=new_id)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "taskId": self.task_id,
            "taskName": self.task_name,
            "prompt": self.prompt,
            "output": self.output,
            "status": self.status.value,
            "error": self.error,
            "executedAt": to_iso(self.executed_at),
            "duration": self.duration,
        }

    @classmethod
    def from_row(cls, d: dict[str, Any]) -> ExecutionLog:
        return cls(
            id=d["id"],
            task_id=d["task_id"],
            task_name=d["task_name"],
            prompt=d["prompt"],
            output=d["output"],
            status=ExecutionStatus(d["status"]),
            error=d["error"],
            executed_at=from_iso(d["executed_at"]) or utcnow(),
            duration=int(d["duration"]),
        )
