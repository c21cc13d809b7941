"""
TaskStore — SQLite persistence for tasks and execution logs.

Uses aiosqlite for async SQLite access. WAL mode enabled for concurrent
read support (the API and the firing path share the database).

Tables:
    tasks           one row per task, job_id holds the recurring-job key
    execution_logs  append-only, one row per firing

execution_logs has no foreign key to tasks: a firing for a task deleted
moments earlier must still be recorded.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from ritual.core.errors import NotFound, StorageError
from ritual.tasks.task import ExecutionLog, Task, to_iso, utcnow

logger = logging.getLogger(__name__)

_TASK_COLUMNS = (
    "id, name, status, prompt, schedule, output, model, "
    "next_run, last_run, created_at, updated_at, job_id"
)
_LOG_COLUMNS = "id, task_id, task_name, prompt, output, status, error, executed_at, duration"

# Attributes update_task() accepts; id and created_at are immutable
_MUTABLE_FIELDS = frozenset(
    {"name", "status", "prompt", "schedule", "output", "model", "next_run", "last_run", "job_id"}
)


class TaskStore:
    """
    Async SQLite store for tasks and execution logs.

    Usage:
        store = TaskStore("~/.ritual/ritual.db")
        await store.initialize()

        task = await store.create_task(Task(name=..., prompt=..., ...))
        task = await store.update_task(task.id, status=TaskStatus.PAUSED)
        await store.create_execution_log(entry)
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and run migrations."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._db = await aiosqlite.connect(str(self._db_path))
            self._db.row_factory = aiosqlite.Row

            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA synchronous=NORMAL")

            await self._db.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    status TEXT CHECK(status IN ('ACTIVE', 'PAUSED')) NOT NULL,
                    prompt TEXT NOT NULL,
                    schedule TEXT NOT NULL,
                    output TEXT NOT NULL,
                    model TEXT NOT NULL,
                    next_run TEXT,
                    last_run TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    job_id TEXT
                )
                """
            )
            await self._db.execute(
                """
                CREATE TABLE IF NOT EXISTS execution_logs (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    task_name TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    output TEXT NOT NULL,
                    status TEXT CHECK(status IN ('SUCCESS', 'FAILURE')) NOT NULL,
                    error TEXT,
                    executed_at TEXT NOT NULL,
                    duration INTEGER NOT NULL
                )
                """
            )
            await self._db.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_execution_logs_task_id ON execution_logs(task_id)"
            )
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_execution_logs_executed_at "
                "ON execution_logs(executed_at)"
            )
            await self._db.commit()
            logger.debug(f"TaskStore initialized at {self._db_path}")

        except Exception as e:
            raise StorageError(f"Failed to initialize SQLite at {self._db_path}: {e}") from e

    async def _ensure_db(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.initialize()
        return self._db  # type: ignore[return-value]

    # ── Tasks ────────────────────────────────────────────────────────────────

    async def list_tasks(self) -> list[Task]:
        """All tasks, newest first."""
        db = await self._ensure_db()
        try:
            async with db.execute(
                f"SELECT {_TASK_COLUMNS} FROM tasks ORDER BY created_at DESC, rowid DESC"
            ) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise StorageError(f"Failed to list tasks: {e}") from e
        return [Task.from_row(dict(r)) for r in rows]

    async def get_task(self, task_id: str) -> Task:
        """Fetch one task. Raises NotFound if it does not exist."""
        task = await self.find_task(task_id)
        if task is None:
            raise NotFound("task", task_id)
        return task

    async def find_task(self, task_id: str) -> Task | None:
        db = await self._ensure_db()
        try:
            async with db.execute(
                f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(f"Failed to get task '{task_id}': {e}") from e
        return Task.from_row(dict(row)) if row else None

    async def create_task(self, task: Task) -> Task:
        db = await self._ensure_db()
        try:
            await db.execute(
                f"INSERT INTO tasks ({_TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._task_params(task),
            )
            await db.commit()
        except Exception as e:
            raise StorageError(f"Failed to create task '{task.name}': {e}") from e
        logger.debug(f"Task created: {task.id} ({task.name!r})")
        return task

    async def update_task(self, task_id: str, **changes: Any) -> Task:
        """
        Apply a partial update and return the stored task.

        Only the named columns are written, so concurrent updates of other
        fields are not lost. Raises NotFound if the task does not exist,
        StorageError for unknown fields or driver failures.
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise StorageError(f"Cannot update task fields: {sorted(unknown)}")

        values = {name: self._column_value(value) for name, value in changes.items()}
        values["updated_at"] = to_iso(utcnow())
        assignments = ", ".join(f"{name} = ?" for name in values)

        db = await self._ensure_db()
        try:
            cursor = await db.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                (*values.values(), task_id),
            )
            await db.commit()
        except Exception as e:
            raise StorageError(f"Failed to update task '{task_id}': {e}") from e
        if cursor.rowcount == 0:
            raise NotFound("task", task_id)
        return await self.get_task(task_id)

    async def record_run(self, task_id: str, last_run: datetime, next_run: datetime | None) -> bool:
        """
        Stamp a successful run. next_run is only refreshed while the task is
        still ACTIVE, so a pause that landed mid-execution stands.
        Returns False if the task no longer exists.
        """
        db = await self._ensure_db()
        try:
            cursor = await db.execute(
                """
                UPDATE tasks
                SET last_run = ?,
                    next_run = CASE WHEN status = 'ACTIVE' AND ? IS NOT NULL THEN ? ELSE next_run END,
                    updated_at = ?
                WHERE id = ?
                """,
                (to_iso(last_run), to_iso(next_run), to_iso(next_run), to_iso(utcnow()), task_id),
            )
            await db.commit()
        except Exception as e:
            raise StorageError(f"Failed to record run of task '{task_id}': {e}") from e
        return cursor.rowcount > 0

    async def delete_task(self, task_id: str) -> bool:
        db = await self._ensure_db()
        try:
            cursor = await db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            await db.commit()
        except Exception as e:
            raise StorageError(f"Failed to delete task '{task_id}': {e}") from e
        return cursor.rowcount > 0

    # ── Execution logs ───────────────────────────────────────────────────────

    async def create_execution_log(self, entry: ExecutionLog) -> ExecutionLog:
        db = await self._ensure_db()
        try:
            await db.execute(
                f"INSERT INTO execution_logs ({_LOG_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.id,
                    entry.task_id,
                    entry.task_name,
                    entry.prompt,
                    entry.output,
                    entry.status.value,
                    entry.error,
                    to_iso(entry.executed_at),
                    entry.duration,
                ),
            )
            await db.commit()
        except Exception as e:
            raise StorageError(f"Failed to write execution log for '{entry.task_id}': {e}") from e
        return entry

    async def list_execution_logs(self, limit: int = 100) -> list[ExecutionLog]:
        """Most recent executions across all tasks."""
        return await self._query_logs(
            f"SELECT {_LOG_COLUMNS} FROM execution_logs ORDER BY executed_at DESC, rowid DESC LIMIT ?",
            (limit,),
        )

    async def list_task_execution_logs(self, task_id: str, limit: int = 50) -> list[ExecutionLog]:
        return await self._query_logs(
            f"SELECT {_LOG_COLUMNS} FROM execution_logs WHERE task_id = ? "
            "ORDER BY executed_at DESC, rowid DESC LIMIT ?",
            (task_id, limit),
        )

    async def _query_logs(self, sql: str, params: tuple) -> list[ExecutionLog]:
        db = await self._ensure_db()
        try:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise StorageError(f"Failed to read execution logs: {e}") from e
        return [ExecutionLog.from_row(dict(r)) for r in rows]

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    # ── Helpers ──────────────────────────────────────────────────────────────

    @staticmethod
    def _task_params(task: Task) -> tuple:
        return (
            task.id,
            task.name,
            task.status.value,
            task.prompt,
            task.schedule,
            task.output,
            task.model,
            to_iso(task.next_run),
            to_iso(task.last_run),
            to_iso(task.created_at),
            to_iso(task.updated_at),
            task.job_id,
        )

    @staticmethod
    def _column_value(value: Any) -> Any:
        if isinstance(value, datetime):
            return to_iso(value)
        if isinstance(value, Enum):
            return value.value
        return value
