"""
JobStore — SQLite persistence for recurring jobs.

DB: ~/.ritual/jobs.db  (separate from ritual.db so the backend owns its state)

Table: recurring_jobs
    key        TEXT  PK
    recurrence TEXT
    payload    TEXT  (JSON)
    next_fire  INT
    last_fire  INT
    created_at INT
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
from pathlib import Path

from ritual.backend.job import RecurringJob

logger = logging.getLogger(__name__)


class JobStore:
    """
    Thread-safe SQLite store for recurring jobs.  All blocking ops run in executor.

    Usage:
        store = JobStore(Path("~/.ritual/jobs.db").expanduser())
        await store.initialize()

        await store.save(job)
        due = await store.get_due(now=time.time())
        await store.update_after_fire(key, recurrence, next_fire, last_fire)
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or (Path.home() / ".ritual" / "jobs.db")
        self._db: sqlite3.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def initialize(self) -> None:
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._init_sync)

    def _init_sync(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = self._get_db()
        db.execute("PRAGMA journal_mode=WAL")
        db.execute("""
            CREATE TABLE IF NOT EXISTS recurring_jobs (
                key        TEXT PRIMARY KEY,
                recurrence TEXT NOT NULL,
                payload    TEXT NOT NULL,
                next_fire  INTEGER NOT NULL DEFAULT 0,
                last_fire  INTEGER NOT NULL DEFAULT 0,
                created_at INTEGER NOT NULL
            )
        """)
        db.commit()
        logger.debug(f"JobStore initialised at {self._db_path}")

    def _get_db(self) -> sqlite3.Connection:
        if self._db is None:
            db = sqlite3.connect(str(self._db_path), check_same_thread=False)
            db.row_factory = sqlite3.Row
            self._db = db
        return self._db

    # ── CRUD ─────────────────────────────────────────────────────────────────

    async def save(self, job: RecurringJob) -> None:
        """Insert or replace the job stored under job.key."""
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._save_sync, job)

    def _save_sync(self, job: RecurringJob) -> None:
        db = self._get_db()
        db.execute(
            """
            INSERT INTO recurring_jobs (key, recurrence, payload, next_fire, last_fire, created_at)
            VALUES (:key, :recurrence, :payload, :next_fire, :last_fire, :created_at)
            ON CONFLICT(key) DO UPDATE SET
                recurrence=excluded.recurrence, payload=excluded.payload,
                next_fire=excluded.next_fire
            """,
            {**job.to_dict(), "payload": json.dumps(job.payload)},
        )
        db.commit()

    async def get(self, key: str) -> RecurringJob | None:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._get_sync, key)

    def _get_sync(self, key: str) -> RecurringJob | None:
        db = self._get_db()
        row = db.execute("SELECT * FROM recurring_jobs WHERE key=?", (key,)).fetchone()
        return self._row_to_job(row) if row else None

    async def get_all(self) -> list[RecurringJob]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._get_all_sync)

    def _get_all_sync(self) -> list[RecurringJob]:
        db = self._get_db()
        rows = db.execute("SELECT * FROM recurring_jobs ORDER BY created_at ASC, key ASC").fetchall()
        return [self._row_to_job(r) for r in rows]

    async def keys(self) -> list[str]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._keys_sync)

    def _keys_sync(self) -> list[str]:
        db = self._get_db()
        return [r["key"] for r in db.execute("SELECT key FROM recurring_jobs ORDER BY key").fetchall()]

    async def get_due(self, now: float | None = None) -> list[RecurringJob]:
        """Return jobs whose next_fire <= now."""
        t = int(now or time.time())
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._get_due_sync, t)

    def _get_due_sync(self, now: int) -> list[RecurringJob]:
        db = self._get_db()
        rows = db.execute(
            "SELECT * FROM recurring_jobs WHERE next_fire > 0 AND next_fire <= ?",
            (now,),
        ).fetchall()
        return [self._row_to_job(r) for r in rows]

    async def update_after_fire(
        self, key: str, recurrence: str, next_fire: int, last_fire: int | None = None
    ) -> bool:
        """
        Advance a job after it fires.

        Only touches the row if it still carries the same recurrence, so a
        job removed or re-registered meanwhile is neither resurrected nor
        clobbered. Returns True if a row was updated.
        """
        t = int(time.time()) if last_fire is None else last_fire
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, self._update_after_fire_sync, key, recurrence, next_fire, t
        )

    def _update_after_fire_sync(
        self, key: str, recurrence: str, next_fire: int, last_fire: int
    ) -> bool:
        db = self._get_db()
        cur = db.execute(
            "UPDATE recurring_jobs SET next_fire=?, last_fire=? WHERE key=? AND recurrence=?",
            (next_fire, last_fire, key, recurrence),
        )
        db.commit()
        return cur.rowcount > 0

    async def delete(self, key: str) -> bool:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._delete_sync, key)

    def _delete_sync(self, key: str) -> bool:
        db = self._get_db()
        cur = db.execute("DELETE FROM recurring_jobs WHERE key=?", (key,))
        db.commit()
        return cur.rowcount > 0

    async def close(self) -> None:
        if self._db:
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(None, self._db.close)
            self._db = None

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _row_to_job(self, row: sqlite3.Row) -> RecurringJob:
        d = dict(row)
        d["payload"] = json.loads(d["payload"])
        return RecurringJob.from_dict(d)
