"""
RecurringJob — a registration held by the local backend.

The key is chosen by the caller (the synchronizer derives it from the task
id). The payload is stored as a plain dict so it serializes cleanly to
SQLite JSON.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from ritual.backend.base import JobPayload


@dataclass
class RecurringJob:
    """A recurring job registration."""

    key: str             # unique, e.g. "task:3f2a..."
    recurrence: str      # 5-field cron expression
    payload: dict        # serialised JobPayload

    next_fire: int = 0   # unix timestamp, 0 means "compute on start"
    last_fire: int = 0   # unix timestamp, 0 means never fired
    created_at: int = field(default_factory=lambda: int(time.time()))

    @property
    def job_payload(self) -> JobPayload:
        return JobPayload.from_dict(self.payload)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "recurrence": self.recurrence,
            "payload": self.payload,
            "next_fire": self.next_fire,
            "last_fire": self.last_fire,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RecurringJob":
        return cls(
            key=d["key"],
            recurrence=d["recurrence"],
            payload=d["payload"],
            next_fire=d["next_fire"],
            last_fire=d["last_fire"],
            created_at=d["created_at"],
        )
