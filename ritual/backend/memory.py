"""
In-memory recurring job backend — for testing.

Keeps live jobs in a dict and journals every call so tests can assert on
the exact sequence of backend operations. Flip `available` to simulate an
unreachable backend.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ritual.backend.base import JobHandle, JobPayload, RecurringJobBackend
from ritual.core.errors import BackendUnavailable, InvalidRecurrence
from ritual.schedule.parser import next_occurrence, validate_recurrence


class InMemoryBackend(RecurringJobBackend):
    """
    Dict-backed backend.

    Usage:
        backend = InMemoryBackend()
        await backend.ensure_recurring("task:1", "0 8 * * *", payload)
        backend.jobs["task:1"]        # (recurrence, payload)
        backend.calls                 # [("ensure", "task:1")]

        backend.available = False     # every call now raises BackendUnavailable
    """

    def __init__(self) -> None:
        self.jobs: dict[str, tuple[str, JobPayload]] = {}
        self.calls: list[tuple[str, str]] = []
        self.available = True

    def _check(self, operation: str) -> None:
        if not self.available:
            raise BackendUnavailable("In-memory backend marked unavailable", operation=operation)

    async def ensure_recurring(
        self, key: str, recurrence: str, payload: JobPayload
    ) -> JobHandle:
        self._check("ensure")
        if not validate_recurrence(recurrence):
            raise InvalidRecurrence(recurrence)
        self.calls.append(("ensure", key))
        self.jobs[key] = (recurrence, payload)
        return JobHandle(
            key=key,
            recurrence=recurrence,
            next_fire=next_occurrence(recurrence, datetime.now(timezone.utc)),
        )

    async def remove_recurring(self, key: str) -> bool:
        self._check("remove")
        self.calls.append(("remove", key))
        return self.jobs.pop(key, None) is not None

    async def list_recurring_keys(self) -> list[str]:
        self._check("list")
        self.calls.append(("list", ""))
        return sorted(self.jobs)

    def is_available(self) -> bool:
        return self.available

    async def fire(self, key: str) -> JobPayload:
        """Return the payload of a live job, as the backend would dispatch it."""
        return self.jobs[key][1]

    def reset(self) -> None:
        """Clear jobs and the call journal."""
        self.jobs.clear()
        self.calls.clear()
        self.available = True
