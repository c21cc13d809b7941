"""
Recurring job backend interface.

The synchronizer never talks to a concrete scheduler. It only needs four
operations: ensure a recurring job exists, remove one, list what is
registered, and report reachability.

Implementations:
    LocalBackend    — SQLite-persisted jobs fired by an asyncio polling loop
    InMemoryBackend — for testing and offline use
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable


@dataclass(frozen=True)
class JobPayload:
    """What a recurring job hands to the firing path."""

    task_id: str
    prompt: str
    model: str
    output_channels: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "prompt": self.prompt,
            "model": self.model,
            "output_channels": list(self.output_channels),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> JobPayload:
        return cls(
            task_id=d["task_id"],
            prompt=d.get("prompt", ""),
            model=d.get("model", ""),
            output_channels=tuple(d.get("output_channels", ())),
        )


@dataclass(frozen=True)
class JobHandle:
    """Reference to a registered recurring job."""

    key: str
    recurrence: str
    next_fire: datetime | None = field(default=None, compare=False)


# Called by a backend each time a job fires
FireCallback = Callable[[JobPayload], Awaitable[Any]]


class RecurringJobBackend(ABC):
    """
    Abstract base class for recurring-job backends.

    ensure_recurring and remove_recurring must be idempotent: applying the
    same call twice leaves the live job set as applying it once.
    """

    @abstractmethod
    async def ensure_recurring(
        self, key: str, recurrence: str, payload: JobPayload
    ) -> JobHandle:
        """
        Register (or replace) the recurring job stored under key.

        Raises:
            BackendUnavailable: backend cannot be reached
            InvalidRecurrence: the backend rejects the expression
        """
        ...

    @abstractmethod
    async def remove_recurring(self, key: str) -> bool:
        """Remove the job under key. Returns True if something was removed."""
        ...

    @abstractmethod
    async def list_recurring_keys(self) -> list[str]:
        """Keys of every live recurring job."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the backend is reachable right now. Never raises."""
        ...

    async def close(self) -> None:
        """Release resources. Optional."""
        return None
