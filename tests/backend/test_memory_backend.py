"""Tests for ritual/backend/memory.py"""
from __future__ import annotations

import pytest

from ritual.backend.base import JobPayload
from ritual.backend.memory import InMemoryBackend
from ritual.core.errors import BackendUnavailable, InvalidRecurrence


PAYLOAD = JobPayload(task_id="t1", prompt="hello", model="gpt-4o", output_channels=("SMS",))


@pytest.mark.asyncio
class TestInMemoryBackend:
    async def test_ensure_registers_and_returns_handle(self):
        backend = InMemoryBackend()
        handle = await backend.ensure_recurring("task:t1", "0 8 * * *", PAYLOAD)
        assert handle.key == "task:t1"
        assert handle.recurrence == "0 8 * * *"
        assert handle.next_fire is not None
        assert backend.jobs["task:t1"] == ("0 8 * * *", PAYLOAD)

    async def test_ensure_is_idempotent(self):
        backend = InMemoryBackend()
        await backend.ensure_recurring("task:t1", "0 8 * * *", PAYLOAD)
        await backend.ensure_recurring("task:t1", "0 8 * * *", PAYLOAD)
        assert await backend.list_recurring_keys() == ["task:t1"]

    async def test_remove_reports_whether_anything_was_removed(self):
        backend = InMemoryBackend()
        await backend.ensure_recurring("task:t1", "0 8 * * *", PAYLOAD)
        assert await backend.remove_recurring("task:t1") is True
        assert await backend.remove_recurring("task:t1") is False

    async def test_rejects_invalid_recurrence(self):
        backend = InMemoryBackend()
        with pytest.raises(InvalidRecurrence):
            await backend.ensure_recurring("task:t1", "whenever", PAYLOAD)
        assert backend.jobs == {}

    async def test_unavailable_raises_for_every_call(self):
        backend = InMemoryBackend()
        backend.available = False
        assert backend.is_available() is False
        with pytest.raises(BackendUnavailable):
            await backend.ensure_recurring("task:t1", "0 8 * * *", PAYLOAD)
        with pytest.raises(BackendUnavailable):
            await backend.remove_recurring("task:t1")
        with pytest.raises(BackendUnavailable):
            await backend.list_recurring_keys()
        assert backend.calls == []

    async def test_fire_returns_payload(self):
        backend = InMemoryBackend()
        await backend.ensure_recurring("task:t1", "0 8 * * *", PAYLOAD)
        assert await backend.fire("task:t1") == PAYLOAD

    async def test_reset(self):
        backend = InMemoryBackend()
        await backend.ensure_recurring("task:t1", "0 8 * * *", PAYLOAD)
        backend.available = False
        backend.reset()
        assert backend.jobs == {}
        assert backend.calls == []
        assert backend.is_available()


def test_payload_round_trips_through_dict():
    assert JobPayload.from_dict(PAYLOAD.to_dict()) == PAYLOAD
