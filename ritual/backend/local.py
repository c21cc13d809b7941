"""
LocalBackend — the in-process recurring job backend.

Design:
- Registrations live in a JobStore (SQLite), so they survive restarts
- A background asyncio task polls the store every poll_interval seconds
- Each due job has its next_fire advanced first, then its payload is handed
  to the fire callback (TaskExecutor.run in production)
- At most `concurrency` callbacks run at once; a job still executing is not
  dispatched again
- No missed-run replay: on start, next_fire values in the past are pushed
  forward to the next occurrence from now

While stopped the backend reports itself unavailable, and every contract
call raises BackendUnavailable. The task service then runs in degraded mode.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from datetime import datetime, timezone

from ritual.backend.base import FireCallback, JobHandle, JobPayload, RecurringJobBackend
from ritual.backend.job import RecurringJob
from ritual.backend.store import JobStore
from ritual.core.errors import BackendUnavailable, InvalidRecurrence
from ritual.schedule.parser import next_occurrence, validate_recurrence

logger = logging.getLogger(__name__)

POLL_INTERVAL = 30   # seconds between due-job checks
CONCURRENCY = 5      # simultaneous executions


def _next_fire_ts(recurrence: str, after: float) -> int:
    after_dt = datetime.fromtimestamp(after, tz=timezone.utc)
    return int(next_occurrence(recurrence, after_dt).timestamp())


class LocalBackend(RecurringJobBackend):
    """
    Polling scheduler over a JobStore.

    Usage:
        backend = LocalBackend(JobStore(path), fire=executor.run)
        await backend.start()
        await backend.ensure_recurring("task:abc", "0 8 * * *", payload)
        ...
        await backend.stop()
    """

    def __init__(
        self,
        store: JobStore,
        fire: FireCallback | None = None,
        poll_interval: float = POLL_INTERVAL,
        concurrency: int = CONCURRENCY,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._store = store
        self._fire = fire
        self._poll_interval = poll_interval
        self._semaphore = asyncio.Semaphore(concurrency)
        self._task: asyncio.Task | None = None
        self._running = False
        self._in_flight: set[str] = set()  # keys currently executing
        self._dispatched: set[asyncio.Task] = set()

    def set_fire_callback(self, fire: FireCallback) -> None:
        """Inject the firing path. Called from the runtime after the executor exists."""
        self._fire = fire

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Open the store, fix up stale next_fire values, and start polling."""
        await self._store.initialize()
        await self._compute_initial_next_fires()
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="ritual-backend")
        logger.info("LocalBackend started")

    async def stop(self) -> None:
        """Stop polling. In-flight executions are allowed to finish."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._dispatched:
            await asyncio.gather(*self._dispatched, return_exceptions=True)
        logger.info("LocalBackend stopped")

    async def close(self) -> None:
        await self.stop()
        await self._store.close()

    # ── RecurringJobBackend ───────────────────────────────────────────────────

    def is_available(self) -> bool:
        return self._running and self._store.is_open

    def _require(self, operation: str) -> None:
        if not self.is_available():
            raise BackendUnavailable("Local backend is not running", operation=operation)

    async def ensure_recurring(
        self, key: str, recurrence: str, payload: JobPayload
    ) -> JobHandle:
        self._require("ensure")
        if not validate_recurrence(recurrence):
            raise InvalidRecurrence(recurrence)

        next_fire = _next_fire_ts(recurrence, time.time())
        job = RecurringJob(
            key=key,
            recurrence=recurrence,
            payload=payload.to_dict(),
            next_fire=next_fire,
        )
        try:
            await self._store.save(job)
        except sqlite3.Error as e:
            raise BackendUnavailable(f"Failed to register job {key!r}: {e}", operation="ensure") from e

        logger.debug(f"Recurring job {key!r} registered ({recurrence}), next fire {next_fire}")
        return JobHandle(
            key=key,
            recurrence=recurrence,
            next_fire=datetime.fromtimestamp(next_fire, tz=timezone.utc),
        )

    async def remove_recurring(self, key: str) -> bool:
        self._require("remove")
        try:
            removed = await self._store.delete(key)
        except sqlite3.Error as e:
            raise BackendUnavailable(f"Failed to remove job {key!r}: {e}", operation="remove") from e
        if removed:
            logger.debug(f"Recurring job {key!r} removed")
        return removed

    async def list_recurring_keys(self) -> list[str]:
        self._require("list")
        try:
            return await self._store.keys()
        except sqlite3.Error as e:
            raise BackendUnavailable(f"Failed to list jobs: {e}", operation="list") from e

    # ── Internal loop ─────────────────────────────────────────────────────────

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.warning(f"Backend tick error (non-fatal): {e}")
            await asyncio.sleep(self._poll_interval)

    async def tick(self, now: float | None = None) -> list[str]:
        """Dispatch every due job. Returns the keys dispatched."""
        t = now or time.time()
        dispatched: list[str] = []
        for job in await self._store.get_due(now=t):
            if job.key in self._in_flight:
                logger.debug(f"Job {job.key!r} still executing, skipping tick")
                continue
            # Advance before dispatch so the next tick does not pick it up again
            next_fire = _next_fire_ts(job.recurrence, t)
            if not await self._store.update_after_fire(job.key, job.recurrence, next_fire, int(t)):
                logger.debug(f"Job {job.key!r} removed or replaced before dispatch, skipping")
                continue

            self._in_flight.add(job.key)
            task = asyncio.create_task(self._fire_job(job), name=f"fire:{job.key}")
            self._dispatched.add(task)
            task.add_done_callback(self._dispatched.discard)
            dispatched.append(job.key)
        return dispatched

    async def _fire_job(self, job: RecurringJob) -> None:
        try:
            async with self._semaphore:
                if self._fire is None:
                    logger.warning(f"Job {job.key!r} fired with no callback registered")
                    return
                logger.info(f"Firing recurring job {job.key!r}")
                await self._fire(job.job_payload)
        except Exception as e:
            logger.warning(f"Job {job.key!r} execution error: {e}")
        finally:
            self._in_flight.discard(job.key)

    # ── Startup helper ────────────────────────────────────────────────────────

    async def _compute_initial_next_fires(self) -> None:
        """
        Populate next_fire for jobs that have none and push past-due jobs
        forward to the next occurrence from now (missed runs are skipped).
        """
        now = time.time()
        for job in await self._store.get_all():
            if job.next_fire == 0 or job.next_fire < now:
                try:
                    next_fire = _next_fire_ts(job.recurrence, now)
                except InvalidRecurrence as e:
                    logger.warning(f"Job {job.key!r} has an unusable recurrence, removing: {e}")
                    await self._store.delete(job.key)
                    continue
                await self._store.update_after_fire(
                    job.key, job.recurrence, next_fire, job.last_fire
                )
                logger.debug(f"Job {job.key!r}: next_fire initialised to {next_fire}")
