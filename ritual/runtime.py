"""
Runtime — the composition root.

Builds every long-lived collaborator once from a RitualConfig and wires
the firing path:

    LocalBackend ──fires──▶ TaskExecutor.run ──▶ ModelRouter ──▶ provider
         ▲                        │
    TaskService               TaskStore

The HTTP app and the CLI both start from here.
"""

from __future__ import annotations

import logging

from ritual.backend.local import LocalBackend
from ritual.backend.store import JobStore
from ritual.core.config import RitualConfig
from ritual.execution.executor import TaskExecutor
from ritual.llm.router import ModelRouter
from ritual.tasks.service import ResyncReport, TaskService
from ritual.tasks.store import TaskStore

logger = logging.getLogger(__name__)


class Runtime:
    """
    Usage:
        runtime = Runtime.build(RitualConfig.load())
        await runtime.start()
        ...
        await runtime.stop()
    """

    def __init__(
        self,
        config: RitualConfig,
        store: TaskStore,
        backend: LocalBackend,
        router: ModelRouter,
    ) -> None:
        self.config = config
        self.store = store
        self.backend = backend
        self.router = router
        self.executor = TaskExecutor(store, router)
        self.service = TaskService(store, backend, config)
        backend.set_fire_callback(self.executor.run)
        self._started = False

    @classmethod
    def build(cls, config: RitualConfig | None = None, router: ModelRouter | None = None) -> Runtime:
        config = config or RitualConfig.load()
        store = TaskStore(config.get_db_path())
        backend = LocalBackend(
            JobStore(config.get_jobs_db_path()),
            poll_interval=config.scheduler.poll_interval,
            concurrency=config.scheduler.concurrency,
        )
        return cls(config, store, backend, router or ModelRouter(config.llm))

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> ResyncReport | None:
        """
        Open the task database and, when enabled, start the backend.
        Returns the startup resync report if one ran.
        """
        await self.store.initialize()
        self._started = True

        if not self.config.scheduler.enabled:
            logger.warning("Scheduler disabled: tasks are saved but never fire")
            return None

        await self.backend.start()
        if not self.config.scheduler.resync_on_start:
            return None
        return await self.service.resync()

    async def stop(self) -> None:
        await self.backend.close()
        await self.router.close()
        await self.store.close()
        self._started = False
        logger.info("Runtime stopped")
