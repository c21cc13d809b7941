"""Shared test fixtures for Ritual."""

import pytest
import pytest_asyncio

from ritual.backend.memory import InMemoryBackend
from ritual.core.config import RitualConfig
from ritual.execution.executor import TaskExecutor
from ritual.llm.mock import MockLLMProvider
from ritual.llm.router import ModelRouter
from ritual.tasks.service import TaskService
from ritual.tasks.store import TaskStore
from ritual.tasks.task import Task, TaskStatus


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep the user's config files and provider keys out of every test."""
    for var in (
        "PORT",
        "RITUAL_HOST",
        "RITUAL_PORT",
        "RITUAL_DB_PATH",
        "RITUAL_JOBS_DB_PATH",
        "RITUAL_POLL_INTERVAL",
        "RITUAL_CONCURRENCY",
        "RITUAL_SCHEDULER_ENABLED",
        "RITUAL_DEFAULT_MODEL",
        "RITUAL_LOG_LEVEL",
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "OLLAMA_BASE_URL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config(tmp_path):
    """A default config with every path under tmp_path."""
    return RitualConfig(
        storage={"db_path": str(tmp_path / "ritual.db")},
        scheduler={"db_path": str(tmp_path / "jobs.db"), "poll_interval": 1},
        logging={"dir": str(tmp_path / "logs")},
    )


@pytest.fixture
def backend():
    """A fresh in-memory recurring job backend."""
    return InMemoryBackend()


@pytest.fixture
def mock_llm():
    """Create a mock LLM provider."""
    return MockLLMProvider()


@pytest.fixture
def router(config, mock_llm):
    """A router whose default model is served by the mock provider."""
    return ModelRouter(config.llm, providers={config.llm.default_model: mock_llm})


@pytest_asyncio.fixture
async def store(tmp_path):
    """An initialized task store on a temporary database."""
    task_store = TaskStore(tmp_path / "tasks.db")
    await task_store.initialize()
    yield task_store
    await task_store.close()


@pytest.fixture
def service(store, backend, config):
    return TaskService(store, backend, config)


@pytest.fixture
def executor(store, router):
    return TaskExecutor(store, router)


def make_task(**overrides) -> Task:
    """A valid ACTIVE task; keyword arguments override any field."""
    fields = {
        "name": "Morning brief",
        "prompt": "Summarize my calendar",
        "schedule": "daily at 8:00 AM",
        "model": "claude-3-5-sonnet-20241022",
        "output": "Slack #me",
        "status": TaskStatus.ACTIVE,
    }
    fields.update(overrides)
    return Task(**fields)


@pytest.fixture
def task_factory():
    return make_task
