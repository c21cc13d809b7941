"""
Ritual Configuration — loads and merges config from multiple sources.

Precedence (highest to lowest):
1. Explicit overrides (passed in code)
2. Environment variables (RITUAL_*, plus the provider key variables)
3. Project config (./ritual.toml)
4. User config (~/.ritual/config.toml)
5. Defaults (hardcoded)

Environment variable mapping:
    RITUAL_HOST → server.host
    RITUAL_PORT / PORT → server.port
    RITUAL_DB_PATH → storage.db_path
    RITUAL_DEFAULT_MODEL → llm.default_model
    OPENAI_API_KEY → llm.openai_api_key
    ANTHROPIC_API_KEY → llm.anthropic_api_key
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from ritual.core.errors import ConfigError

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Config Sub-Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ServerConfig(BaseModel):
    """HTTP API configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


class StorageConfig(BaseModel):
    """Task and execution log database."""

    db_path: str = "~/.ritual/ritual.db"


class SchedulerConfig(BaseModel):
    """Recurring job backend configuration."""

    enabled: bool = True
    db_path: str = "~/.ritual/jobs.db"
    poll_interval: int = 30  # seconds
    concurrency: int = 5  # simultaneous executions
    resync_on_start: bool = True


class LLMConfig(BaseModel):
    """AI provider configuration."""

    default_model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 1000
    temperature: float = 0.7
    timeout: float = 120.0
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    anthropic_base_url: str = "https://api.anthropic.com"
    ollama_base_url: str = "http://localhost:11434"


class LoggingConfig(BaseModel):
    """Log destinations."""

    dir: str = "~/.ritual/logs"
    console_level: str = "WARNING"

    @property
    def console_level_value(self) -> int:
        return logging.getLevelName(self.console_level.upper())  # type: ignore[no-any-return]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Main Config
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class RitualConfig(BaseModel):
    """Root configuration for Ritual."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @staticmethod
    def load(
        overrides: dict[str, Any] | None = None,
        project_path: Path | None = None,
        user_path: Path | None = None,
    ) -> RitualConfig:
        """
        Load configuration from all sources and merge.

        Precedence: overrides > env vars > project toml > user toml > defaults
        """
        merged: dict[str, Any] = {}

        # Layer 1: User config (~/.ritual/config.toml)
        user_config_path = user_path or get_ritual_home() / "config.toml"
        if user_config_path.exists():
            _deep_merge(merged, _load_toml(user_config_path))

        # Layer 2: Project config (./ritual.toml)
        project_config_path = project_path or Path.cwd() / "ritual.toml"
        if project_config_path.exists():
            _deep_merge(merged, _load_toml(project_config_path))

        # Layer 3: Environment variables
        _deep_merge(merged, _load_from_env())

        # Layer 4: Explicit overrides
        if overrides:
            _deep_merge(merged, overrides)

        _substitute_env_vars(merged)

        try:
            return RitualConfig(**merged)
        except Exception as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def get_db_path(self) -> Path:
        return Path(self.storage.db_path).expanduser()

    def get_jobs_db_path(self) -> Path:
        return Path(self.scheduler.db_path).expanduser()

    def get_log_dir(self) -> Path:
        return Path(self.logging.dir).expanduser()


def get_ritual_home() -> Path:
    """Get the Ritual home directory (~/.ritual)."""
    return Path.home() / ".ritual"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Internal Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file."""
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


# Order matters: later entries win, so RITUAL_PORT beats the bare PORT.
_ENV_MAPPING: list[tuple[str, tuple[str, str], bool]] = [
    ("PORT", ("server", "port"), True),
    ("RITUAL_HOST", ("server", "host"), True),
    ("RITUAL_PORT", ("server", "port"), True),
    ("RITUAL_DB_PATH", ("storage", "db_path"), False),
    ("RITUAL_JOBS_DB_PATH", ("scheduler", "db_path"), False),
    ("RITUAL_POLL_INTERVAL", ("scheduler", "poll_interval"), True),
    ("RITUAL_CONCURRENCY", ("scheduler", "concurrency"), True),
    ("RITUAL_SCHEDULER_ENABLED", ("scheduler", "enabled"), True),
    ("RITUAL_DEFAULT_MODEL", ("llm", "default_model"), False),
    ("OPENAI_API_KEY", ("llm", "openai_api_key"), False),
    ("ANTHROPIC_API_KEY", ("llm", "anthropic_api_key"), False),
    ("OLLAMA_BASE_URL", ("llm", "ollama_base_url"), False),
    ("RITUAL_LOG_LEVEL", ("logging", "console_level"), False),
]


def _load_from_env() -> dict[str, Any]:
    """Load configuration from environment variables."""
    result: dict[str, Any] = {}

    for env_var, (section, key), convert in _ENV_MAPPING:
        value = os.environ.get(env_var)
        if value is None:
            continue
        result.setdefault(section, {})
        # Paths and API keys stay strings even when they look numeric
        result[section][key] = _convert_value(value) if convert else value

    return result


def _convert_value(value: str) -> Any:
    """Convert string value to appropriate type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _deep_merge(base: dict, override: dict) -> None:
    """Deep merge override into base (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _substitute(value: str) -> str:
    for var_name in _ENV_PATTERN.findall(value):
        value = value.replace(f"${{{var_name}}}", os.environ.get(var_name, ""))
    return value


def _substitute_env_vars(data: dict) -> None:
    """Recursively substitute ${ENV_VAR} patterns in string values."""
    for key, value in data.items():
        if isinstance(value, dict):
            _substitute_env_vars(value)
        elif isinstance(value, str):
            data[key] = _substitute(value)
        elif isinstance(value, list):
            data[key] = [_substitute(v) if isinstance(v, str) else v for v in value]
