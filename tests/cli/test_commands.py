"""Tests for CLI commands."""

import pytest
from rich.console import Console
from typer.testing import CliRunner

from ritual.cli.main import SAMPLE_TASKS, app


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Point every database at tmp_path and keep the scheduler loop idle."""
    monkeypatch.setenv("RITUAL_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("RITUAL_JOBS_DB_PATH", str(tmp_path / "cli-jobs.db"))
    monkeypatch.setenv("RITUAL_POLL_INTERVAL", "3600")
    return tmp_path


def test_version(runner):
    """ritual version shows version."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.stdout


def test_parse(runner):
    result = runner.invoke(app, ["parse", "every Monday at 9:00 AM"])
    assert result.exit_code == 0
    assert "0 9 * * 1" in result.stdout
    assert "Every monday at 09:00" in result.stdout


def test_parse_rejects_gibberish(runner):
    result = runner.invoke(app, ["parse", "gibberish"])
    assert result.exit_code == 1
    assert "Unable to parse schedule" in result.stdout


def test_next(runner):
    result = runner.invoke(app, ["next", "0 8 * * *", "--count", "3"])
    assert result.exit_code == 0
    lines = [line for line in result.stdout.splitlines() if line.strip()]
    assert len(lines) == 3
    assert all("08:00" in line for line in lines)


def test_next_invalid(runner):
    result = runner.invoke(app, ["next", "not cron"])
    assert result.exit_code == 1


def test_tasks_empty(runner, cli_env):
    result = runner.invoke(app, ["tasks"])
    assert result.exit_code == 0
    assert "No tasks yet" in result.stdout


def test_seed_then_list(runner, cli_env, monkeypatch):
    monkeypatch.setattr("ritual.cli.main.console", Console(width=250))
    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0, result.stdout
    for sample in SAMPLE_TASKS:
        assert sample["name"] in result.stdout
    assert "not scheduled" not in result.stdout

    listed = runner.invoke(app, ["tasks"])
    assert listed.exit_code == 0
    assert "Weekly Report" in listed.stdout
    assert "PAUSED" in listed.stdout


def test_seed_without_scheduler_is_degraded(runner, cli_env, monkeypatch):
    monkeypatch.setenv("RITUAL_SCHEDULER_ENABLED", "false")
    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0, result.stdout
    assert "not scheduled" in result.stdout


def test_logs_empty(runner, cli_env):
    result = runner.invoke(app, ["logs"])
    assert result.exit_code == 0
    assert "No executions recorded" in result.stdout


def test_bad_config_file(runner, cli_env):
    (cli_env / "ritual.toml").write_text("[server\nport = ")
    result = runner.invoke(app, ["tasks"])
    assert result.exit_code == 1
    assert "Failed to load config" in result.stdout
