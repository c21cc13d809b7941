"""
Ritual CLI entry point.

Commands:
    ritual serve   — Run the HTTP API and the scheduler
    ritual parse   — Translate a schedule phrase
    ritual next    — Upcoming occurrences of a recurrence expression
    ritual tasks   — List stored tasks
    ritual logs    — Recent executions
    ritual seed    — Insert sample tasks
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ritual.core.config import RitualConfig
from ritual.core.errors import ConfigError, ScheduleError

app = typer.Typer(
    name="ritual",
    help="Ritual — recurring AI tasks on a schedule.",
    add_completion=False,
)

console = Console()

SAMPLE_TASKS = [
    {
        "name": "Daily Task Summary",
        "status": "ACTIVE",
        "prompt": "Summarize today's Things tasks in iambic pentameter",
        "schedule": "daily at 8:00 AM",
        "output": "SMS to +1234567890",
        "model": "claude-3-5-sonnet-20241022",
    },
    {
        "name": "Team Commit Summary",
        "status": "ACTIVE",
        "prompt": "Send my team a summary of today's commits",
        "schedule": "daily at 6:00 PM",
        "output": "Slack #dev-team",
        "model": "claude-3-5-haiku-20241022",
    },
    {
        "name": "Weekly Report",
        "status": "PAUSED",
        "prompt": "Generate a weekly productivity report based on my calendar and tasks",
        "schedule": "every friday at 5:00 PM",
        "output": "Email to me@example.com",
        "model": "claude-3-5-sonnet-20241022",
    },
]


def _load_config() -> RitualConfig:
    try:
        return RitualConfig.load()
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


def _fmt(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


@app.command()
def version() -> None:
    """Show Ritual version."""
    from ritual import __version__
    console.print(f"Ritual v{__version__}")


@app.command()
def parse(
    phrase: str = typer.Argument(..., help='Schedule phrase, e.g. "daily at 8:00 AM"'),
) -> None:
    """Translate a schedule phrase into a recurrence expression."""
    from ritual.schedule.parser import next_occurrence, parse as parse_phrase

    try:
        parsed = parse_phrase(phrase)
    except ScheduleError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]Recurrence:[/bold]  {parsed.recurrence}")
    console.print(f"[bold]Description:[/bold] {parsed.description}")
    next_run = next_occurrence(parsed.recurrence, datetime.now(timezone.utc))
    console.print(f"[bold]Next run:[/bold]    {_fmt(next_run)}")


@app.command("next")
def next_runs(
    recurrence: str = typer.Argument(..., help='Recurrence expression, e.g. "0 8 * * *"'),
    count: int = typer.Option(5, "--count", "-c", min=1, help="Number of occurrences"),
) -> None:
    """Show upcoming occurrences of a recurrence expression."""
    from ritual.schedule.parser import next_occurrence

    current = datetime.now(timezone.utc)
    try:
        for _ in range(count):
            current = next_occurrence(recurrence, current)
            console.print(_fmt(current))
    except ScheduleError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option(None, "--host", "-h", help="Bind address (default from config)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (default from config)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Run the HTTP API and the scheduler."""
    import uvicorn

    from ritual.api.app import create_app
    from ritual.core.logs import setup_logging
    from ritual.runtime import Runtime

    config = _load_config()
    setup_logging(
        log_dir=config.get_log_dir(),
        console_level=logging.DEBUG if verbose else config.logging.console_level_value,
    )

    runtime = Runtime.build(config)
    api = create_app(runtime.service, runtime.executor, runtime=runtime)

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    console.print(f"[bold green]Ritual[/bold green] listening on {bind_host}:{bind_port}")
    uvicorn.run(api, host=bind_host, port=bind_port, log_level="debug" if verbose else "info")


@app.command()
def tasks() -> None:
    """List stored tasks."""
    asyncio.run(_show_tasks(_load_config()))


async def _show_tasks(config: RitualConfig) -> None:
    from ritual.tasks.store import TaskStore

    store = TaskStore(config.get_db_path())
    try:
        stored = await store.list_tasks()
    finally:
        await store.close()

    if not stored:
        console.print("[dim]No tasks yet.[/dim]")
        return

    table = Table(title="Tasks")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Schedule")
    table.add_column("Model")
    table.add_column("Next run")
    table.add_column("Last run")
    for task in stored:
        status_style = "green" if task.is_active else "yellow"
        table.add_row(
            task.id,
            task.name,
            f"[{status_style}]{task.status.value}[/{status_style}]",
            task.schedule,
            task.model,
            _fmt(task.next_run),
            _fmt(task.last_run),
        )
    console.print(table)


@app.command()
def logs(
    task: str = typer.Option(None, "--task", "-t", help="Only this task's executions"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of entries"),
) -> None:
    """Show recent executions."""
    asyncio.run(_show_logs(_load_config(), task, limit))


async def _show_logs(config: RitualConfig, task_id: str | None, limit: int) -> None:
    from ritual.tasks.store import TaskStore

    store = TaskStore(config.get_db_path())
    try:
        if task_id:
            entries = await store.list_task_execution_logs(task_id, limit=limit)
        else:
            entries = await store.list_execution_logs(limit=limit)
    finally:
        await store.close()

    if not entries:
        console.print("[dim]No executions recorded.[/dim]")
        return

    for entry in entries:
        colour = "green" if entry.succeeded else "red"
        console.print(
            f"[dim]{_fmt(entry.executed_at)}[/dim] "
            f"[{colour}]{entry.status.value}[/{colour}] "
            f"[bold]{entry.task_name}[/bold] [dim]({entry.duration} ms)[/dim]"
        )
        console.print(entry.output if entry.succeeded else f"[red]{entry.error}[/red]")
        console.print()


@app.command()
def seed() -> None:
    """Insert the sample tasks."""
    asyncio.run(_seed(_load_config()))


async def _seed(config: RitualConfig) -> None:
    from ritual.runtime import Runtime

    runtime = Runtime.build(config)
    await runtime.start()
    try:
        for fields in SAMPLE_TASKS:
            result = await runtime.service.create_task(**fields)
            note = " [yellow](not scheduled)[/yellow]" if result.degraded else ""
            console.print(f"Created task: [bold]{result.task.name}[/bold]{note}")
    finally:
        await runtime.stop()
    console.print("[green]Database seeded.[/green]")


if __name__ == "__main__":
    app()
