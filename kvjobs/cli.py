"""
kvjobs operator CLI.

Works on the filesystem store under ``KVJOBS_STORAGE_DIR`` (default
``.kvjobs``). Runs are serialized with a lock file in the same directory, so
a cron-driven ``kvjobs run`` and a long-lived ``kvjobs serve`` never overlap.

Usage:
    kvjobs depth
    kvjobs dead-letters
    kvjobs replay failed_job_00000001700000000000_000003_export
    kvjobs run --handlers mybot.wiring:build_handlers
    kvjobs serve --handlers mybot.wiring:build_handlers

The ``--handlers`` factory is called with the Settings object and must return
a dispatcher (normally ``kvjobs.jobs.dispatch.JobHandlers``). If it exposes a
``notifier`` attribute, dead-letter alerts go through it.
"""

from __future__ import annotations

import asyncio
import importlib
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kvjobs.adapters.lock.filesystem import FileLock
from kvjobs.adapters.scheduler.apscheduler_wakeups import APSchedulerWakeups
from kvjobs.adapters.scheduler.memory import InMemoryScheduler
from kvjobs.adapters.storage.filesystem import FileSystemKeyValueStorage
from kvjobs.config import Settings
from kvjobs.core.job_store import JobStore
from kvjobs.core.processor import Dispatcher, JobProcessor, RunReport
from kvjobs.core.queue import PROCESS_QUEUE_HANDLER, JobQueue
from kvjobs.domain.errors import DeadLetterNotFoundError
from kvjobs.logs import setup_logging
from kvjobs.ports.scheduler import WakeupSchedulerPort

app = typer.Typer(
    help="Inspect and drive the kvjobs background queue",
    add_completion=False,
)
console = Console()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _store(settings: Settings) -> JobStore:
    return JobStore(FileSystemKeyValueStorage(Path(settings.storage_dir) / "store"))


def _lock(settings: Settings) -> FileLock:
    return FileLock(Path(settings.storage_dir) / "processor.lock")


def _load_factory(spec: str) -> Callable[[Settings], Any]:
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter("expected 'module:factory'", param_hint="--handlers")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"cannot import {module_name!r}: {exc}", param_hint="--handlers") from exc
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise typer.BadParameter(f"{spec!r} is not callable", param_hint="--handlers")
    return factory


def _processor(
    settings: Settings, scheduler: WakeupSchedulerPort, dispatcher: Dispatcher
) -> JobProcessor:
    return JobProcessor.from_settings(
        settings,
        _store(settings),
        scheduler,
        _lock(settings),
        dispatcher,
        notifier=getattr(dispatcher, "notifier", None),
    )


def _print_report(report: RunReport) -> None:
    if not report.acquired:
        console.print("[yellow]Another run holds the lock; nothing done.[/yellow]")
        return
    remaining = "unknown" if report.remaining is None else str(report.remaining)
    console.print(
        Panel(
            f"processed: [bold]{report.processed}[/bold]\n"
            f"failed:    [bold red]{report.failed}[/bold red]\n"
            f"remaining: [bold]{remaining}[/bold]",
            title="Queue run",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override KVJOBS_LOG_LEVEL"),
) -> None:
    settings = Settings()
    setup_logging(log_level or settings.log_level, settings.log_json)
    ctx.obj = settings


@app.command()
def depth(ctx: typer.Context) -> None:
    """Number of jobs waiting in the active queue."""
    queue = JobQueue(_store(ctx.obj), InMemoryScheduler())
    console.print(asyncio.run(queue.depth()))


@app.command("dead-letters")
def dead_letters(ctx: typer.Context) -> None:
    """List failed jobs kept for diagnosis."""
    queue = JobQueue(_store(ctx.obj), InMemoryScheduler())
    entries = asyncio.run(queue.dead_letters())
    if not entries:
        console.print("[green]No dead letters.[/green]")
        return

    table = Table(title="Dead letters")
    table.add_column("Key", style="cyan")
    table.add_column("Failed at")
    table.add_column("Cause", style="red")
    for entry in entries:
        table.add_row(entry.key, entry.failed_at.isoformat(timespec="seconds"), entry.failure_message)
    console.print(table)


@app.command()
def replay(ctx: typer.Context, key: str = typer.Argument(..., help="Dead-letter key (failed_...)")) -> None:
    """Put a dead letter's payload back on the queue."""
    settings: Settings = ctx.obj
    queue = JobQueue(_store(settings), InMemoryScheduler(), settings.enqueue_wakeup_delay)
    try:
        new_key = asyncio.run(queue.replay(key))
    except DeadLetterNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    console.print(f"Re-enqueued as [cyan]{new_key}[/cyan]. It runs on the next processor run.")


@app.command()
def run(
    ctx: typer.Context,
    handlers: str = typer.Option(..., "--handlers", help="module:factory building the dispatcher"),
) -> None:
    """Drain the queue once, within the configured time budget."""
    settings: Settings = ctx.obj
    dispatcher = _load_factory(handlers)(settings)
    report = asyncio.run(_processor(settings, InMemoryScheduler(), dispatcher).run())
    _print_report(report)


@app.command()
def serve(
    ctx: typer.Context,
    handlers: str = typer.Option(..., "--handlers", help="module:factory building the dispatcher"),
) -> None:
    """Run the processor and keep following its wake-ups until interrupted."""
    settings: Settings = ctx.obj
    dispatcher = _load_factory(handlers)(settings)
    try:
        asyncio.run(_serve(settings, dispatcher))
    except KeyboardInterrupt:
        console.print("Stopped.")


async def _serve(settings: Settings, dispatcher: Dispatcher) -> None:
    wakeups = APSchedulerWakeups()
    processor = _processor(settings, wakeups, dispatcher)
    wakeups.register(PROCESS_QUEUE_HANDLER, processor.run)
    wakeups.start()
    try:
        _print_report(await processor.run())
        await asyncio.Event().wait()
    finally:
        wakeups.shutdown()


if __name__ == "__main__":
    app()
