"""Main CLI for the tiered orchestrator."""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..core.config import OrchestratorConfig, load_config
from ..core.driver import create_driver, run_batch
from ..core.event_log import Event, TaskEventLogger
from ..core.task import TaskInput, TaskOutcome, parse_task_batch, parse_task_input
from ..errors import ConfigError, ErrorTranslator, FatalError, TaskInputError, WorkspaceError
from ..health.checker import CheckStatus, HealthChecker, ensure_workspace_healthy
from ..safeguards.concurrency_gate import GateRegistry
from ..utils.error_handling import log_and_reraise
from ..utils.rich_logging import setup_logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

console = Console()
error_console = Console(stderr=True)

EXIT_INTERRUPTED = 130


@click.group()
@click.option("--workspace", "-w", default=".", help="Workspace directory")
@click.option("--config", "-c", "config_path", default="orchestrator.yaml", help="Config file")
@click.option("--log-level", default=None, help="Override logging.level (DEBUG, INFO, ...)")
@click.option("--json-logs", is_flag=True, default=False, help="Emit JSON log lines")
@click.pass_context
def cli(ctx, workspace, config_path, log_level, json_logs):
    """Tiered Orchestrator - escalating model tiers for small code changes."""
    ctx.ensure_object(dict)
    ctx.obj["workspace"] = Path(workspace).resolve()
    ctx.obj["config_path"] = Path(config_path)
    ctx.obj["log_level"] = log_level
    ctx.obj["json_logs"] = json_logs


def _fail(error: Exception) -> None:
    """Print a translated fatal error and exit with status 1."""
    translator = ErrorTranslator()
    error_console.print(translator.format_for_cli(translator.translate(error)))
    sys.exit(1)


def _load(ctx) -> OrchestratorConfig:
    """Load config and configure logging for a command."""
    try:
        config = load_config(ctx.obj["config_path"])
    except ConfigError as e:
        _fail(e)

    setup_logging(
        log_level=ctx.obj["log_level"] or config.logging.level,
        use_json=ctx.obj["json_logs"] or config.logging.json_format,
    )
    return config


def _events_for(config: OrchestratorConfig) -> TaskEventLogger:
    return TaskEventLogger(
        logs_dir=config.logging.logs_dir,
        session_logs=config.logging.session_logs,
    )


def _read_input(source: Optional[str]) -> str:
    """Read task JSON from a file, or stdin when no file is given."""
    try:
        if source and source != "-":
            return Path(source).read_text()
        return click.get_text_stream("stdin").read()
    except OSError as e:
        raise TaskInputError(f"Cannot read task input: {e}") from e


def _check_workspace(workspace: Path, events: TaskEventLogger) -> None:
    try:
        ensure_workspace_healthy(workspace)
    except WorkspaceError as e:
        events.process_event(Event.WORKSPACE_INVALID, logging.ERROR, workspace=str(workspace), error=e.reason)
        _fail(e)


def _run_with_signals(events: TaskEventLogger, coro_factory: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine, turning SIGINT/SIGTERM into cancellation of the run."""

    async def _main() -> T:
        loop = asyncio.get_running_loop()
        main_task = asyncio.current_task()

        def _shutdown(sig: signal.Signals) -> None:
            events.process_event(Event.ORCHESTRATOR_SHUTDOWN, logging.WARNING, signal=sig.name)
            main_task.cancel()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _shutdown, sig)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or outside the main thread
                pass

        return await coro_factory()

    try:
        return asyncio.run(_main())
    except (asyncio.CancelledError, KeyboardInterrupt):
        sys.exit(EXIT_INTERRUPTED)


def _report_outcome(outcome: TaskOutcome) -> None:
    task = outcome.task
    if outcome.success:
        console.print(
            f"[green]✓ Task {task.short_id()} succeeded[/] "
            f"(attempt {task.attempt}, tier {task.tier.value}, {outcome.escalations} escalation(s))"
        )
        return

    console.print(
        f"[red]✗ Task {task.short_id()} aborted[/] "
        f"after {task.attempt} attempt(s), final tier {task.tier.value}"
    )
    for error in outcome.last_errors:
        console.print(f"  [dim]- {escape(error)}[/]")


@cli.command()
@click.option("--file", "-f", "task_file", default=None, help="Task JSON file (default: stdin)")
@click.pass_context
def run(ctx, task_file):
    """Run a single task until it succeeds or its attempt budget is spent."""
    workspace = ctx.obj["workspace"]
    config = _load(ctx)
    events = _events_for(config)

    try:
        task_input = parse_task_input(_read_input(task_file))
    except TaskInputError as e:
        events.process_event(Event.TASK_INPUT_ERROR, logging.ERROR, error=str(e))
        _fail(e)

    _check_workspace(workspace, events)
    events.process_event(Event.ORCHESTRATOR_START, workspace=str(workspace), tasks=1)

    try:
        driver = create_driver(config, workspace, events=events)
        outcome = _run_with_signals(events, lambda: driver.run(task_input))
    except FatalError as e:
        _fail(e)
    except Exception as e:
        events.process_event(Event.ORCHESTRATOR_CRASH, logging.ERROR, error=str(e))
        log_and_reraise(e, "Orchestrator crashed", logger_instance=logger)

    events.process_event(
        Event.ORCHESTRATOR_COMPLETE,
        success=outcome.success,
        total_attempts=outcome.task.attempt,
        final_tier=outcome.task.tier.value,
    )
    _report_outcome(outcome)
    sys.exit(0 if outcome.success else 1)


@cli.command()
@click.option("--file", "-f", "batch_file", default=None, help="JSON array of tasks (default: stdin)")
@click.pass_context
def batch(ctx, batch_file):
    """Run several independent tasks concurrently, sharing the tier gates.

    Tasks must own disjoint files.
    """
    workspace = ctx.obj["workspace"]
    config = _load(ctx)
    events = _events_for(config)

    try:
        inputs: List[TaskInput] = parse_task_batch(_read_input(batch_file))
    except TaskInputError as e:
        events.process_event(Event.TASK_INPUT_ERROR, logging.ERROR, error=str(e))
        _fail(e)

    _check_workspace(workspace, events)
    events.process_event(Event.ORCHESTRATOR_START, workspace=str(workspace), tasks=len(inputs))

    gates = GateRegistry.from_config(config.tiers)
    try:
        driver = create_driver(config, workspace, gates=gates, events=events)
        outcomes = _run_with_signals(events, lambda: run_batch(driver, inputs))
    except FatalError as e:
        _fail(e)
    except Exception as e:
        events.process_event(Event.ORCHESTRATOR_CRASH, logging.ERROR, error=str(e))
        log_and_reraise(e, "Orchestrator crashed", logger_instance=logger)

    succeeded = sum(1 for o in outcomes if o.success)
    events.process_event(
        Event.ORCHESTRATOR_COMPLETE,
        success=succeeded == len(outcomes),
        succeeded=succeeded,
        aborted=len(outcomes) - succeeded,
    )

    table = Table(title=f"Batch results ({succeeded}/{len(outcomes)} succeeded)")
    table.add_column("Task")
    table.add_column("Description")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Final Tier")
    table.add_column("Escalations", justify="right")
    table.add_column("Tokens", justify="right")

    for outcome in outcomes:
        task = outcome.task
        description = task.description if len(task.description) <= 40 else task.description[:37] + "..."
        status = "[green]succeeded[/]" if outcome.success else "[red]aborted[/]"
        table.add_row(
            task.short_id(),
            escape(description),
            status,
            str(task.attempt),
            task.tier.value,
            str(outcome.escalations),
            str(outcome.total_tokens),
        )

    console.print(table)
    sys.exit(0 if succeeded == len(outcomes) else 1)


@cli.command()
@click.pass_context
def check(ctx):
    """Check the workspace and local tooling before a run."""
    workspace = ctx.obj["workspace"]
    config = _load(ctx)

    checker = HealthChecker(workspace, config.verification.commands)
    results = checker.run_all_checks()

    table = Table(title=f"Workspace health: {workspace}")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Details")

    styles = {
        CheckStatus.PASSED: "[green]passed[/]",
        CheckStatus.WARNING: "[yellow]warning[/]",
        CheckStatus.FAILED: "[red]failed[/]",
        CheckStatus.SKIPPED: "[dim]skipped[/]",
    }
    for result in results:
        details = escape(result.message)
        if result.fix_action and result.status != CheckStatus.PASSED:
            details += f"\n[dim]→ {result.fix_action}[/]"
        table.add_row(result.name, styles[result.status], details)

    console.print(table)

    failed = [r for r in results if r.status == CheckStatus.FAILED]
    if failed:
        console.print(f"[red]{len(failed)} check(s) failed[/]")
        sys.exit(1)
    console.print("[green]✓ Workspace ready[/]")


if __name__ == "__main__":
    cli()
