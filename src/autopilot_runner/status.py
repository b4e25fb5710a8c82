"""Render backlog status, task lists and pilot summaries as text."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .backlog import Backlog, TaskStatus, get_backlog_path, load_backlog, validate_backlog
from .errors import AutoLoopError, BacklogValidationError
from .io_utils import _load_data_with_error

if TYPE_CHECKING:
    from .pilot import PilotSummary

_STATUS_ICONS = {
    TaskStatus.COMPLETED: "[x]",
    TaskStatus.SKIPPED: "[-]",
    TaskStatus.BLOCKED: "[!]",
    TaskStatus.IN_PROGRESS: "[>]",
    TaskStatus.PENDING: "[ ]",
}

_STATUS_STYLES = {
    TaskStatus.COMPLETED: "green",
    TaskStatus.SKIPPED: "dim",
    TaskStatus.BLOCKED: "red",
    TaskStatus.IN_PROGRESS: "cyan",
    TaskStatus.PENDING: "",
}


def status_icon(status: TaskStatus) -> str:
    return _STATUS_ICONS.get(status, "[?]")


def render_status(backlog: Backlog) -> str:
    """Project, loop config and progress counters as a borderless table."""
    console = Console(record=True, width=80)
    progress = backlog.progress
    counts = backlog.status_counts()

    console.print()
    console.print(f"[bold]Auto Loop: {escape(backlog.project.name)}[/bold]")
    console.print("━" * 80)

    table = Table(show_header=False, box=None)
    table.add_row("Status:", progress.status.value)
    table.add_row("AI tool:", backlog.config.ai_tool.value)
    table.add_row("Sandbox:", backlog.config.sandbox.value)
    table.add_row("Mode:", "pilot" if backlog.config.pilot_mode else "auto")
    table.add_row("Iteration:", f"{progress.current_iteration}/{backlog.config.max_iterations}")
    table.add_row("Iterations run:", str(progress.total_iterations_run))
    if backlog.config.pilot_mode:
        table.add_row("Discovery / impl:", f"{progress.discovery_iterations} / {progress.impl_iterations}")
    table.add_row("Tasks:", f"{progress.completed_tasks}/{progress.total_tasks} completed")
    table.add_row(
        "Breakdown:",
        ", ".join(f"{name}={count}" for name, count in counts.items() if count),
    )
    if progress.last_iteration_at:
        table.add_row("Last iteration:", progress.last_iteration_at)
    console.print(table)

    next_task = backlog.get_next_task()
    if next_task is not None:
        console.print(f"\n[bold]Next task:[/bold] {escape(next_task.id)} - {escape(next_task.title)}")
    return console.export_text()


def render_task_list(backlog: Backlog, status_filter: TaskStatus | None = None) -> str:
    """One line per task; sub-tasks are indented under their parent."""
    console = Console(record=True, width=100)
    for task in backlog.tasks:
        if status_filter is not None and task.status != status_filter:
            continue
        indent = "  " if task.parent_id else ""
        style = _STATUS_STYLES.get(task.status, "")
        line = f"{indent}{escape(status_icon(task.status))} {escape(task.id)}: {escape(task.title)}"
        if task.commit_sha:
            line += f" [dim]({escape(task.commit_sha[:7])})[/dim]"
        console.print(f"[{style}]{line}[/{style}]" if style else line)
    return console.export_text()


def render_pilot_summary(summary: "PilotSummary") -> str:
    console = Console(record=True, width=80)
    table = Table(title="Pilot Summary", show_header=False)
    table.add_row("Stop reason", summary.stop_reason.value)
    table.add_row("Discovery iterations", str(summary.discovery_iterations))
    table.add_row("Implementation iterations", str(summary.implementation_iterations))
    table.add_row("Tasks generated", str(summary.tasks_generated))
    table.add_row("Tasks completed", f"{summary.tasks_completed}/{summary.total_tasks}")
    table.add_row("Remaining", str(summary.remaining_tasks))
    console.print(table)
    return console.export_text()


@dataclass
class HealthCheckResult:
    path: Path
    ok: bool
    errors: list[str] = field(default_factory=list)


def check_backlog_health(project_dir: Path) -> HealthCheckResult:
    """Load the backlog and run structural validation without mutating it.

    Values the loader refuses (unknown enum members) are still reported,
    by validating the raw document.
    """
    path = get_backlog_path(project_dir)
    try:
        backlog = load_backlog(path)
    except BacklogValidationError as exc:
        raw, err = _load_data_with_error(path, {})
        errors = [err] if err else validate_backlog(raw)
        return HealthCheckResult(path, False, errors or list(exc.errors))
    except AutoLoopError as exc:
        return HealthCheckResult(path, False, [str(exc)])
    errors = validate_backlog(backlog)
    return HealthCheckResult(path, not errors, errors)
