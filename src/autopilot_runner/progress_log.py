"""Append-only ``progress.md`` log shared between the loop and the agent."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .io_utils import _append_line
from .utils import _now_iso


class ProgressEntryType(str, Enum):
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"
    LEARNING = "LEARNING"
    QUALITY_CHECK = "QUALITY_CHECK"
    COMMIT = "COMMIT"


@dataclass(frozen=True)
class ProgressEntry:
    type: ProgressEntryType
    message: str
    iteration: int = 0
    task_id: str = ""


def format_progress_entry(entry: ProgressEntry, *, timestamp: str | None = None) -> str:
    """``[ts] [iteration:N] [task:ID] TYPE: message``; zero/empty parts are dropped."""
    parts = [f"[{timestamp or _now_iso()}]"]
    if entry.iteration > 0:
        parts.append(f"[iteration:{entry.iteration}]")
    if entry.task_id:
        parts.append(f"[task:{entry.task_id}]")
    parts.append(f"{entry.type.value}: {entry.message}")
    return " ".join(parts)


def append_progress(path: Path, entry: ProgressEntry) -> None:
    _append_line(Path(path), format_progress_entry(entry))


def read_progress_tail(path: Path, lines: int) -> list[str]:
    """Last *lines* lines of the log (all of them when ``lines <= 0``)."""
    path = Path(path)
    if not path.exists():
        return []
    all_lines = path.read_text(encoding="utf-8").splitlines()
    if lines <= 0 or lines >= len(all_lines):
        return all_lines
    return all_lines[-lines:]
