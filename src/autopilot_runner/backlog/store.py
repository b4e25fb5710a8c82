"""File-backed persistence for the backlog document.

The backlog is shared with the agent process, which rewrites it during its
run. There is no lock: callers reload right before every decision and always
write the full document back (write-tmp-then-rename).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, TypeVar

from loguru import logger

from ..constants import AUTO_DIR, BACKLOG_FILE
from ..errors import BacklogNotFoundError, BacklogParseError
from ..io_utils import _atomic_write_json
from ..utils import _now_iso
from .document import Backlog

T = TypeVar("T")


def get_auto_dir(project_dir: Path) -> Path:
    return Path(project_dir) / AUTO_DIR


def get_backlog_path(project_dir: Path) -> Path:
    return get_auto_dir(project_dir) / BACKLOG_FILE


def load_backlog(path: Path) -> Backlog:
    """Load the backlog at *path*.

    Raises:
        BacklogNotFoundError: The file does not exist (loop not initialized).
        BacklogParseError: The file is not a JSON object (corrupted state).
        BacklogValidationError: A field holds a value outside its closed set.
    """
    path = Path(path)
    if not path.exists():
        raise BacklogNotFoundError(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise BacklogParseError(f"failed to read {path.name}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise BacklogParseError(f"failed to parse {path.name}: {exc}") from exc
    if not isinstance(data, dict):
        raise BacklogParseError(f"{path.name}: expected object, got {type(data).__name__}")
    return Backlog.from_dict(data)


def save_backlog(backlog: Backlog, path: Path) -> None:
    """Overwrite *path* with the full document."""
    backlog.project.updated_at = _now_iso()
    backlog.recalculate_progress()
    _atomic_write_json(Path(path), backlog.to_dict())


def update_backlog(path: Path, mutate: Callable[[Backlog], T]) -> T:
    """Reload, apply *mutate*, and save; nothing is written if *mutate* raises."""
    backlog = load_backlog(path)
    result = mutate(backlog)
    save_backlog(backlog, path)
    logger.debug("Saved backlog {} ({} tasks)", path, len(backlog.tasks))
    return result
