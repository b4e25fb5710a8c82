"""Out-of-band task management against the on-disk backlog.

These never abort anything: failures are logged with a corrective message
and reported as ``False``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from loguru import logger

from .backlog import Backlog, Task, TaskPriority, TaskSource, TaskStatus, get_backlog_path, load_backlog, update_backlog
from .errors import AutoLoopError


def _next_manual_id(backlog: Backlog) -> str:
    numeric = [int(t.id) for t in backlog.tasks if t.id.isdigit()]
    return str(max(numeric, default=0) + 1)


def add_task(
    project_dir: Path,
    title: str,
    *,
    task_id: str = "",
    description: str = "",
    priority: TaskPriority = TaskPriority.MEDIUM,
) -> Optional[Task]:
    """Append a pending task; the id defaults to the next free integer."""
    def _mutate(backlog: Backlog) -> Task:
        task = Task(
            id=task_id or _next_manual_id(backlog),
            title=title,
            description=description,
            priority=priority,
            source=TaskSource.MANUAL,
        )
        return backlog.add_task(task)

    try:
        task = update_backlog(get_backlog_path(project_dir), _mutate)
    except AutoLoopError as exc:
        logger.error("Failed to add task: {}", exc)
        return None
    logger.success("Added task {}: {}", task.id, task.title)
    return task


def complete_task(project_dir: Path, task_id: str, commit_sha: str = "", iteration: int = 0) -> bool:
    try:
        update_backlog(
            get_backlog_path(project_dir),
            lambda backlog: backlog.complete_task(task_id, commit_sha, iteration),
        )
    except AutoLoopError as exc:
        logger.error("Failed to complete task: {}", exc)
        return False
    logger.success("Task {} marked as completed", task_id)
    return True


def skip_task(project_dir: Path, task_id: str) -> bool:
    try:
        update_backlog(get_backlog_path(project_dir), lambda backlog: backlog.skip_task(task_id))
    except AutoLoopError as exc:
        logger.error("Failed to skip task: {}", exc)
        return False
    logger.success("Task {} skipped", task_id)
    return True


def reset_task(project_dir: Path, task_id: str) -> bool:
    try:
        update_backlog(get_backlog_path(project_dir), lambda backlog: backlog.reset_task(task_id))
    except AutoLoopError as exc:
        logger.error("Failed to reset task: {}", exc)
        return False
    logger.success("Task {} reset to pending", task_id)
    return True


def list_tasks(project_dir: Path, status: Optional[TaskStatus] = None) -> list[Task]:
    try:
        backlog = load_backlog(get_backlog_path(project_dir))
    except AutoLoopError as exc:
        logger.error("{}", exc)
        return []
    if status is None:
        return list(backlog.tasks)
    return [t for t in backlog.tasks if t.status == status]
