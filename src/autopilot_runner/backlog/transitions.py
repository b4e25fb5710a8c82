from __future__ import annotations

from enum import Enum

from ..utils import _now_iso
from .model import Task, TaskStatus


class TaskAction(str, Enum):
    COMPLETE = "complete"
    SKIP = "skip"
    RESET = "reset"


# Documented lifecycle edges. Actions are applied from any status: the agent
# edits the file directly, so the core only ever moves a task to the target.
TRANSITIONS: dict[TaskAction, tuple[frozenset[TaskStatus], TaskStatus]] = {
    TaskAction.COMPLETE: (frozenset({TaskStatus.PENDING}), TaskStatus.COMPLETED),
    TaskAction.SKIP: (frozenset({TaskStatus.PENDING}), TaskStatus.SKIPPED),
    TaskAction.RESET: (
        frozenset({TaskStatus.COMPLETED, TaskStatus.SKIPPED, TaskStatus.BLOCKED}),
        TaskStatus.PENDING,
    ),
}


def target_status(action: TaskAction) -> TaskStatus:
    return TRANSITIONS[action][1]


def is_documented_transition(current: TaskStatus, action: TaskAction) -> bool:
    sources, _ = TRANSITIONS[action]
    return current in sources


def _clear_completion(task: Task) -> None:
    task.completed_at = ""
    task.commit_sha = ""
    task.iteration_completed = 0


def apply_action(task: Task, action: TaskAction, *, commit_sha: str = "", iteration: int = 0) -> Task:
    """Move *task* to the status *action* leads to.

    Completion fields are only kept on completed tasks.
    """
    task.status = target_status(action)
    if action == TaskAction.COMPLETE:
        task.completed_at = _now_iso()
        task.commit_sha = commit_sha
        task.iteration_completed = iteration
    else:
        _clear_completion(task)
    return task
