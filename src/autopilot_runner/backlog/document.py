"""The backlog document: project identity, loop config, tasks and progress."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..constants import AUTO_DIR, DISCOVERY_PROMPT_FILE, PROMPT_FILE, SCHEMA_VERSION
from ..errors import BacklogValidationError, DuplicateTaskError, TaskNotFoundError
from .model import (
    AutoConfig,
    LoopStatus,
    PilotConfig,
    Progress,
    Project,
    Task,
    TaskPriority,
    TaskStatus,
    _check_pilot_pairing,
    supported_values,
)
from .transitions import TaskAction, apply_action


@dataclass
class Backlog:
    project: Project
    config: AutoConfig = field(default_factory=AutoConfig)
    tasks: list[Task] = field(default_factory=list)
    progress: Progress = field(default_factory=Progress)
    version: str = SCHEMA_VERSION

    # -- serialization ------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "project": self.project.to_dict(),
            "config": self.config.to_dict(),
            "tasks": [t.to_dict() for t in self.tasks],
            "progress": self.progress.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Backlog":
        """Build a backlog, raising :class:`BacklogValidationError` on bad values."""
        errors: list[str] = []

        def _section(key: str) -> dict[str, Any]:
            raw = data.get(key)
            if raw is None:
                return {}
            if not isinstance(raw, dict):
                errors.append(f"{key} must be an object")
                return {}
            return raw

        raw_tasks = data.get("tasks") or []
        if not isinstance(raw_tasks, list):
            errors.append("tasks must be an array")
            raw_tasks = []
        tasks: list[Task] = []
        for idx, item in enumerate(raw_tasks):
            if not isinstance(item, dict):
                errors.append(f"task #{idx + 1} must be an object")
                continue
            tasks.append(Task.from_dict(item, errors, index=idx))

        backlog = cls(
            version=str(data.get("version") or ""),
            project=Project.from_dict(_section("project")),
            config=AutoConfig.from_dict(_section("config"), errors),
            tasks=tasks,
            progress=Progress.from_dict(_section("progress"), errors),
        )
        if errors:
            raise BacklogValidationError(errors)
        return backlog

    # -- queries ------------------------------------------------------------

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def _require(self, task_id: str) -> Task:
        task = self.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def get_next_task(self) -> Optional[Task]:
        """First pending task in list order.

        ``parent_id`` and ``depends_on`` are not consulted, so a sub-task can
        come up before its parent is resolved.
        """
        for task in self.tasks:
            if task.status == TaskStatus.PENDING:
                return task
        return None

    def count_pending(self) -> int:
        return sum(1 for t in self.tasks if t.status == TaskStatus.PENDING)

    def status_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for task in self.tasks:
            counts[task.status.value] += 1
        return counts

    # -- mutations ----------------------------------------------------------

    def add_task(self, task: Task) -> Task:
        if not task.id:
            raise BacklogValidationError(["task ID is required"])
        if self.find_task(task.id) is not None:
            raise DuplicateTaskError(task.id)
        self.tasks.append(task)
        return task

    def complete_task(self, task_id: str, commit_sha: str = "", iteration: int = 0) -> Task:
        return apply_action(self._require(task_id), TaskAction.COMPLETE, commit_sha=commit_sha, iteration=iteration)

    def skip_task(self, task_id: str) -> Task:
        return apply_action(self._require(task_id), TaskAction.SKIP)

    def reset_task(self, task_id: str) -> Task:
        return apply_action(self._require(task_id), TaskAction.RESET)

    def recalculate_progress(self) -> Progress:
        total = len(self.tasks)
        completed = sum(1 for t in self.tasks if t.status == TaskStatus.COMPLETED)
        self.progress.total_tasks = total
        self.progress.completed_tasks = completed
        if total > 0 and completed == total:
            self.progress.status = LoopStatus.COMPLETED
        return self.progress


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def new_backlog(name: str, description: str = "") -> Backlog:
    return Backlog(project=Project(name=name, description=description))


def new_pilot_backlog(project_dir: Path, config: AutoConfig, pilot: PilotConfig) -> Backlog:
    """Backlog for pilot mode: no tasks yet, discovery fills them in."""
    pilot_config = AutoConfig(
        max_iterations=config.max_iterations,
        quality_checks=list(config.quality_checks),
        ai_tool=config.ai_tool,
        prompt_file=f"{AUTO_DIR}/{PROMPT_FILE}",
        sandbox=config.sandbox,
        sandbox_image=config.sandbox_image,
        sandbox_template=config.sandbox_template,
        pilot_mode=True,
        pilot_config=pilot,
        discovery_prompt_file=f"{AUTO_DIR}/{DISCOVERY_PROMPT_FILE}",
    )
    return Backlog(
        project=Project(
            name=Path(project_dir).resolve().name,
            description="Autonomous pilot mode - AI-discovered tasks",
        ),
        config=pilot_config,
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_backlog(backlog: Backlog | dict[str, Any]) -> list[str]:
    """Return structural problems in *backlog* (empty list = valid).

    Accepts the raw JSON object too, so health checks can report values that
    :meth:`Backlog.from_dict` would refuse to load.
    """
    data = backlog.to_dict() if isinstance(backlog, Backlog) else backlog
    if not isinstance(data, dict):
        return ["backlog must be an object"]

    errors: list[str] = []
    if not data.get("version"):
        errors.append("version is required")
    project = data.get("project")
    if not isinstance(project, dict) or not project.get("name"):
        errors.append("project.name is required")
    config = data.get("config")
    if isinstance(config, dict):
        _check_pilot_pairing(bool(config.get("pilot_mode")), config.get("pilot_config") is not None, errors)

    tasks = data.get("tasks")
    if tasks is None:
        tasks = []
    if not isinstance(tasks, list):
        return errors + ["tasks must be an array"]

    valid_statuses = set(supported_values(TaskStatus))
    valid_priorities = set(supported_values(TaskPriority))
    ids: set[str] = set()
    for item in tasks:
        if not isinstance(item, dict):
            errors.append("task entries must be objects")
            continue
        raw_id = item.get("id")
        task_id = str(raw_id).strip() if raw_id is not None else ""
        if not task_id:
            errors.append("task missing ID")
            continue
        if task_id in ids:
            errors.append(f"duplicate task ID: {task_id}")
        ids.add(task_id)
        if not item.get("title"):
            errors.append(f"task {task_id} missing title")
        status = item.get("status")
        if status not in valid_statuses:
            errors.append(f"task {task_id} has invalid status: {status}")
        priority = item.get("priority")
        if priority and priority not in valid_priorities:
            errors.append(f"task {task_id} has invalid priority: {priority}")

    for item in tasks:
        if not isinstance(item, dict):
            continue
        for dep in item.get("depends_on") or []:
            if str(dep) not in ids:
                errors.append(f"task {item.get('id')} depends on unknown task: {dep}")
    return errors
