"""Records stored in the backlog document.

Enum-like fields arrive from a file that the agent edits by hand, so
``from_dict`` checks them against closed sets and reports every bad value at
once instead of letting an unknown status leak into scheduling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..constants import (
    AUTO_DIR,
    DEFAULT_DISCOVER_INTERVAL,
    DEFAULT_MAX_DISCOVERY_TASKS,
    DEFAULT_MAX_ITERATIONS,
    PROMPT_FILE,
)
from ..utils import _now_iso


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    BLOCKED = "blocked"


class TaskPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskComplexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class TaskSource(str, Enum):
    """How the task entered the backlog."""

    MANUAL = "manual"
    PRD = "prd"
    DISCOVERY = "pilot-discovery"


class LoopStatus(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class AITool(str, Enum):
    CLAUDE = "claude"
    AMP = "amp"
    CURSOR = "cursor"
    CODEX = "codex"


class SandboxMode(str, Enum):
    NONE = "none"
    DOCKER = "docker"  # container
    DOCKER_SANDBOX = "docker-sandbox"  # isolated VM


def supported_values(enum_cls: type[Enum]) -> list[str]:
    return [e.value for e in enum_cls]


def is_valid_ai_tool(tool: str) -> bool:
    return str(tool or "").lower() in supported_values(AITool)


def is_valid_sandbox_mode(mode: str) -> bool:
    return str(mode or "").lower() in supported_values(SandboxMode)


def _parse_enum(
    enum_cls: type[Enum],
    raw: Any,
    default: Optional[Enum],
    label: str,
    errors: list[str],
) -> Optional[Enum]:
    if raw is None or raw == "":
        return default
    try:
        return enum_cls(str(raw).lower())
    except ValueError:
        errors.append(f"{label} must be one of {supported_values(enum_cls)}, got '{raw}'")
        return default


def _coerce_id(raw: Any) -> str:
    """Agents sometimes write ``"id": 1``; keep IDs as strings either way."""
    if isinstance(raw, bool) or raw is None:
        return ""
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw).strip()


def _str_list(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [str(item) for item in raw]


def _check_pilot_pairing(pilot_mode: bool, has_pilot_config: bool, errors: list[str]) -> None:
    if pilot_mode and not has_pilot_config:
        errors.append("config.pilot_config is required when pilot_mode is true")
    elif has_pilot_config and not pilot_mode:
        errors.append("config.pilot_config is only allowed when pilot_mode is true")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class Task:
    id: str
    title: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    complexity: Optional[TaskComplexity] = None
    # Display-only; does not gate scheduling.
    parent_id: str = ""
    depends_on: list[str] = field(default_factory=list)
    files_to_create: list[str] = field(default_factory=list)
    files_to_modify: list[str] = field(default_factory=list)
    guardrails: list[str] = field(default_factory=list)
    completed_at: str = ""
    commit_sha: str = ""
    iteration_completed: int = 0
    source: Optional[TaskSource] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
        }
        optional: dict[str, Any] = {
            "description": self.description,
            "complexity": self.complexity.value if self.complexity else "",
            "parent_id": self.parent_id,
            "depends_on": self.depends_on,
            "files_to_create": self.files_to_create,
            "files_to_modify": self.files_to_modify,
            "guardrails": self.guardrails,
            "completed_at": self.completed_at,
            "commit_sha": self.commit_sha,
            "iteration": self.iteration_completed,
            "source": self.source.value if self.source else "",
        }
        for key, value in optional.items():
            if value:
                data[key] = list(value) if isinstance(value, list) else value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], errors: list[str], *, index: int = 0) -> "Task":
        task_id = _coerce_id(data.get("id"))
        label = f"task {task_id}" if task_id else f"task #{index + 1}"
        if not task_id:
            errors.append(f"{label} missing ID")
        status = _parse_enum(TaskStatus, data.get("status"), TaskStatus.PENDING, f"{label} status", errors)
        priority = _parse_enum(TaskPriority, data.get("priority"), TaskPriority.MEDIUM, f"{label} priority", errors)
        complexity = _parse_enum(TaskComplexity, data.get("complexity"), None, f"{label} complexity", errors)
        source = _parse_enum(TaskSource, data.get("source"), None, f"{label} source", errors)
        iteration = data.get("iteration") or 0
        if not isinstance(iteration, int) or isinstance(iteration, bool):
            errors.append(f"{label} iteration must be an integer")
            iteration = 0
        return cls(
            id=task_id,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=status,  # type: ignore[arg-type]
            priority=priority,  # type: ignore[arg-type]
            complexity=complexity,  # type: ignore[arg-type]
            parent_id=_coerce_id(data.get("parent_id")),
            depends_on=[_coerce_id(d) for d in data.get("depends_on") or [] if _coerce_id(d)],
            files_to_create=_str_list(data.get("files_to_create")),
            files_to_modify=_str_list(data.get("files_to_modify")),
            guardrails=_str_list(data.get("guardrails")),
            completed_at=str(data.get("completed_at") or ""),
            commit_sha=str(data.get("commit_sha") or ""),
            iteration_completed=iteration,
            source=source,  # type: ignore[arg-type]
        )


@dataclass
class Project:
    name: str
    description: str = ""
    source_prd: str = ""
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "description": self.description}
        if self.source_prd:
            data["source_prd"] = self.source_prd
        data["created_at"] = self.created_at
        data["updated_at"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        return cls(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            source_prd=str(data.get("source_prd") or ""),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
        )


@dataclass
class PilotConfig:
    discover_interval: int = DEFAULT_DISCOVER_INTERVAL
    max_discovery_tasks: int = DEFAULT_MAX_DISCOVERY_TASKS
    focus: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "discover_interval": self.discover_interval,
            "max_discovery_tasks": self.max_discovery_tasks,
        }
        if self.focus:
            data["focus"] = self.focus
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], errors: list[str]) -> "PilotConfig":
        cfg = cls(
            discover_interval=data.get("discover_interval", DEFAULT_DISCOVER_INTERVAL),
            max_discovery_tasks=data.get("max_discovery_tasks", DEFAULT_MAX_DISCOVERY_TASKS),
            focus=str(data.get("focus") or ""),
        )
        for name in ("discover_interval", "max_discovery_tasks"):
            value = getattr(cfg, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(f"config.pilot_config.{name} must be an integer >= 1, got {value!r}")
        return cfg


@dataclass
class AutoConfig:
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    quality_checks: list[str] = field(default_factory=list)
    ai_tool: AITool = AITool.CLAUDE
    prompt_file: str = f"{AUTO_DIR}/{PROMPT_FILE}"
    sandbox: SandboxMode = SandboxMode.NONE
    sandbox_image: str = ""
    sandbox_template: str = ""
    pilot_mode: bool = False
    pilot_config: Optional[PilotConfig] = None
    discovery_prompt_file: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "max_iterations": self.max_iterations,
            "quality_checks": list(self.quality_checks),
            "ai_tool": self.ai_tool.value,
            "ai_prompt_file": self.prompt_file,
            "sandbox": self.sandbox.value,
        }
        if self.sandbox_image:
            data["sandbox_image"] = self.sandbox_image
        if self.sandbox_template:
            data["sandbox_template"] = self.sandbox_template
        if self.pilot_mode:
            data["pilot_mode"] = True
        if self.pilot_config is not None:
            data["pilot_config"] = self.pilot_config.to_dict()
        if self.discovery_prompt_file:
            data["discovery_prompt_file"] = self.discovery_prompt_file
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], errors: list[str]) -> "AutoConfig":
        max_iterations = data.get("max_iterations", DEFAULT_MAX_ITERATIONS)
        if not isinstance(max_iterations, int) or isinstance(max_iterations, bool) or max_iterations < 1:
            errors.append(f"config.max_iterations must be a positive integer, got {max_iterations!r}")
            max_iterations = DEFAULT_MAX_ITERATIONS
        pilot_raw = data.get("pilot_config")
        pilot_config: Optional[PilotConfig] = None
        if isinstance(pilot_raw, dict):
            pilot_config = PilotConfig.from_dict(pilot_raw, errors)
        elif pilot_raw is not None:
            errors.append("config.pilot_config must be an object")
        pilot_mode = bool(data.get("pilot_mode", False))
        _check_pilot_pairing(pilot_mode, pilot_raw is not None, errors)
        return cls(
            max_iterations=max_iterations,
            quality_checks=_str_list(data.get("quality_checks")),
            ai_tool=_parse_enum(AITool, data.get("ai_tool"), AITool.CLAUDE, "config.ai_tool", errors),  # type: ignore[arg-type]
            prompt_file=str(data.get("ai_prompt_file") or f"{AUTO_DIR}/{PROMPT_FILE}"),
            sandbox=_parse_enum(SandboxMode, data.get("sandbox"), SandboxMode.NONE, "config.sandbox", errors),  # type: ignore[arg-type]
            sandbox_image=str(data.get("sandbox_image") or ""),
            sandbox_template=str(data.get("sandbox_template") or ""),
            pilot_mode=pilot_mode,
            pilot_config=pilot_config,
            discovery_prompt_file=str(data.get("discovery_prompt_file") or ""),
        )


@dataclass
class Progress:
    """Derived ledger; recomputed from the task list, never edited by hand."""

    total_tasks: int = 0
    completed_tasks: int = 0
    current_iteration: int = 0
    total_iterations_run: int = 0
    last_iteration_at: str = ""
    status: LoopStatus = LoopStatus.NOT_STARTED
    discovery_iterations: int = 0
    impl_iterations: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "current_iteration": self.current_iteration,
            "total_iterations_run": self.total_iterations_run,
        }
        if self.last_iteration_at:
            data["last_iteration_at"] = self.last_iteration_at
        data["status"] = self.status.value
        if self.discovery_iterations:
            data["discovery_iterations"] = self.discovery_iterations
        if self.impl_iterations:
            data["impl_iterations"] = self.impl_iterations
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], errors: list[str]) -> "Progress":
        def _int(key: str) -> int:
            value = data.get(key) or 0
            return value if isinstance(value, int) and not isinstance(value, bool) else 0

        return cls(
            total_tasks=_int("total_tasks"),
            completed_tasks=_int("completed_tasks"),
            current_iteration=_int("current_iteration"),
            total_iterations_run=_int("total_iterations_run"),
            last_iteration_at=str(data.get("last_iteration_at") or ""),
            status=_parse_enum(LoopStatus, data.get("status"), LoopStatus.NOT_STARTED, "progress.status", errors),  # type: ignore[arg-type]
            discovery_iterations=_int("discovery_iterations"),
            impl_iterations=_int("impl_iterations"),
        )
