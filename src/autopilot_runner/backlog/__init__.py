"""Backlog document, task lifecycle rules, and file persistence."""

from .document import Backlog, new_backlog, new_pilot_backlog, validate_backlog
from .model import (
    AITool,
    AutoConfig,
    LoopStatus,
    PilotConfig,
    Progress,
    Project,
    SandboxMode,
    Task,
    TaskComplexity,
    TaskPriority,
    TaskSource,
    TaskStatus,
)
from .store import get_auto_dir, get_backlog_path, load_backlog, save_backlog, update_backlog
from .transitions import TaskAction, apply_action

__all__ = [
    "AITool",
    "AutoConfig",
    "Backlog",
    "LoopStatus",
    "PilotConfig",
    "Progress",
    "Project",
    "SandboxMode",
    "Task",
    "TaskAction",
    "TaskComplexity",
    "TaskPriority",
    "TaskSource",
    "TaskStatus",
    "apply_action",
    "get_auto_dir",
    "get_backlog_path",
    "load_backlog",
    "new_backlog",
    "new_pilot_backlog",
    "save_backlog",
    "update_backlog",
    "validate_backlog",
]
