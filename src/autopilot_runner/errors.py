"""Exception hierarchy for the autonomous loop.

Every error carries a message meant for the operator: it says what went wrong
and, where there is one, what to run next.
"""

from __future__ import annotations

from typing import Optional


class AutoLoopError(Exception):
    """Base class for all autopilot runner errors."""


class NotFoundError(AutoLoopError):
    """Something the operator referenced does not exist."""


class BacklogNotFoundError(NotFoundError):
    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"No auto loop found at {path}. Run init first.")


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class BacklogParseError(AutoLoopError):
    """The backlog file exists but is not a readable JSON object."""


class BacklogValidationError(AutoLoopError):
    """The backlog parsed but violates the document structure."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("Invalid backlog: " + "; ".join(self.errors))


class DuplicateTaskError(AutoLoopError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task with ID {task_id} already exists")


class AgentError(AutoLoopError):
    """One agent invocation failed; recoverable up to the failure threshold."""

    def __init__(self, message: str, *, exit_code: Optional[int] = None) -> None:
        self.exit_code = exit_code
        super().__init__(message)


class ConfigError(AutoLoopError):
    """Unsupported tool or sandbox, unavailable sandbox, or bad runner config."""


class LoopAbortedError(AutoLoopError):
    """The run was stopped after too many consecutive agent failures."""

    def __init__(self, threshold: int) -> None:
        self.threshold = threshold
        super().__init__(
            f"{threshold} consecutive failures reached, aborting. Check AI tool auth/config."
        )
