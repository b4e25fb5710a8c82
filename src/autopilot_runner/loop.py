"""Plain auto loop and the iteration primitive shared with pilot mode.

The backlog file is also rewritten by the agent process, so the controller
never caches it: it reloads right before every decision and persists the
whole document after every bookkeeping change.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from loguru import logger

from .agent import AgentInvocation, build_agent_command, invoke_agent
from .backlog import AITool, Backlog, LoopStatus, SandboxMode, get_auto_dir, get_backlog_path, load_backlog, update_backlog
from .backlog.model import is_valid_ai_tool, is_valid_sandbox_mode, supported_values
from .config import LoopSettings, resolve_loop_settings
from .constants import DEFAULT_MAX_CONSECUTIVE_FAILURES, DEFAULT_MAX_ITERATIONS, DEFAULT_PAUSE_SECONDS, PROGRESS_FILE
from .errors import AgentError, AutoLoopError, ConfigError, LoopAbortedError
from .progress_log import ProgressEntry, ProgressEntryType, append_progress
from .sandbox import SandboxAvailability, check_sandbox_available
from .scheduler import IterationKind
from .utils import _now_iso

IterationStartHook = Callable[[int], None]
IterationEndHook = Callable[[int, Optional[Exception]], None]
AgentInvoker = Callable[[AgentInvocation], None]
SandboxCheck = Callable[[str], SandboxAvailability]


class StopReason(str, Enum):
    MAX_ITERATIONS = "max_iterations"
    ALL_TASKS_DONE = "all_tasks_done"
    NO_NEW_TASKS = "no_new_tasks"


@dataclass
class LoopConfig:
    project_dir: Path
    backlog_path: Path
    prompt_path: Path
    ai_tool: str = AITool.CLAUDE.value
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    sandbox: str = SandboxMode.NONE.value
    sandbox_image: str = ""
    sandbox_template: str = ""
    pause_seconds: float = DEFAULT_PAUSE_SECONDS
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    on_iteration_start: Optional[IterationStartHook] = None
    on_iteration_end: Optional[IterationEndHook] = None
    invoke: AgentInvoker = invoke_agent
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @property
    def progress_path(self) -> Path:
        return get_auto_dir(self.project_dir) / PROGRESS_FILE


@dataclass
class LoopResult:
    iterations_run: int
    stop_reason: StopReason
    completed_tasks: int = 0
    total_tasks: int = 0


def new_loop_config(
    project_dir: Path,
    backlog: Optional[Backlog] = None,
    settings: Optional[LoopSettings] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> LoopConfig:
    """Build a loop config from the backlog's ``config`` block and runner settings.

    Loads the backlog from disk when none is given, and resolves settings from
    ``config.yaml`` plus the environment when none are given.
    """
    project_dir = Path(project_dir).resolve()
    backlog_path = get_backlog_path(project_dir)
    if backlog is None:
        backlog = load_backlog(backlog_path)
    if settings is None:
        settings = resolve_loop_settings(project_dir, environ)
    config = backlog.config
    return LoopConfig(
        project_dir=project_dir,
        backlog_path=backlog_path,
        prompt_path=project_dir / config.prompt_file,
        ai_tool=config.ai_tool.value,
        max_iterations=config.max_iterations,
        sandbox=config.sandbox.value,
        sandbox_image=config.sandbox_image,
        sandbox_template=config.sandbox_template,
        pause_seconds=settings.pause_seconds,
        max_consecutive_failures=settings.max_consecutive_failures,
    )


def _invocation(cfg: LoopConfig, prompt_path: Path) -> AgentInvocation:
    return AgentInvocation(
        project_dir=Path(cfg.project_dir),
        prompt_path=Path(prompt_path),
        ai_tool=cfg.ai_tool,
        sandbox=cfg.sandbox,
        sandbox_image=cfg.sandbox_image,
        sandbox_template=cfg.sandbox_template,
    )


def preflight(
    cfg: LoopConfig,
    check_sandbox: SandboxCheck = check_sandbox_available,
    extra_prompts: Sequence[Path] = (),
) -> None:
    """Reject configurations that cannot run, before any iteration starts.

    The agent command is built once per prompt without running it, so a bad
    sandbox image or a prompt the container cannot see fails here.

    Raises:
        ConfigError: Unsupported tool or sandbox mode, unavailable sandbox,
            bad limits, a missing prompt file, or an agent command that
            cannot be built.
    """
    if not is_valid_ai_tool(cfg.ai_tool):
        raise ConfigError(f"unsupported AI tool: {cfg.ai_tool} (supported: {supported_values(AITool)})")
    if not is_valid_sandbox_mode(cfg.sandbox):
        raise ConfigError(f"unsupported sandbox mode: {cfg.sandbox} (supported: {supported_values(SandboxMode)})")
    if cfg.max_iterations < 1:
        raise ConfigError(f"max_iterations must be >= 1, got {cfg.max_iterations}")
    if cfg.max_consecutive_failures < 1:
        raise ConfigError(f"max_consecutive_failures must be >= 1, got {cfg.max_consecutive_failures}")
    for prompt_path in (cfg.prompt_path, *extra_prompts):
        if not Path(prompt_path).exists():
            raise ConfigError(f"Prompt file not found: {prompt_path}. Run init first.")
        try:
            build_agent_command(_invocation(cfg, prompt_path), environ={})
        except AgentError as exc:
            raise ConfigError(str(exc)) from exc

    availability = check_sandbox(cfg.sandbox.lower())
    if not availability.available:
        raise ConfigError(f"sandbox '{cfg.sandbox}' is not available: {availability.reason}")


@dataclass
class FailureTracker:
    """Counts consecutive failed invocations; any success resets it."""

    threshold: int
    consecutive: int = 0

    def record_success(self) -> None:
        self.consecutive = 0

    def record_failure(self, iteration: int, err: Exception) -> None:
        self.consecutive += 1
        logger.warning(
            "[iteration:{}] Agent failed ({}/{} consecutive): {}",
            iteration,
            self.consecutive,
            self.threshold,
            err,
        )
        if self.consecutive >= self.threshold:
            aborted = LoopAbortedError(self.threshold)
            logger.error("{}", aborted)
            raise aborted from err


def _notify(hook: Optional[Callable[..., None]], *args: object) -> None:
    if hook is None:
        return
    try:
        hook(*args)
    except Exception as exc:
        # Observers never change control flow.
        logger.warning("Iteration hook {} raised: {}", getattr(hook, "__name__", hook), exc)


def _record_iteration(cfg: LoopConfig, iteration: int, kind: IterationKind) -> None:
    def _mutate(backlog: Backlog) -> None:
        progress = backlog.progress
        progress.current_iteration = iteration
        progress.total_iterations_run += 1
        progress.last_iteration_at = _now_iso()
        if kind == IterationKind.DISCOVERY:
            progress.discovery_iterations += 1
        else:
            progress.impl_iterations += 1

    update_backlog(cfg.backlog_path, _mutate)


def _set_loop_status(backlog_path: Path, status: LoopStatus) -> Backlog:
    def _mutate(backlog: Backlog) -> Backlog:
        backlog.progress.status = status
        return backlog

    return update_backlog(backlog_path, _mutate)


def _mark_failed(backlog_path: Path) -> None:
    """Record a failed run; the backlog itself may be what broke."""
    try:
        _set_loop_status(backlog_path, LoopStatus.FAILED)
    except (AutoLoopError, OSError) as exc:
        logger.warning("Could not record failed status in {}: {}", backlog_path, exc)


def _log_progress(cfg: LoopConfig, iteration: int, kind: IterationKind, task_id: str, err: Optional[Exception]) -> None:
    if err is None:
        entry = ProgressEntry(ProgressEntryType.COMPLETED, f"{kind.value} iteration finished", iteration, task_id)
    else:
        entry = ProgressEntry(ProgressEntryType.ERROR, f"{kind.value} iteration failed: {err}", iteration, task_id)
    append_progress(cfg.progress_path, entry)


def run_iteration(
    cfg: LoopConfig,
    iteration: int,
    prompt_path: Path,
    tracker: FailureTracker,
    *,
    kind: IterationKind = IterationKind.IMPLEMENTATION,
    task_id: str = "",
) -> Optional[AgentError]:
    """Run one agent invocation against *prompt_path*.

    Hooks fire around the invocation, the iteration counters and
    ``progress.md`` are updated, then the failure tracker is consulted.

    Returns:
        The agent error for a failed iteration, or None.

    Raises:
        LoopAbortedError: The consecutive-failure threshold was reached.
    """
    _notify(cfg.on_iteration_start, iteration)
    err: Optional[AgentError] = None
    try:
        cfg.invoke(_invocation(cfg, prompt_path))
    except AgentError as exc:
        err = exc
    _notify(cfg.on_iteration_end, iteration, err)

    _record_iteration(cfg, iteration, kind)
    _log_progress(cfg, iteration, kind, task_id, err)

    if err is not None:
        tracker.record_failure(iteration, err)
    else:
        tracker.record_success()
    return err


def pause_between(cfg: LoopConfig, iteration: int) -> None:
    """Sleep between iterations; never after the last one."""
    if iteration < cfg.max_iterations and cfg.pause_seconds > 0:
        cfg.sleep(cfg.pause_seconds)


def run_auto_loop(cfg: LoopConfig, check_sandbox: SandboxCheck = check_sandbox_available) -> LoopResult:
    """Run the implementation prompt until no pending task is left.

    Stops early, successfully, once the reloaded backlog has no pending task;
    otherwise runs up to ``cfg.max_iterations`` iterations.
    Any error that escapes the loop leaves the run marked ``failed``.

    Raises:
        ConfigError: Preflight failed; no iteration ran.
        LoopAbortedError: Too many consecutive agent failures.
    """
    preflight(cfg, check_sandbox)

    logger.info("=" * 70)
    logger.info("AUTO LOOP")
    logger.info("=" * 70)
    logger.info("Project directory: {}", cfg.project_dir)
    logger.info("AI tool: {}", cfg.ai_tool)
    logger.info("Sandbox: {}", cfg.sandbox)
    logger.info("Max iterations: {}", cfg.max_iterations)

    _set_loop_status(cfg.backlog_path, LoopStatus.RUNNING)
    tracker = FailureTracker(cfg.max_consecutive_failures)
    stop_reason = StopReason.MAX_ITERATIONS
    iterations_run = 0

    try:
        for iteration in range(1, cfg.max_iterations + 1):
            backlog = load_backlog(cfg.backlog_path)
            task = backlog.get_next_task()
            if task is None:
                logger.success("All tasks completed")
                stop_reason = StopReason.ALL_TASKS_DONE
                break
            logger.info("[iteration:{}] IMPLEMENTING - {}: {}", iteration, task.id, task.title)
            run_iteration(cfg, iteration, cfg.prompt_path, tracker, task_id=task.id)
            iterations_run += 1
            pause_between(cfg, iteration)
    except AutoLoopError:
        _mark_failed(cfg.backlog_path)
        raise

    final = load_backlog(cfg.backlog_path)
    if stop_reason == StopReason.MAX_ITERATIONS and final.get_next_task() is None:
        stop_reason = StopReason.ALL_TASKS_DONE
    status = LoopStatus.COMPLETED if stop_reason == StopReason.ALL_TASKS_DONE else LoopStatus.PAUSED
    final = _set_loop_status(cfg.backlog_path, status)

    logger.info(
        "Auto loop finished after {} iterations ({}): {}/{} tasks completed",
        iterations_run,
        stop_reason.value,
        final.progress.completed_tasks,
        final.progress.total_tasks,
    )
    return LoopResult(
        iterations_run=iterations_run,
        stop_reason=stop_reason,
        completed_tasks=final.progress.completed_tasks,
        total_tasks=final.progress.total_tasks,
    )
