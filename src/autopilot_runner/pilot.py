"""Pilot mode: alternate discovery and implementation iterations."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .agent import invoke_agent
from .backlog import AutoConfig, LoopStatus, PilotConfig, get_backlog_path, load_backlog
from .bootstrap import init_pilot
from .config import LoopSettings, resolve_loop_settings
from .constants import AUTO_DIR, DISCOVERY_PROMPT_FILE
from .errors import AutoLoopError, BacklogNotFoundError
from .loop import (
    AgentInvoker,
    FailureTracker,
    IterationEndHook,
    IterationStartHook,
    LoopConfig,
    SandboxCheck,
    StopReason,
    _mark_failed,
    _set_loop_status,
    new_loop_config,
    pause_between,
    preflight,
    run_iteration,
)
from .sandbox import check_sandbox_available
from .scheduler import IterationKind, choose_iteration_kind, should_stop_for_empty_discoveries


@dataclass
class PilotSummary:
    discovery_iterations: int = 0
    implementation_iterations: int = 0
    tasks_generated: int = 0
    tasks_completed: int = 0
    total_tasks: int = 0
    remaining_tasks: int = 0
    stop_reason: StopReason = StopReason.MAX_ITERATIONS


def _needs_init(project_dir: Path) -> bool:
    try:
        backlog = load_backlog(get_backlog_path(project_dir))
    except BacklogNotFoundError:
        return True
    return not backlog.config.pilot_mode


def _discovery_prompt_path(project_dir: Path, config: AutoConfig) -> Path:
    return project_dir / (config.discovery_prompt_file or f"{AUTO_DIR}/{DISCOVERY_PROMPT_FILE}")


def run_pilot_loop(
    project_dir: Path,
    auto_config: Optional[AutoConfig] = None,
    pilot_config: Optional[PilotConfig] = None,
    *,
    max_iterations: Optional[int] = None,
    settings: Optional[LoopSettings] = None,
    invoke: AgentInvoker = invoke_agent,
    on_iteration_start: Optional[IterationStartHook] = None,
    on_iteration_end: Optional[IterationEndHook] = None,
    check_sandbox: SandboxCheck = check_sandbox_available,
    sleep: Callable[[float], None] = time.sleep,
) -> PilotSummary:
    """Discover work, implement it, and repeat until something stops the run.

    The project is (re)initialized for pilot mode when it has no pilot
    backlog yet or when configs are passed explicitly; existing tasks are kept.

    Each iteration reloads the backlog, asks the scheduler whether it is a
    discovery iteration, and runs the matching prompt. The run stops when:

    - ``max_iterations`` is reached (default: ``config.max_iterations``),
    - an implementation iteration finds no pending task (all work done),
    - discovery came back empty ``max_empty_discoveries`` times in a row and
      nothing is pending.

    Raises:
        ConfigError: Preflight failed; no iteration ran.
        LoopAbortedError: Too many consecutive agent failures.
        AutoLoopError: Anything else that broke the run; the run is marked
            ``failed`` first.
    """
    project_dir = Path(project_dir).resolve()
    if auto_config is not None or pilot_config is not None or _needs_init(project_dir):
        init_pilot(project_dir, auto_config, pilot_config)

    backlog_path = get_backlog_path(project_dir)
    backlog = load_backlog(backlog_path)
    pilot = backlog.config.pilot_config
    if settings is None:
        settings = resolve_loop_settings(project_dir)

    cfg: LoopConfig = new_loop_config(project_dir, backlog, settings)
    if max_iterations is not None:
        cfg.max_iterations = max_iterations
    cfg.invoke = invoke
    cfg.on_iteration_start = on_iteration_start
    cfg.on_iteration_end = on_iteration_end
    cfg.sleep = sleep

    discovery_prompt = _discovery_prompt_path(project_dir, backlog.config)
    preflight(cfg, check_sandbox, extra_prompts=(discovery_prompt,))

    logger.info("=" * 70)
    logger.info("PILOT MODE")
    logger.info("=" * 70)
    logger.info("AI tool: {}", cfg.ai_tool)
    logger.info("Iterations: {}", cfg.max_iterations)
    logger.info("Discover: every {} iterations", pilot.discover_interval)
    if pilot.focus:
        logger.info("Focus: {}", pilot.focus)

    summary = PilotSummary()
    initial_total = len(backlog.tasks)
    tracker = FailureTracker(cfg.max_consecutive_failures)
    last_discovery = 0
    empty_discoveries = 0

    _set_loop_status(backlog_path, LoopStatus.RUNNING)
    try:
        for iteration in range(1, cfg.max_iterations + 1):
            current = load_backlog(backlog_path)
            kind = choose_iteration_kind(current, iteration, last_discovery, pilot.discover_interval)

            if kind == IterationKind.DISCOVERY:
                logger.info("[iteration:{}] DISCOVERY - analyzing project for tasks...", iteration)
                last_discovery = iteration
                summary.discovery_iterations += 1
                tasks_before = len(current.tasks)
                run_iteration(cfg, iteration, discovery_prompt, tracker, kind=kind)

                added = len(load_backlog(backlog_path).tasks) - tasks_before
                if added <= 0:
                    empty_discoveries += 1
                    logger.warning(
                        "[iteration:{}] Discovery found no new tasks ({}/{} empty)",
                        iteration,
                        empty_discoveries,
                        settings.max_empty_discoveries,
                    )
                else:
                    empty_discoveries = 0
                    logger.success("[iteration:{}] Discovery added {} new tasks", iteration, added)
            else:
                task = current.get_next_task()
                if task is None:
                    logger.success("All tasks completed and no more to discover!")
                    summary.stop_reason = StopReason.ALL_TASKS_DONE
                    break
                logger.info("[iteration:{}] IMPLEMENTING - {}: {}", iteration, task.id, task.title)
                summary.implementation_iterations += 1
                run_iteration(cfg, iteration, cfg.prompt_path, tracker, kind=kind, task_id=task.id)

            if empty_discoveries >= settings.max_empty_discoveries:
                pending = load_backlog(backlog_path).count_pending()
                if should_stop_for_empty_discoveries(empty_discoveries, pending, settings.max_empty_discoveries):
                    logger.info("No new tasks after {} discoveries. Stopping.", empty_discoveries)
                    summary.stop_reason = StopReason.NO_NEW_TASKS
                    break

            pause_between(cfg, iteration)
    except AutoLoopError:
        _mark_failed(backlog_path)
        raise

    status = LoopStatus.COMPLETED if summary.stop_reason == StopReason.ALL_TASKS_DONE else LoopStatus.PAUSED
    final = _set_loop_status(backlog_path, status)
    summary.total_tasks = final.progress.total_tasks
    summary.tasks_completed = final.progress.completed_tasks
    summary.tasks_generated = max(0, summary.total_tasks - initial_total)
    summary.remaining_tasks = final.count_pending()

    logger.info("Pilot summary ({})", summary.stop_reason.value)
    logger.info("  Discovery iterations:      {}", summary.discovery_iterations)
    logger.info("  Implementation iterations: {}", summary.implementation_iterations)
    logger.info("  Tasks generated:           {}", summary.tasks_generated)
    logger.info("  Tasks completed:           {}/{}", summary.tasks_completed, summary.total_tasks)
    logger.info("  Remaining:                 {}", summary.remaining_tasks)
    return summary
