"""Create the per-project ``.claude/auto`` directory for plain and pilot runs."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from loguru import logger

from .backlog import (
    AITool,
    AutoConfig,
    Backlog,
    PilotConfig,
    SandboxMode,
    get_auto_dir,
    get_backlog_path,
    load_backlog,
    new_backlog,
    new_pilot_backlog,
    save_backlog,
)
from .backlog.model import is_valid_ai_tool, is_valid_sandbox_mode, supported_values
from .constants import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PILOT_ITERATIONS,
    DISCOVERY_PROMPT_FILE,
    PROGRESS_FILE,
    PROMPT_FILE,
    QUALITY_CHECKS_BY_MARKER,
)
from .convert import convert_markdown_to_backlog, find_tasks_file
from .errors import BacklogNotFoundError, ConfigError
from .prompts import generate_discovery_prompt, generate_prompt_file
from .utils import _now_iso


def detect_quality_checks(project_dir: Path) -> list[str]:
    """Guess quality gate commands from the first recognised project marker."""
    project_dir = Path(project_dir)
    for marker, commands in QUALITY_CHECKS_BY_MARKER:
        if (project_dir / marker).exists():
            return list(commands)
    return []


def _progress_header(title: str) -> str:
    return (
        f"# {title}\n\n"
        f"Started: {_now_iso()}\n\n"
        "Entries: `[timestamp] [iteration:N] [task:ID] TYPE: message`\n\n"
    )


def _write_if_missing(path: Path, content: str) -> None:
    if path.exists():
        return
    path.write_text(content, encoding="utf-8")


def build_auto_config(
    ai_tool: str = AITool.CLAUDE.value,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    sandbox: str = SandboxMode.NONE.value,
    sandbox_image: str = "",
    sandbox_template: str = "",
    quality_checks: Optional[list[str]] = None,
) -> AutoConfig:
    if not is_valid_ai_tool(ai_tool):
        raise ConfigError(f"unsupported AI tool: {ai_tool} (supported: {supported_values(AITool)})")
    if not is_valid_sandbox_mode(sandbox):
        raise ConfigError(f"unsupported sandbox mode: {sandbox} (supported: {supported_values(SandboxMode)})")
    if max_iterations < 1:
        raise ConfigError(f"max_iterations must be >= 1, got {max_iterations}")
    return AutoConfig(
        max_iterations=max_iterations,
        quality_checks=list(quality_checks or []),
        ai_tool=AITool(ai_tool.lower()),
        sandbox=SandboxMode(sandbox.lower()),
        sandbox_image=sandbox_image,
        sandbox_template=sandbox_template,
    )


def init_auto(
    project_dir: Path,
    config: Optional[AutoConfig] = None,
    *,
    prd_path: Optional[Path] = None,
    tasks_path: Optional[Path] = None,
) -> Backlog:
    """Initialize plain auto mode: prompt, progress log and backlog.

    With ``prd_path`` the backlog is imported from the markdown PRD and its
    ``tasks-<name>`` companion (or ``tasks_path`` when given).

    Returns:
        The backlog that was written.
    """
    project_dir = Path(project_dir).resolve()
    config = config or AutoConfig(quality_checks=detect_quality_checks(project_dir))
    auto_dir = get_auto_dir(project_dir)
    auto_dir.mkdir(parents=True, exist_ok=True)

    if prd_path is not None:
        tasks_file = tasks_path or find_tasks_file(Path(prd_path))
        backlog = convert_markdown_to_backlog(Path(prd_path), tasks_file)
    else:
        backlog = new_backlog(project_dir.name)
    backlog.config = config

    save_backlog(backlog, get_backlog_path(project_dir))
    (auto_dir / PROMPT_FILE).write_text(generate_prompt_file(config), encoding="utf-8")
    _write_if_missing(auto_dir / PROGRESS_FILE, _progress_header("Auto Loop Progress Log"))

    logger.info("Initialized auto loop in {} ({} tasks)", auto_dir, len(backlog.tasks))
    return backlog


def init_pilot(
    project_dir: Path,
    config: Optional[AutoConfig] = None,
    pilot: Optional[PilotConfig] = None,
) -> Backlog:
    """Initialize pilot mode.

    Tasks of an existing backlog are kept; only its config is switched to
    pilot mode. A corrupted backlog is not overwritten: the load error
    propagates.
    """
    project_dir = Path(project_dir).resolve()
    config = config or AutoConfig(
        max_iterations=DEFAULT_PILOT_ITERATIONS,
        quality_checks=detect_quality_checks(project_dir),
    )
    pilot = pilot or PilotConfig()
    auto_dir = get_auto_dir(project_dir)
    auto_dir.mkdir(parents=True, exist_ok=True)
    backlog_path = get_backlog_path(project_dir)

    backlog = new_pilot_backlog(project_dir, config, pilot)
    try:
        existing = load_backlog(backlog_path)
    except BacklogNotFoundError:
        existing = None
    if existing is not None:
        existing.config = backlog.config
        backlog = existing
        logger.info("Keeping {} existing tasks", len(backlog.tasks))

    save_backlog(backlog, backlog_path)
    (auto_dir / PROMPT_FILE).write_text(generate_prompt_file(backlog.config), encoding="utf-8")
    (auto_dir / DISCOVERY_PROMPT_FILE).write_text(
        generate_discovery_prompt(backlog.config, pilot), encoding="utf-8"
    )
    _write_if_missing(auto_dir / PROGRESS_FILE, _progress_header("Pilot Mode Progress Log"))

    logger.info("Initialized pilot mode in {}", auto_dir)
    return backlog
