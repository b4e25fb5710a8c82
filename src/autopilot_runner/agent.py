"""Run one iteration of the external AI coding agent."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from loguru import logger

from .backlog import AITool, SandboxMode
from .backlog.model import is_valid_ai_tool, supported_values
from .constants import DEFAULT_SANDBOX_IMAGE, DOCKER_CONTAINER_MOUNT
from .errors import AgentError, ConfigError
from .sandbox import (
    DockerSandboxRunConfig,
    build_docker_run_args,
    build_docker_sandbox_args,
    is_valid_sandbox_image,
)


@dataclass(frozen=True)
class AgentInvocation:
    project_dir: Path
    prompt_path: Path
    ai_tool: str = AITool.CLAUDE.value
    sandbox: str = SandboxMode.NONE.value
    sandbox_image: str = ""
    sandbox_template: str = ""


def get_agent_args(ai_tool: str, prompt_path: Path) -> list[str]:
    """CLI arguments that hand *prompt_path* to *ai_tool*.

    Claude has no prompt-file flag, so its prompt text is passed inline.
    """
    if ai_tool == AITool.CLAUDE.value:
        try:
            content = Path(prompt_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise AgentError(f"failed to read prompt file {prompt_path}: {exc}") from exc
        return ["-p", content, "--dangerously-skip-permissions"]
    if ai_tool == AITool.CODEX.value:
        return ["--prompt-file", str(prompt_path), "--auto"]
    if ai_tool == AITool.AMP.value:
        return ["--prompt-file", str(prompt_path)]
    return [str(prompt_path)]


def _container_prompt_path(project_dir: Path, prompt_path: Path) -> str:
    try:
        rel = Path(prompt_path).resolve().relative_to(Path(project_dir).resolve())
    except ValueError as exc:
        raise ConfigError(
            f"prompt file {prompt_path} must live inside the project to run in a container"
        ) from exc
    return f"{DOCKER_CONTAINER_MOUNT}/{rel.as_posix()}"


def build_agent_command(
    invocation: AgentInvocation,
    environ: Optional[Mapping[str, str]] = None,
) -> list[str]:
    """Full argv for one invocation, dispatched on the sandbox mode."""
    tool = invocation.ai_tool.lower()
    sandbox = invocation.sandbox.lower()

    if sandbox == SandboxMode.DOCKER.value:
        image = invocation.sandbox_image or DEFAULT_SANDBOX_IMAGE
        if not is_valid_sandbox_image(image):
            raise ConfigError(
                f"refused to use invalid sandbox image {image!r}: must match Docker image reference format"
            )
        if tool == AITool.CLAUDE.value:
            agent_args = get_agent_args(tool, invocation.prompt_path)
        else:
            container_prompt = _container_prompt_path(invocation.project_dir, invocation.prompt_path)
            agent_args = get_agent_args(tool, Path(container_prompt))
        return ["docker", *build_docker_run_args(Path(invocation.project_dir), image, tool, agent_args, environ)]

    if sandbox == SandboxMode.DOCKER_SANDBOX.value:
        sandbox_cfg = DockerSandboxRunConfig(
            agent=tool,
            work_dir=str(invocation.project_dir),
            template=invocation.sandbox_template,
            agent_args=tuple(get_agent_args(tool, invocation.prompt_path)),
        )
        return ["docker", *build_docker_sandbox_args(sandbox_cfg)]

    if sandbox != SandboxMode.NONE.value:
        raise ConfigError(
            f"unsupported sandbox mode: {invocation.sandbox} (supported: {supported_values(SandboxMode)})"
        )
    return [tool, *get_agent_args(tool, invocation.prompt_path)]


def invoke_agent(invocation: AgentInvocation) -> None:
    """Run the agent once and block until it exits.

    The tool name is checked against the allow-list first: it comes from a
    file the agent itself can edit.

    Raises:
        ConfigError: Unsupported tool, sandbox mode or image.
        AgentError: The process could not start or exited non-zero.
    """
    if not is_valid_ai_tool(invocation.ai_tool):
        raise ConfigError(
            f"refused to invoke invalid AI tool {invocation.ai_tool!r} (allowed: {supported_values(AITool)})"
        )
    command = build_agent_command(invocation)
    logger.debug("Agent command: {}", shlex.join(command[:1] + [_abbreviate(a) for a in command[1:]]))

    try:
        result = subprocess.run(
            command,
            cwd=invocation.project_dir,
            env=os.environ.copy(),
            check=False,
        )
    except OSError as exc:
        raise AgentError(f"failed to start {command[0]}: {exc}") from exc
    if result.returncode != 0:
        raise AgentError(
            f"{invocation.ai_tool} exited with code {result.returncode}",
            exit_code=result.returncode,
        )


def _abbreviate(arg: str, limit: int = 80) -> str:
    return (arg[:limit] + "…") if len(arg) > limit else arg
