"""Sandbox dispatch helpers: Docker argument builders and availability checks."""

from __future__ import annotations

import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .backlog import SandboxMode
from .constants import (
    AI_TOOL_ENV_VARS,
    DEFAULT_DOCKER_SANDBOX_AGENT,
    DOCKER_CONTAINER_MOUNT,
    SANDBOX_CHECK_TIMEOUT_SECONDS,
)

# [registry/]name[:tag][@digest]; rejects shell metacharacters and paths.
_SANDBOX_IMAGE_RE = re.compile(
    r"^[a-zA-Z0-9][a-zA-Z0-9._\-/]*(:[a-zA-Z0-9._\-]+)?(@sha256:[a-f0-9]{64})?$"
)


@dataclass(frozen=True)
class SandboxAvailability:
    available: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class DockerSandboxRunConfig:
    agent: str = DEFAULT_DOCKER_SANDBOX_AGENT
    work_dir: str = "."
    template: str = ""
    name: str = ""
    agent_args: tuple[str, ...] = ()


def is_valid_sandbox_image(image: str) -> bool:
    if not image or image.startswith(("/", ".")):
        return False
    return bool(_SANDBOX_IMAGE_RE.match(image))


def ai_tool_env_args(environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """``-e KEY=VALUE`` pairs for allow-listed variables set on the host."""
    env = os.environ if environ is None else environ
    args: list[str] = []
    for name in AI_TOOL_ENV_VARS:
        if name in env:
            args.extend(["-e", f"{name}={env[name]}"])
    return args


def _user_flag() -> list[str]:
    if hasattr(os, "getuid") and hasattr(os, "getgid"):
        return [f"--user={os.getuid()}:{os.getgid()}"]
    return []


def build_docker_run_args(
    work_dir: Path,
    image: str,
    ai_tool: str,
    agent_args: Sequence[str],
    environ: Optional[Mapping[str, str]] = None,
) -> list[str]:
    args = ["run", "--rm", "--init", "-i"]
    args.extend(_user_flag())
    args.extend(["-v", f"{work_dir}:{DOCKER_CONTAINER_MOUNT}", "-w", DOCKER_CONTAINER_MOUNT])
    args.extend(ai_tool_env_args(environ))
    args.append(image)
    args.append(ai_tool)
    args.extend(agent_args)
    return args


def build_docker_sandbox_args(config: DockerSandboxRunConfig) -> list[str]:
    args = ["sandbox", "run"]
    if config.name:
        args.extend(["--name", config.name])
    if config.template:
        args.extend(["--template", config.template])
    args.append(config.agent or DEFAULT_DOCKER_SANDBOX_AGENT)
    args.append(config.work_dir or ".")
    if config.agent_args:
        args.append("--")
        args.extend(config.agent_args)
    return args


def _probe(command: list[str]) -> bool:
    try:
        result = subprocess.run(
            command,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=SANDBOX_CHECK_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def check_sandbox_available(mode: SandboxMode | str) -> SandboxAvailability:
    """Check once, before the loop starts, that *mode* can actually run."""
    mode = SandboxMode(str(getattr(mode, "value", mode)).lower())
    if mode == SandboxMode.NONE:
        return SandboxAvailability(True)
    if shutil.which("docker") is None:
        return SandboxAvailability(False, "docker not found in PATH; install Docker or use sandbox=none")
    if mode == SandboxMode.DOCKER:
        if not _probe(["docker", "info"]):
            return SandboxAvailability(
                False, "docker daemon is not running; start Docker Desktop or the docker service"
            )
        return SandboxAvailability(True)
    if not _probe(["docker", "sandbox", "version"]):
        return SandboxAvailability(
            False, "docker sandbox plugin not available; install Docker Desktop with Sandbox support"
        )
    return SandboxAvailability(True)
