"""Load optional runner tuning from `.claude/auto/config.yaml` and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from .constants import (
    AUTO_DIR,
    CONFIG_FILE,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
    DEFAULT_MAX_EMPTY_DISCOVERIES,
    DEFAULT_PAUSE_SECONDS,
    MAX_CONSECUTIVE_FAILURES_ENV,
    PAUSE_SECONDS_ENV,
)
from .errors import ConfigError
from .io_utils import _load_data_with_error


@dataclass(frozen=True)
class LoopSettings:
    pause_seconds: float = DEFAULT_PAUSE_SECONDS
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    max_empty_discoveries: int = DEFAULT_MAX_EMPTY_DISCOVERIES


def load_runner_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional runner config file.

    Args:
        project_dir: Repository root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = Path(project_dir).resolve() / AUTO_DIR / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _non_negative_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 0 else None


def get_loop_settings(
    config: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> LoopSettings:
    """Resolve loop tuning: defaults, then config file, then environment.

    Values that do not parse are ignored rather than rejected.
    """
    env = os.environ if environ is None else environ
    pause = _non_negative_float(config.get("pause_seconds"))
    failures = _positive_int(config.get("max_consecutive_failures"))
    empty = _positive_int(config.get("max_empty_discoveries"))

    env_pause = _non_negative_float(env.get(PAUSE_SECONDS_ENV))
    if env_pause is not None:
        pause = env_pause
    env_failures = _positive_int(env.get(MAX_CONSECUTIVE_FAILURES_ENV))
    if env_failures is not None:
        failures = env_failures

    return LoopSettings(
        pause_seconds=DEFAULT_PAUSE_SECONDS if pause is None else pause,
        max_consecutive_failures=failures or DEFAULT_MAX_CONSECUTIVE_FAILURES,
        max_empty_discoveries=empty or DEFAULT_MAX_EMPTY_DISCOVERIES,
    )


def resolve_loop_settings(project_dir: Path, environ: Optional[Mapping[str, str]] = None) -> LoopSettings:
    config, err = load_runner_config(project_dir)
    if err:
        raise ConfigError(f"Invalid runner config ({err}); fix or delete {AUTO_DIR}/{CONFIG_FILE}")
    return get_loop_settings(config, environ)
