"""Provide the public `autopilot_runner` package exports."""

from __future__ import annotations

from .bootstrap import init_auto, init_pilot
from .logging_utils import configure_logging
from .loop import LoopConfig, LoopResult, StopReason, new_loop_config, run_auto_loop
from .pilot import PilotSummary, run_pilot_loop

__all__ = [
    "LoopConfig",
    "LoopResult",
    "PilotSummary",
    "StopReason",
    "configure_logging",
    "init_auto",
    "init_pilot",
    "new_loop_config",
    "run_auto_loop",
    "run_pilot_loop",
]
