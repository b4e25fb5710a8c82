"""Decide what kind of iteration runs next.

Everything here is a pure function of the freshly reloaded backlog and the
loop counters, so the policy can be tested without running an agent.
"""

from __future__ import annotations

from enum import Enum

from .backlog import Backlog
from .constants import DEFAULT_MAX_EMPTY_DISCOVERIES


class IterationKind(str, Enum):
    DISCOVERY = "discovery"
    IMPLEMENTATION = "implementation"


def count_pending_tasks(backlog: Backlog) -> int:
    return backlog.count_pending()


def should_run_discovery(
    backlog: Backlog,
    iteration: int,
    last_discovery_iteration: int,
    discover_interval: int,
) -> bool:
    """Return True when iteration *iteration* should be a discovery run.

    The first pilot iteration always discovers (``last_discovery_iteration``
    is 0 until a discovery has run); after that, discovery recurs once
    ``discover_interval`` iterations have elapsed.
    """
    if last_discovery_iteration == 0:
        return True
    return iteration - last_discovery_iteration >= discover_interval


def choose_iteration_kind(
    backlog: Backlog,
    iteration: int,
    last_discovery_iteration: int,
    discover_interval: int,
) -> IterationKind:
    if should_run_discovery(backlog, iteration, last_discovery_iteration, discover_interval):
        return IterationKind.DISCOVERY
    return IterationKind.IMPLEMENTATION


def should_stop_for_empty_discoveries(
    empty_discoveries: int,
    pending_tasks: int,
    threshold: int = DEFAULT_MAX_EMPTY_DISCOVERIES,
) -> bool:
    """Stop once discovery keeps coming back empty and nothing is left to do."""
    return empty_discoveries >= threshold and pending_tasks == 0
