"""Configure the loguru sink used for operator-facing loop output.

The package ships no entry point; programs that embed the loops call
:func:`configure_logging` once at startup, before ``run_auto_loop`` or
``run_pilot_loop``. Without it loguru keeps its default DEBUG sink.
"""

from __future__ import annotations

import sys

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """Replace every loguru sink with one stderr sink at *level*.

    Safe to call more than once; each call drops the previous sinks, so
    iteration banners never print twice.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "{message}"
        ),
    )
