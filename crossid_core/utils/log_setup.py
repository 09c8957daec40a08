"""
Logging Setup
=============

Root logger configuration for hosts embedding the engine.
Library modules only call ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """
    Configure the ``crossid_core`` logger hierarchy.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        fmt: Optional log format string
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("crossid_core")
    logger.setLevel(log_level)

    if not any(getattr(h, "_crossid", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
        handler._crossid = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
