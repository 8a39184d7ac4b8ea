"""
Project-wide logging setup.

Usage in scripts:

    from crosswalk_sentinel.logging_utils import get_logger
    logger = get_logger(__name__, level="DEBUG")
    logger.info("Replayed %d messages", n)

Library modules just use logging.getLogger(__name__) and leave handler
configuration to whoever runs them.
"""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%H:%M:%S"


def get_logger(name: str, level: int | str = logging.INFO) -> logging.Logger:
    """
    Return a named logger with a consistent format.

    Handlers are only attached once per name, so calling this repeatedly
    never duplicates log lines. ``level`` accepts either a logging constant
    or a level name such as ``"WARNING"`` (the form used in the YAML config).
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
