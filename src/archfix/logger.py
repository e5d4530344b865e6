"""Centralized Loguru configuration for archfix."""

from __future__ import annotations

import sys

from loguru import logger

_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)

# Replace loguru's default sink with a concise stderr sink
logger.remove()
logger.add(sys.stderr, level="WARNING", format=_FORMAT, colorize=True)


def configure_logger(level: str = "WARNING", serialize: bool = False) -> None:
    """Reconfigure the global logger (called from the CLI).

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
        serialize: If True, output JSON lines instead of human-readable text.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="{message}" if serialize else _FORMAT,
        serialize=serialize,
        colorize=not serialize,
    )
