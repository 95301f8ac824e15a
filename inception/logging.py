"""Logging setup shared by the inception commands.

Log records go to stderr so that command results printed on stdout
(``verify --json``, ``did``, ``fingerprint``) stay machine readable.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

ROOT_LOGGER = "inception"

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

SHORT_FORMAT = "%(levelname)-8s %(message)s"
DEBUG_FORMAT = "[%(asctime)s] %(levelname)-8s [%(name)s] %(message)s"


def resolve_level(level: str = "INFO", verbose: int = 0, quiet: bool = False) -> int:
    """Turn the configured level and the -v/-q flags into a logging level."""
    if quiet:
        return logging.ERROR
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return LEVELS.get(level.upper(), logging.INFO)


def setup_logging(
    level: str = "INFO",
    verbose: int = 0,
    quiet: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the ``inception`` logger.

    Args:
        level: Level from configuration (DEBUG, INFO, WARNING, ERROR)
        verbose: Number of -v flags; overrides level
        quiet: Only report errors
        stream: Where records are written (defaults to stderr)

    Returns:
        The configured package logger
    """
    effective = resolve_level(level, verbose, quiet)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(effective)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(effective)
    if effective <= logging.DEBUG:
        handler.setFormatter(logging.Formatter(DEBUG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(SHORT_FORMAT))
    logger.addHandler(handler)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the package logger, or its child ``inception.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)
