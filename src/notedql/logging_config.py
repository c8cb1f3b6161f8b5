"""Logging configuration for the notedql CLI."""

from __future__ import annotations

import logging
import sys


LOGGER_NAME = "notedql"

PROGRESS_FORMAT = "%(message)s"
DEBUG_FORMAT = "%(levelname)s %(message)s"


def verbosity_level(verbosity: int) -> int:
    """Map a `-v` count onto a logging level.

    0 keeps warnings only, 1 adds progress messages (files, stage counts),
    2 or more adds per-row evaluation failures.
    """
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbosity: int) -> None:
    """Configure the package logger for the given `-v` count.

    Args:
        verbosity: Number of `--verbose` flags; above zero logs to stdout
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.propagate = False
    level = verbosity_level(verbosity)
    logger.setLevel(level)
    logger.handlers.clear()

    if level < logging.WARNING:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(
            logging.Formatter(DEBUG_FORMAT if level == logging.DEBUG else PROGRESS_FORMAT)
        )
        logger.addHandler(handler)
