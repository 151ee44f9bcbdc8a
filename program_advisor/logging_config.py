"""Logging setup for the program advisor backend."""

from __future__ import annotations

import logging
import sys

from .config import get_advisor_settings

PACKAGE_LOGGER = "program_advisor"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Attach a stderr handler to the package logger.

    Safe to call more than once; the handler is only installed the first time.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    resolved = level or get_advisor_settings().log_level
    logger.setLevel(getattr(logging, resolved.upper(), logging.INFO))

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="[%(asctime)s] %(levelname)s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    return logger
