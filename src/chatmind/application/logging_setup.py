"""structlog configuration shared by embedding applications and scripts."""

from __future__ import annotations

import logging
import os

import structlog

_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_log_level(level: str | None = None) -> int:
    """Map a level name (or the ``LOGLEVEL`` env var) to a logging constant."""
    name = (level or os.getenv("LOGLEVEL", "INFO")).upper()
    return _LOG_LEVELS.get(name, logging.INFO)


def configure_logging(level: str | None = None) -> int:
    """Configure stdlib logging and structlog with the same level.

    Returns:
        The numeric level that was applied.
    """
    log_level = resolve_log_level(level)
    logging.basicConfig(level=log_level, format="%(message)s")
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )
    return log_level
