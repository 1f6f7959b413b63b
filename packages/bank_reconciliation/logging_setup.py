"""Logging configuration for the ``bank_reconciliation`` package.

Engine modules only ever call ``get_logger("bank_reconciliation.<module>")``;
batch scans (duplicate detection, link scans, orphan repair, batch matching)
log one DEBUG line per item and an INFO summary.

``configure_logging`` attaches one handler to the package logger. Its lines
name the engine component instead of the full logger name::

    2025-03-01 10:12:03 INFO    dedup: screen_import: new=12 already_present=3 conflicts=0

Until an entry point configures logging the package logger carries a
``NullHandler``, so library use stays silent.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "bank_reconciliation"
DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s %(component)s: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"
_CONFIGURED = False


class ComponentFilter(logging.Filter):
    """Expose the engine component (``dedup``, ``links``...) as ``%(component)s``."""

    def filter(self, record: logging.LogRecord) -> bool:
        prefix = _PKG_LOGGER_NAME + "."
        name = record.name
        record.component = name[len(prefix):] if name.startswith(prefix) else name
        return True


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
        raise ValueError(f"Unknown log level: {level!r}")
    env_val = os.getenv("RECON_LOG_LEVEL")
    if env_val:
        return _parse_level(env_val)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Configure the package logger once per process.

    ``level`` falls back to ``RECON_LOG_LEVEL`` and then INFO; ``fmt`` to
    :data:`DEFAULT_FORMAT`; ``stream`` to the current ``sys.stderr``.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(resolved)
    handler.addFilter(ComponentFilter())
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT, DEFAULT_DATEFMT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "ComponentFilter", "DEFAULT_FORMAT"]
