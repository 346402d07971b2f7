"""Logging setup for pagefetch.

Fetch outcomes are logged as `key=value` pairs (`function=fetch url=... err=...
took=...`); the line prefix uses the same shape so a log line can be split on spaces
and `=` without knowing which module wrote it.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pagefetch.config.loader import LoggingSettings

LOGGER_NAME = "pagefetch"
LOG_FILENAME = f"{LOGGER_NAME}.log"
LOG_FORMAT = "%(asctime)s level=%(levelname)s logger=%(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
MAX_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 5

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def configure_logging(
    settings: LoggingSettings | None = None,
    *,
    log_path: Path | None = None,
    level: str | None = None,
    mirror_to_console: bool = False,
) -> logging.Logger:
    """Route the pagefetch logger to a rotating file and return it.

    `log_path` and `level` override the values in `settings`. The console mirror
    writes to stderr; stdout carries fetched content.
    """

    settings = settings or LoggingSettings()
    numeric_level = _normalize_level(level or settings.level)
    file_path = _resolve_log_path(log_path or settings.path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = False
    logger.setLevel(numeric_level)

    handlers: list[logging.Handler] = [
        RotatingFileHandler(
            file_path,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    ]
    if mirror_to_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def _normalize_level(level: str) -> int:
    try:
        return _LEVELS[level.strip().lower()]
    except KeyError as exc:
        raise ValueError(f"Unsupported log level: {level!r}") from exc


def _resolve_log_path(log_path: Path | None) -> Path:
    """Resolve a file or directory to the log file path; directories get pagefetch.log."""

    if log_path is None:
        return Path.cwd() / LOG_FILENAME

    candidate = log_path if log_path.is_absolute() else Path.cwd() / log_path
    if candidate.is_dir() or candidate.suffix == "":
        return candidate / LOG_FILENAME
    return candidate
