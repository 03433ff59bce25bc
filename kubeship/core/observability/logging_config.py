"""
Logging setup for a kubeship run.

The console format depends on the level: bare messages at WARNING,
timestamps and logger names at INFO (what a CI build log wants while
the exposure and rollout polls run), file:line at DEBUG. Setting
KUBESHIP_LOG_FILE adds a file handler that always logs full detail.

Level precedence is CLI flag, then KUBESHIP_LOG_LEVEL, then WARNING.
"""

from __future__ import annotations

import logging
import sys
from typing import Mapping

LOG_LEVEL_ENV = "KUBESHIP_LOG_LEVEL"
LOG_FILE_ENV = "KUBESHIP_LOG_FILE"
LOG_FILE_LEVEL_ENV = "KUBESHIP_LOG_FILE_LEVEL"

_DETAILED = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"

# level ceiling → (format, datefmt)
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_CONSOLE_DEFAULT = ("%(message)s", None)

_FILE_FORMAT = (_DETAILED, "%Y-%m-%d %H:%M:%S")

# SDK and HTTP loggers pulled in by the aws tooling
_NOISY_LOGGERS = ("urllib3", "botocore", "boto3", "s3transfer", "charset_normalizer")


def level_from_flags(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Resolve the console level name from CLI flags and the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return (environ or {}).get(LOG_LEVEL_ENV) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Install the console (and optional file) handler on the root logger.

    Safe to call more than once; previous handlers are replaced.

    Args:
        level: Console level name.
        log_file: Path of an extra log file, if any.
        log_file_level: Level for the file (defaults to ``level``).
        quiet_third_party: Hold SDK loggers at WARNING unless at DEBUG.
    """
    console_level = _parse_level(level)
    fmt, datefmt = _console_format(console_level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(*_FILE_FORMAT))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def setup_logging_from_env(level: str, environ: Mapping[str, str], *, debug: bool = False) -> None:
    """:func:`setup_logging` with the file settings taken from *environ*."""
    setup_logging(
        level=level,
        log_file=environ.get(LOG_FILE_ENV) or None,
        log_file_level=environ.get(LOG_FILE_LEVEL_ENV) or None,
        quiet_third_party=not debug,
    )


def _console_format(level: int) -> tuple[str, str | None]:
    for ceiling, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= ceiling:
            return fmt, datefmt
    return _CONSOLE_DEFAULT


def _parse_level(level: str | None) -> int:
    """Level name → numeric level; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
