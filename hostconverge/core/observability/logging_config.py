"""
Logging configuration — set up once by the CLI entry point.

Every module logs through ``logging.getLogger(__name__)``; this module
decides where those records go and how they look.

Level precedence:
    CLI flag  >  HC_LOG_LEVEL env var  >  INFO (default)

The console shows step decisions with the ``hostconverge.`` prefix
dropped from logger names. HC_LOG_FILE / HC_LOG_FILE_LEVEL add a file
handler whose records carry the process id, since cron and manual
runs may append to the same file.
"""

from __future__ import annotations

import logging
import os
import sys

DEFAULT_LEVEL = "INFO"

_PACKAGE_PREFIX = "hostconverge."

# (most verbose level the format applies to, format, datefmt)
_CONSOLE_FORMATS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_CONSOLE_QUIET = "%(levelname)s: %(message)s"

_FILE_FORMAT = "%(asctime)s [%(process)d] %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _ShortNameFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        name = record.name
        if name.startswith(_PACKAGE_PREFIX):
            record = logging.makeLogRecord(record.__dict__)
            record.name = name[len(_PACKAGE_PREFIX):]
        return super().format(record)


def resolve_level(flag_level: str | None, env: dict[str, str] | None = None) -> str:
    """Pick the console level from the CLI flag, then HC_LOG_LEVEL."""
    if flag_level:
        return flag_level
    env = os.environ if env is None else env
    return env.get("HC_LOG_LEVEL") or DEFAULT_LEVEL


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path of a log file.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_console_handler(console_level))
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root.addHandler(_file_handler(log_file, file_level))
        root_level = min(root_level, file_level)

    root.setLevel(root_level)
    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = _CONSOLE_QUIET, None
    for threshold, candidate, candidate_datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            fmt, datefmt = candidate, candidate_datefmt
            break
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(_ShortNameFormatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _parse_level(level: str | None) -> int:
    """Level name → numeric level; unknown names fall back to INFO."""
    if not level:
        return logging.INFO
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.INFO
    return numeric
