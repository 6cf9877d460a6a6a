"""
Logging configuration — one call from the CLI, before any command runs.

Modules log through ``logging.getLogger(__name__)`` and never attach
handlers of their own. Output of pg_ctl and the other tools is logged
as whole blocks, so console formats stay short enough for those blocks
to remain readable.

Level precedence:
    --debug / --verbose / --quiet  >  $PGCONTROL_LOG_LEVEL  >  WARNING

A second destination can be added with $PGCONTROL_LOG_FILE, at its own
level given by $PGCONTROL_LOG_FILE_LEVEL.
"""

from __future__ import annotations

import logging
import sys

LOG_LEVEL_ENV = "PGCONTROL_LOG_LEVEL"
LOG_FILE_ENV = "PGCONTROL_LOG_FILE"
LOG_FILE_LEVEL_ENV = "PGCONTROL_LOG_FILE_LEVEL"

# (threshold, format, datefmt): first row whose threshold is >= level
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s %(levelname)-5s %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(levelname)s %(message)s", None),
)

_FILE_FORMAT = "%(asctime)s [%(process)d] %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("asyncio", "urllib3")


def parse_level(level: str | None) -> int:
    """Numeric level for a level name; WARNING when empty or unknown."""
    if not level:
        return logging.WARNING
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.WARNING


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next(
        (fmt, datefmt) for threshold, fmt, datefmt in _CONSOLE_FORMATS if level <= threshold
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Install the console handler, and the file handler if asked for.

    Args:
        level: Console level name.
        log_file: Path of an additional log file.
        log_file_level: Level name for the file; defaults to ``level``.
        quiet_third_party: Hold third-party loggers at WARNING unless
            the console is at DEBUG.
    """
    console_level = parse_level(level)
    handlers = [_console_handler(console_level)]

    if log_file:
        file_level = parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)

    # The root logger must let through whatever the chattiest handler wants
    root.setLevel(min(handler.level for handler in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False
