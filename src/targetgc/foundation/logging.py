"""Logging setup for the cargo-gc-target command.

Console records go to stderr next to the status lines, WARNING and up by
default. ``-vv`` gives INFO (one record per removed entry), ``-vvv`` or
``--debug`` gives DEBUG.

Level resolution, highest first:
    1. Explicit ``level`` argument
    2. TARGETGC_LOG_LEVEL (DEBUG, INFO, WARNING, ...)
    3. TARGETGC_DEBUG=true
    4. ``debug=True`` (``--debug`` or ``debug: true`` in config)
    5. WARNING

A ``log_file`` (``--log-file`` or ``log_file:`` in config) additionally
receives every DEBUG record of every run, appended, so it doubles as an
audit trail of what was removed and when.

Usage:
    from targetgc.foundation.logging import configure_logging
    configure_logging(debug=args.debug, log_file=config.log_file)
"""

import logging
import os
import sys
from pathlib import Path
from typing import TextIO

_DEBUG_FORMAT = "%(asctime)s %(name)s [%(levelname)s] %(message)s"
_DEFAULT_FORMAT = "%(name)s: %(message)s"


def resolve_level(*, debug: bool = False, level: int | str | None = None) -> int:
    """Pick the console level from arguments and TARGETGC_* variables."""
    if level is not None:
        return _parse_level(level)
    if env_level := os.environ.get("TARGETGC_LOG_LEVEL"):
        return _parse_level(env_level)
    if debug or os.environ.get("TARGETGC_DEBUG", "").lower() in ("true", "1", "yes"):
        return logging.DEBUG
    return logging.WARNING


def configure_logging(
    *,
    debug: bool = False,
    level: int | str | None = None,
    stream: TextIO | None = None,
    log_file: str | Path | None = None,
) -> None:
    """Install the console handler and, optionally, the log file handler.

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output.

    Args:
        debug: DEBUG level with timestamps.
        level: Explicit level, overriding everything else.
        stream: Console stream (default: stderr).
        log_file: File to append DEBUG records to. Parent directories are
            created. If it cannot be opened, a warning is logged and the run
            goes on without it.
    """
    console_level = resolve_level(debug=debug, level=level)

    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root.handlers.clear()
    root.setLevel(logging.DEBUG if log_file else console_level)

    console = logging.StreamHandler(stream or sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(
        logging.Formatter(_DEBUG_FORMAT if console_level <= logging.DEBUG else _DEFAULT_FORMAT)
    )
    root.addHandler(console)

    logger = logging.getLogger(__name__)
    if log_file:
        path = Path(log_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        except OSError as e:
            logger.warning("Not writing log file %s: %s", path, e)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(_DEBUG_FORMAT))
            root.addHandler(file_handler)

    logger.debug(
        "Logging configured: level=%s, log_file=%s",
        logging.getLevelName(console_level),
        log_file,
    )


def _parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(level.upper())
    if isinstance(numeric, int):
        return numeric
    try:
        return int(level)
    except ValueError:
        return logging.WARNING
