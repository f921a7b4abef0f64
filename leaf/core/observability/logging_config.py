"""
Logging configuration for the leaf CLI.

main.py calls ``setup_logging`` once per process; modules log through
``logging.getLogger(__name__)`` and inherit it.

Console level precedence:
    --debug / --verbose / --quiet  >  LEAF_LOG_LEVEL  >  WARNING

LEAF_LOG_FILE adds a file handler (level LEAF_LOG_FILE_LEVEL, else the
console level).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

DEFAULT_LEVEL = "WARNING"

# level threshold -> (format, datefmt); first match wins
_CONSOLE_FORMATS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env: dict[str, str] | None = None,
) -> str:
    """Pick the console level name from CLI flags, then LEAF_LOG_LEVEL."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if env is None else env
    return env.get("LEAF_LOG_LEVEL") or DEFAULT_LEVEL


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | Path | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler (and optional file handler) on the root logger.

    Args:
        level: Console level name. Unknown names fall back to WARNING.
        log_file: Path of an append-mode log file; parents are created.
        log_file_level: Level for the file handler; defaults to ``level``.
    """
    console_level = parse_level(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_console_handler(console_level))
    lowest = console_level

    if log_file:
        file_level = parse_level(log_file_level) if log_file_level else console_level
        root.addHandler(_file_handler(Path(log_file).expanduser(), file_level))
        lowest = min(lowest, file_level)

    root.setLevel(lowest)
    logging.raiseExceptions = False


def parse_level(level: str | None) -> int:
    """Numeric level for a name like ``"info"``; WARNING when unknown."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING


def _console_handler(level: int) -> logging.Handler:
    # stderr, so stdout stays clean for --json output
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    fmt, datefmt = "%(message)s", None
    for threshold, candidate, candidate_datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            fmt, datefmt = candidate, candidate_datefmt
            break
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler
