"""
Logging configuration — one-time setup for the CLI process.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
what is configured here. Levels are resolved in precedence order:

    --debug / --verbose / --quiet  >  SINDRI_LOG_LEVEL  >  WARNING

A second, always-detailed file handler is enabled by SINDRI_LOG_FILE
(level from SINDRI_LOG_FILE_LEVEL). Long suspend/resume runs are much
easier to diagnose from that file than from scrollback.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

# ── Format strings ──────────────────────────────────────────────

# Default: the CLI already prints its own status lines, keep logs bare
_FMT_MINIMAL = "%(levelname)s: %(message)s"

# INFO: timestamped, with the emitting module
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"

# DEBUG: file:line for tracing remote calls
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"

_DATEFMT_CONSOLE = "%H:%M:%S"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Libraries that get chatty below WARNING
_NOISY_LOGGERS = ("urllib3", "asyncio", "filelock")


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get("SINDRI_LOG_LEVEL", "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path to a log file.
        log_file_level: Level for the file handler (default: ``level``).
        quiet_third_party: Pin noisy library loggers to WARNING unless
            the console is at DEBUG.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt = _FMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt = _FMT_VERBOSE
    else:
        fmt = _FMT_MINIMAL

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=_DATEFMT_CONSOLE))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_DEBUG, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Convert a level name to its numeric constant (WARNING if unknown)."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
