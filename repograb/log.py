"""
Logging for repograb.

Library modules take a child logger with get_logger('<module>') and never
configure handlers; scripts call configure_logging() once.

Level precedence: --verbose, then --quiet, then $REPOGRAB_LOG_LEVEL, then INFO.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

ROOT_LOGGER = "repograb"
LOG_LEVEL_ENV = "REPOGRAB_LOG_LEVEL"

CONSOLE_FORMAT = "[repograb] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Marks handlers we installed, so reconfiguring leaves foreign handlers alone
_OWNED = "_repograb_handler"


def get_logger(name: str | None = None) -> logging.Logger:
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def resolve_level(verbose: bool = False, quiet: bool = False) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    value = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value) if value else logging.INFO
    return level if isinstance(level, int) else logging.INFO


def _own(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    setattr(handler, _OWNED, True)
    return handler


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: str | Path | None = None,
) -> logging.Logger:
    """
    Send repograb logs to stderr, and to log_file when given.

    Safe to call repeatedly: handlers from an earlier call are replaced,
    not stacked.
    """
    level = resolve_level(verbose=verbose, quiet=quiet)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    for handler in [h for h in logger.handlers if getattr(h, _OWNED, False)]:
        logger.removeHandler(handler)
        handler.close()

    # stdout carries the document itself
    logger.addHandler(_own(logging.StreamHandler(sys.stderr), level, CONSOLE_FORMAT))

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        # File sink always records debug detail
        logger.addHandler(_own(logging.FileHandler(path, encoding="utf-8"), logging.DEBUG, FILE_FORMAT))
        logger.setLevel(logging.DEBUG)

    return logger


__all__ = ["configure_logging", "get_logger", "resolve_level", "LOG_LEVEL_ENV"]
