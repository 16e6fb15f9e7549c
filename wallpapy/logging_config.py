"""
Logging configuration for wallpapy.

Quiet by default; ``enable_debug_mode`` turns on debug output to stderr and
``configure_ops_log`` keeps a persistent operations log in the data directory.
"""

import logging
import os
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "wallpapy-ops.log"

# Libraries that log every HTTP request at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore")


def configure_quiet_mode(quiet: bool = True):
    """
    Hide per-request HTTP chatter and Python warnings.

    Args:
        quiet: False restores library defaults.
    """
    warnings.filterwarnings("ignore" if quiet else "default")
    level = logging.WARNING if quiet else logging.NOTSET
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def enable_debug_mode():
    """Send debug-level logging from wallpapy and httpx to stderr."""
    warnings.filterwarnings("default")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    has_stderr = any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in root.handlers
    )
    if not has_stderr:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        root.addHandler(handler)

    logging.getLogger("wallpapy").setLevel(logging.DEBUG)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(data_path) -> RotatingFileHandler:
    """Attach a rotating operations log for a data directory.

    Writes to {data_path}/wallpapy-ops.log (1MB max, 3 backups) whether or
    not --verbose is set. Calling it again for the same directory returns the
    handler already attached.
    """
    log_path = Path(data_path) / OPS_LOG_FILENAME
    wallpapy_logger = logging.getLogger("wallpapy")
    for existing in wallpapy_logger.handlers:
        if isinstance(existing, RotatingFileHandler) and existing.baseFilename == os.path.abspath(log_path):
            return existing

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(str(log_path), maxBytes=1_000_000, backupCount=3)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    wallpapy_logger.addHandler(handler)
    # INFO must reach the file even in quiet mode
    if wallpapy_logger.level == logging.NOTSET or wallpapy_logger.level > logging.INFO:
        wallpapy_logger.setLevel(logging.INFO)
    return handler


def remove_ops_log(handler: RotatingFileHandler) -> None:
    """Detach and close a handler returned by ``configure_ops_log``."""
    logging.getLogger("wallpapy").removeHandler(handler)
    handler.close()
