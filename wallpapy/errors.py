"""
Error types and error logging utilities for wallpapy.

Library code raises the typed errors below; request handlers turn them into
responses. Unexpected failures are logged with a full stack trace to a file
while the user sees a clean message.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class WallpapyError(Exception):
    """Base class for all wallpapy errors."""


class ValidationError(WallpapyError):
    """Caller supplied input that fails a policy check (e.g. password length)."""


class AuthenticationError(WallpapyError):
    """Wrong credentials or invalid token.

    The message is always generic so that callers cannot tell an unknown
    user apart from a wrong password.
    """

    def __init__(self, message: str = "Incorrect username or password"):
        super().__init__(message)


class PacketError(WallpapyError):
    """A request payload could not be decoded."""


class PersistenceError(WallpapyError):
    """The persistent store could not be opened, read or written."""


class SummarizationError(WallpapyError):
    """The summarization collaborator failed or returned an unusable result."""


def _error_log_path() -> Path:
    """Error log location: under WALLPAPY_DATA_PATH if set, else ~/.wallpapy."""
    data = os.environ.get("WALLPAPY_DATA_PATH")
    if data:
        return Path(data) / "wallpapy-errors.log"
    return Path.home() / ".wallpapy" / "wallpapy-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Append ``exc`` and its traceback to the wallpapy error log.

    The log is created owner-readable only. A log that cannot be written is
    ignored so that reporting an error never raises a second one.

    Returns:
        Path of the error log, for pointing the user at it
    """
    log_path = _error_log_path()
    header = f"[{datetime.now(timezone.utc).isoformat()}]"
    if context:
        header += f" {context}"
    entry = (
        f"\n{'=' * 60}\n"
        f"{header} {type(exc).__name__}: {exc}\n"
        + "".join(traceback.format_exception(exc))
    )
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(entry)
    except OSError:
        pass  # unwritable log
    return log_path
