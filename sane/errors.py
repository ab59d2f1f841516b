"""
Exceptions and error logging for sane.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class SaneError(Exception):
    """Base class for all sane errors."""


class NotConfiguredError(SaneError):
    """The selected AI provider lacks the credentials or endpoint it needs."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(
            f"AI provider '{provider}' not configured. Please check settings."
        )


class ProviderError(SaneError):
    """A call to the AI provider failed (HTTP error, network error, SDK error)."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        super().__init__(f"{provider}: {message}")


class BudgetExceededError(SaneError):
    """The next costly operation would exceed today's budget."""

    def __init__(self, spent: float, budget: float):
        self.spent = spent
        self.budget = budget
        super().__init__(
            f"Would exceed daily budget ({spent:.4f} spent of {budget})"
        )


BUDGET_NOTICE = "Daily budget reached. Processing paused until tomorrow."


def _error_log_path() -> Path:
    """Resolve error log path, respecting SANE_STORE_PATH."""
    store = os.environ.get("SANE_STORE_PATH")
    if store:
        return Path(store) / "sane-errors.log"
    return Path.home() / ".sane" / "sane-errors.log"


def log_exception(exc: Exception, context: str = "", log_path: Optional[Path] = None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        log_path: Override for the log location (defaults to the store directory)

    Returns:
        Path to the error log file
    """
    log_path = log_path or _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Error log unwritable
    return log_path
