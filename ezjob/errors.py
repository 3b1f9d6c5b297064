"""Exception types raised by ezjob."""

from datetime import datetime
from typing import Any, Dict, Optional


class EzJobError(Exception):
    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class RateLimitExceeded(EzJobError):
    """A gated action was throttled. Raised by callers, never by RateLimiter."""

    def __init__(self, operation: str, reset_time: datetime, minutes: int):
        super().__init__(
            "ERR_RATE_LIMIT",
            f"Too many {operation.replace('_', ' ')} attempts. Try again in {minutes} minutes.",
            {"operation": operation, "reset_time": reset_time.isoformat(), "minutes": minutes},
        )
        self.operation = operation
        self.reset_time = reset_time
        self.minutes = minutes


class JobValidationError(EzJobError, ValueError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("ERR_JOB_INVALID", message, details)


class JobExecutionError(EzJobError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("ERR_JOB_EXECUTION", message, details)


class PersistenceError(EzJobError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("ERR_PERSISTENCE", message, details)
