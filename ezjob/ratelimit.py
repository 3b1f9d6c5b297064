"""Fixed-window rate limiting for sensitive operations."""

import functools
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .clock import Clock, SystemClock
from .config import Settings
from .errors import RateLimitExceeded
from .models import RateLimitConfig, RateLimitInfo, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    window_reset_at: datetime


def make_key(operation: str, subject: str) -> str:
    return f"{operation}:{subject}"


def minutes_until(reset_time: datetime, now: datetime) -> int:
    """Whole minutes until ``reset_time``, rounded up, at least 1."""
    seconds = (reset_time - now).total_seconds()
    return max(1, math.ceil(seconds / 60))


class RateLimiter:
    """Counts requests per key inside fixed windows.

    A request is allowed while the key's count is below ``max_requests``.
    Rejected requests neither consume nor extend the window. Once the
    window has passed the entry is replaced, not incremented. Never
    raises for a throttled request: that is a normal result.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Optional[Clock] = None):
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def check_rate_limit(self, key: str, config: Optional[RateLimitConfig] = None) -> RateLimitResult:
        """Count one request against ``key`` and say whether it may proceed."""
        config = config or self.settings.default_rate_limit
        now = self.clock.now()

        with self._lock:
            self._cleanup(now)
            entry = self._entries.get(key)

            if entry is None or entry.window_reset_at <= now:
                entry = RateLimitEntry(
                    count=1,
                    window_reset_at=now + timedelta(milliseconds=config.window_ms),
                )
                self._entries[key] = entry
                return RateLimitResult(
                    allowed=True,
                    remaining=config.max_requests - 1,
                    reset_time=entry.window_reset_at,
                )

            if entry.count >= config.max_requests:
                logger.debug("Rate limit hit for %s until %s", key, entry.window_reset_at)
                return RateLimitResult(allowed=False, remaining=0, reset_time=entry.window_reset_at)

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests - entry.count,
                reset_time=entry.window_reset_at,
            )

    def check_operation(self, operation: str, subject: str) -> RateLimitResult:
        """Check ``operation:subject`` against the configured preset for ``operation``."""
        return self.check_rate_limit(make_key(operation, subject), self.settings.rate_limit_for(operation))

    def get_rate_limit_info(self, key: str, config: Optional[RateLimitConfig] = None) -> RateLimitInfo:
        """Read the state for ``key`` without counting a request."""
        config = config or self.settings.default_rate_limit
        now = self.clock.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.window_reset_at <= now:
                return RateLimitInfo(remaining=config.max_requests, reset_time=None)
            return RateLimitInfo(
                remaining=max(0, config.max_requests - entry.count),
                reset_time=entry.window_reset_at,
            )

    def clear_rate_limit(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        with self._lock:
            return self._cleanup(self.clock.now())

    def _cleanup(self, now: datetime) -> int:
        expired = [key for key, entry in self._entries.items() if entry.window_reset_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


def enforce(limiter: RateLimiter, operation: str, subject: str) -> RateLimitResult:
    """Check the preset for ``operation`` and raise RateLimitExceeded when throttled."""
    result = limiter.check_operation(operation, subject)
    if not result.allowed:
        minutes = minutes_until(result.reset_time, limiter.clock.now())
        raise RateLimitExceeded(operation, result.reset_time, minutes)
    return result


def rate_limited(
    limiter: RateLimiter,
    operation: str,
    subject_of: Callable[..., str],
) -> Callable[[Callable], Callable]:
    """Wrap a unit of work with a rate-limit check.

    ``subject_of`` receives the wrapped call's arguments and returns the
    identity to throttle on (email, user id, host). When the limit is
    exhausted the work is not run and ``RateLimitExceeded`` is raised.

    Example:
        @rate_limited(limiter, "login", lambda email, password: email)
        def sign_in(email, password): ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            enforce(limiter, operation, subject_of(*args, **kwargs))
            return func(*args, **kwargs)

        return wrapper

    return decorator
