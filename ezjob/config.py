"""Runtime configuration loaded from the environment."""

from datetime import timezone, tzinfo
from typing import Dict, Optional
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import RateLimitConfig

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


def _default_rate_limits() -> Dict[str, RateLimitConfig]:
    return {
        "login": RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=5),
        "oauth": RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=5),
        "signup": RateLimitConfig(window_ms=HOUR_MS, max_requests=3),
        "password_reset": RateLimitConfig(window_ms=HOUR_MS, max_requests=3),
        "two_factor_setup": RateLimitConfig(window_ms=30 * MINUTE_MS, max_requests=3),
        "file_upload": RateLimitConfig(window_ms=MINUTE_MS, max_requests=10),
        "application_submit": RateLimitConfig(window_ms=5 * MINUTE_MS, max_requests=20),
    }


class Settings(BaseSettings):
    """System configuration.

    Every field can be overridden with an ``EZJOB_`` prefixed environment
    variable, e.g. ``EZJOB_POLL_INTERVAL_SECONDS=30`` or
    ``EZJOB_RATE_LIMITS='{"login": {"window_ms": 60000, "max_requests": 3}}'``.
    """
    model_config = SettingsConfigDict(
        env_prefix="EZJOB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: str = ".ezjob"

    # scheduler
    poll_interval_seconds: float = Field(default=60.0, gt=0)
    timezone: str = "UTC"
    job_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    max_concurrent_jobs: int = Field(default=4, ge=1)
    max_consecutive_failures: Optional[int] = Field(default=None, ge=1)
    strict_persistence: bool = False

    # rate limiting
    rate_limits: Dict[str, RateLimitConfig] = Field(default_factory=_default_rate_limits)
    default_rate_limit: RateLimitConfig = RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=5)

    # security events
    security_log_capacity: int = Field(default=100, ge=1)
    suspicious_failure_threshold: int = Field(default=10, ge=0)
    suspicious_ip_threshold: int = Field(default=5, ge=0)
    suspicious_window_hours: float = Field(default=24.0, gt=0)
    security_event_retention_days: int = Field(default=30, ge=1)

    # job executors
    followup_after_days: int = Field(default=7, ge=0)

    def tz(self) -> tzinfo:
        """Wall-clock zone used for recurrence arithmetic."""
        if self.timezone.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.timezone)

    def rate_limit_for(self, operation: str) -> RateLimitConfig:
        return self.rate_limits.get(operation, self.default_rate_limit)
