"""Data models for rate limits, security events and scheduled jobs."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RateLimitConfig(BaseModel):
    """Window length and request budget for one operation."""
    window_ms: int = Field(gt=0)
    max_requests: int = Field(gt=0)


class RateLimitResult(BaseModel):
    allowed: bool
    remaining: int
    reset_time: datetime


class RateLimitInfo(BaseModel):
    remaining: int
    reset_time: Optional[datetime] = None


class SecurityEventType(str, Enum):
    """Kinds of authentication/security events."""
    LOGIN_ATTEMPT = "login_attempt"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    PASSWORD_RESET = "password_reset"
    TWO_FACTOR_SETUP = "two_factor_setup"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


class SecurityEvent(BaseModel):
    """Immutable security event record. The log assigns id and timestamp."""
    model_config = ConfigDict(frozen=True)

    type: SecurityEventType
    success: bool = False
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @field_validator("timestamp")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value)


class SuspiciousActivityResult(BaseModel):
    suspicious: bool
    reason: Optional[str] = None
    recommendation: Optional[str] = None


class JobType(str, Enum):
    """Closed set of background job kinds."""
    EMAIL_REMINDER = "email_reminder"
    WEEKLY_DIGEST = "weekly_digest"
    CLEANUP = "cleanup"
    SECURITY_CHECK = "security_check"


class JobState(str, Enum):
    """Derived lifecycle state of a job still held by the scheduler."""
    SCHEDULED = "scheduled"
    DUE = "due"
    EXECUTING = "executing"


class RecurrenceInterval(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Recurrence(BaseModel):
    """Recurrence rule.

    ``days_of_week`` uses 0-6 with Sunday = 0. ``time_of_day`` is "HH:MM"
    in the scheduler's wall-clock timezone.
    """
    interval: RecurrenceInterval
    days_of_week: Optional[List[int]] = None
    time_of_day: Optional[str] = None

    @field_validator("days_of_week")
    @classmethod
    def _check_days(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is None:
            return None
        if not value:
            raise ValueError("days_of_week must not be empty when given")
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError(f"weekday out of range 0-6: {day}")
        return sorted(set(value))

    @field_validator("time_of_day")
    @classmethod
    def _check_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _TIME_OF_DAY.match(value):
            raise ValueError(f"time_of_day must be HH:MM, got {value!r}")
        return value

    def clock_time(self):
        """Return (hours, minutes) or None."""
        if self.time_of_day is None:
            return None
        hours, minutes = self.time_of_day.split(":")
        return int(hours), int(minutes)


class ScheduledJob(BaseModel):
    """A one-shot or recurring background job."""
    id: str
    type: JobType
    data: Dict[str, Any] = Field(default_factory=dict)
    scheduled_for: datetime
    recurring: Optional[Recurrence] = None
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    active: bool = True
    failure_count: int = 0
    last_error: Optional[str] = None

    @field_validator("scheduled_for", "last_run", "next_run")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(value)

    def state(self, now: datetime) -> JobState:
        if self.active and self.next_run is not None and self.next_run <= now:
            return JobState.DUE
        return JobState.SCHEDULED


class TickReport(BaseModel):
    """Job ids touched by one poll tick."""
    executed: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    rescheduled: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    deactivated: List[str] = Field(default_factory=list)


class ApplicationStatus(str, Enum):
    APPLIED = "applied"
    INTERVIEW = "interview"
    OFFER = "offer"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Application(BaseModel):
    """Job application record as returned by the data store."""
    id: str
    user_id: str
    company_name: str
    role: str
    status: ApplicationStatus = ApplicationStatus.APPLIED
    applied_date: datetime
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("status", mode="before")
    @classmethod
    def _lower_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value

    @field_validator("applied_date", "created_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_aware(value)


class NotificationTemplate(str, Enum):
    WELCOME = "welcome"
    APPLICATION_REMINDER = "application_reminder"
    INTERVIEW_REMINDER = "interview_reminder"
    WEEKLY_DIGEST = "weekly_digest"
    PASSWORD_RESET = "password_reset"
    TWO_FACTOR_ENABLED = "two_factor_enabled"


class Notification(BaseModel):
    """One outbound notification as handed to a Notifier."""
    to: str
    subject: str
    template: NotificationTemplate
    data: Dict[str, Any] = Field(default_factory=dict)
