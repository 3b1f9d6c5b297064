"""Job-type executors.

Each executor receives the job's opaque ``data`` payload, reads whatever
domain records it needs, and hands a notification to the Notifier. An
executor returns False (or raises) when the job did not complete.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .clock import Clock, SystemClock
from .config import Settings
from .errors import JobExecutionError
from .models import ApplicationStatus, JobType, ensure_aware
from .notifier import ApplicationSource, NotificationService
from .ratelimit import RateLimiter
from .security import SecurityEventLog

logger = logging.getLogger(__name__)

Executor = Callable[[Dict[str, Any]], bool]

FOLLOWUP_STATUSES = {ApplicationStatus.APPLIED, ApplicationStatus.INTERVIEW}


def _require(data: Dict[str, Any], *keys: str) -> None:
    missing = [key for key in keys if not data.get(key)]
    if missing:
        raise JobExecutionError(f"Job data missing {', '.join(missing)}", {"missing": missing})


class JobExecutors:
    """The closed set of executors, one per JobType."""

    def __init__(
        self,
        notifications: NotificationService,
        applications: ApplicationSource,
        security_log: Optional[SecurityEventLog] = None,
        rate_limiter: Optional[RateLimiter] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.notifications = notifications
        self.applications = applications
        self.security_log = security_log
        self.rate_limiter = rate_limiter
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()

    def as_mapping(self) -> Dict[JobType, Executor]:
        return {
            JobType.EMAIL_REMINDER: self.email_reminder,
            JobType.WEEKLY_DIGEST: self.weekly_digest,
            JobType.CLEANUP: self.cleanup,
            JobType.SECURITY_CHECK: self.security_check,
        }

    def email_reminder(self, data: Dict[str, Any]) -> bool:
        kind = data.get("type")
        if kind == "application_followup":
            return self._application_followup(data)
        if kind == "interview_reminder":
            return self._interview_reminder(data)
        raise JobExecutionError(f"Unknown reminder type: {kind!r}", {"type": kind})

    def _application_followup(self, data: Dict[str, Any]) -> bool:
        _require(data, "user_id", "email")
        now = self.clock.now()
        cutoff = now - timedelta(days=self.settings.followup_after_days)
        pending = sorted(
            (
                app for app in self.applications.applications_for_user(data["user_id"])
                if app.status in FOLLOWUP_STATUSES and app.applied_date < cutoff
            ),
            key=lambda app: app.applied_date,
        )
        if not pending:
            logger.debug("No applications need follow-up for %s", data["user_id"])
            return True

        oldest = pending[0]
        return self.notifications.send_application_reminder(
            data["email"],
            len(pending),
            {
                "company": oldest.company_name,
                "role": oldest.role,
                "days_since": (now - oldest.applied_date).days,
            },
        )

    def _interview_reminder(self, data: Dict[str, Any]) -> bool:
        _require(data, "email", "application_data")
        application = data["application_data"]
        _require(application, "company", "role", "interview_date")
        interview_date = application["interview_date"]
        if isinstance(interview_date, str):
            interview_date = datetime.fromisoformat(interview_date)
        return self.notifications.send_interview_reminder(
            data["email"],
            application["company"],
            application["role"],
            ensure_aware(interview_date).astimezone(self.settings.tz()),
        )

    def weekly_digest(self, data: Dict[str, Any]) -> bool:
        _require(data, "user_id", "email")
        week_ago = self.clock.now() - timedelta(days=7)
        applications = self.applications.applications_for_user(data["user_id"])
        total = len(applications)
        responded = sum(1 for app in applications if app.status != ApplicationStatus.APPLIED)

        stats = {
            "applications_this_week": sum(1 for app in applications if app.created_at > week_ago),
            "total_applications": total,
            "interviews_scheduled": sum(1 for app in applications if app.status == ApplicationStatus.INTERVIEW),
            "offers_received": sum(1 for app in applications if app.status == ApplicationStatus.OFFER),
            "response_rate": math.floor(responded * 100 / total + 0.5) if total else 0,
        }
        return self.notifications.send_weekly_digest(data["email"], stats)

    def cleanup(self, data: Dict[str, Any]) -> bool:
        removed_events = 0
        if self.security_log is not None:
            retention = timedelta(days=data.get("retention_days", self.settings.security_event_retention_days))
            removed_events = self.security_log.prune(self.clock.now() - retention)
        removed_limits = self.rate_limiter.cleanup() if self.rate_limiter is not None else 0
        logger.info(
            "Cleanup removed %d old security events and %d expired rate limits",
            removed_events, removed_limits,
        )
        return True

    def security_check(self, data: Dict[str, Any]) -> bool:
        if self.security_log is None:
            return True
        flagged = 0
        for user_id in self.security_log.user_ids():
            result = self.security_log.check_suspicious_activity(user_id)
            if result.suspicious:
                flagged += 1
                logger.warning(
                    "Suspicious activity for user %s: %s (%s)",
                    user_id, result.reason, result.recommendation,
                )
        logger.info("Security check completed, %d user(s) flagged", flagged)
        return True
