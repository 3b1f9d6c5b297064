"""Notification delivery and read-only application data access."""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from .models import Application, Notification, NotificationTemplate
from .storage import StateStore

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Delivers one rendered notification. Returns True on success."""

    def send(self, to: str, subject: str, template: NotificationTemplate, data: Dict[str, Any]) -> bool: ...


class LoggingNotifier:
    """Notifier that records and logs instead of delivering.

    Used when no real transport (SMTP, API) is configured.
    """

    def __init__(self):
        self.sent: List[Notification] = []
        self._lock = threading.Lock()

    def send(self, to: str, subject: str, template: NotificationTemplate, data: Dict[str, Any]) -> bool:
        notification = Notification(to=to, subject=subject, template=template, data=data)
        with self._lock:
            self.sent.append(notification)
        logger.info("[MOCK] Email sent to=%s template=%s subject=%r", to, template.value, subject)
        return True


class ApplicationSource(Protocol):
    def applications_for_user(self, user_id: str) -> List[Application]: ...


class InMemoryApplicationSource:
    def __init__(self, applications: Optional[List[Application]] = None):
        self.applications = list(applications or [])

    def add(self, application: Application) -> None:
        self.applications.append(application)

    def applications_for_user(self, user_id: str) -> List[Application]:
        return [app for app in self.applications if app.user_id == user_id]


class JsonApplicationSource:
    """Reads application records from a snapshot store."""

    def __init__(self, store: StateStore):
        self.store = store

    def applications_for_user(self, user_id: str) -> List[Application]:
        records = self.store.load() or []
        return [Application(**r) for r in records if r.get("user_id") == user_id]


class NotificationService:
    """Builds subjects and payloads for each template and sends them."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def send_welcome_email(self, email: str, name: Optional[str] = None) -> bool:
        return self.notifier.send(
            email, "Welcome to EzJob!", NotificationTemplate.WELCOME, {"name": name or "there"}
        )

    def send_password_reset_email(self, email: str, name: str, reset_link: str) -> bool:
        return self.notifier.send(
            email,
            "Reset Your EzJob Password",
            NotificationTemplate.PASSWORD_RESET,
            {"name": name, "reset_link": reset_link},
        )

    def send_two_factor_enabled_email(self, email: str, name: str) -> bool:
        return self.notifier.send(
            email,
            "Two-Factor Authentication Enabled",
            NotificationTemplate.TWO_FACTOR_ENABLED,
            {"name": name},
        )

    def send_application_reminder(
        self,
        email: str,
        application_count: int,
        oldest_application: Optional[Dict[str, Any]] = None,
    ) -> bool:
        return self.notifier.send(
            email,
            f"Follow up on your {application_count} job applications",
            NotificationTemplate.APPLICATION_REMINDER,
            {"application_count": application_count, "oldest_application": oldest_application},
        )

    def send_interview_reminder(self, email: str, company: str, role: str, interview_date: datetime) -> bool:
        return self.notifier.send(
            email,
            f"Interview reminder: {role} at {company}",
            NotificationTemplate.INTERVIEW_REMINDER,
            {
                "company": company,
                "role": role,
                "interview_date": interview_date.date().isoformat(),
                "interview_time": interview_date.strftime("%H:%M"),
            },
        )

    def send_weekly_digest(self, email: str, stats: Dict[str, int]) -> bool:
        return self.notifier.send(
            email, "Your weekly job search summary", NotificationTemplate.WEEKLY_DIGEST, dict(stats)
        )
