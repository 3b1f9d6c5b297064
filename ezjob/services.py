"""Wiring: build the rate limiter, security log and scheduler once per process."""

from dataclasses import dataclass
from typing import Optional

from .clock import Clock, SystemClock
from .config import Settings
from .executors import JobExecutors
from .notifier import ApplicationSource, JsonApplicationSource, LoggingNotifier, NotificationService, Notifier
from .ratelimit import RateLimiter
from .scheduler import JobScheduler
from .security import SecurityEventLog
from .storage import Storage


@dataclass
class Services:
    settings: Settings
    storage: Storage
    rate_limiter: RateLimiter
    security_log: SecurityEventLog
    notifications: NotificationService
    scheduler: JobScheduler


def build_services(
    settings: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
    applications: Optional[ApplicationSource] = None,
    clock: Optional[Clock] = None,
) -> Services:
    """Construct every service against one data directory.

    The returned object is meant to be created at startup and passed to
    whatever needs it.
    """
    settings = settings or Settings()
    clock = clock or SystemClock()
    storage = Storage(settings.data_dir)

    rate_limiter = RateLimiter(settings, clock)
    security_log = SecurityEventLog(storage.security_events, settings, clock)
    notifications = NotificationService(notifier or LoggingNotifier())
    executors = JobExecutors(
        notifications,
        applications or JsonApplicationSource(storage.applications),
        security_log=security_log,
        rate_limiter=rate_limiter,
        settings=settings,
        clock=clock,
    )
    scheduler = JobScheduler(executors.as_mapping(), storage.jobs, settings, clock)
    return Services(settings, storage, rate_limiter, security_log, notifications, scheduler)
