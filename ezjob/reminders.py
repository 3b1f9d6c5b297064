"""Helpers that schedule the application's standard jobs."""

from datetime import datetime, timedelta
from typing import Any, Dict, List

from .models import JobType, Recurrence, RecurrenceInterval
from .scheduler import JobScheduler

MONDAY = 1
SUNDAY = 0

MAINTENANCE_JOBS = (
    (JobType.CLEANUP, "02:00"),
    (JobType.SECURITY_CHECK, "03:00"),
)


def schedule_application_reminders(scheduler: JobScheduler, user_id: str, email: str) -> str:
    """Weekly follow-up reminder, Mondays at 09:00."""
    return scheduler.schedule_job(
        JobType.EMAIL_REMINDER,
        data={"user_id": user_id, "email": email, "type": "application_followup"},
        recurring=Recurrence(
            interval=RecurrenceInterval.WEEKLY, days_of_week=[MONDAY], time_of_day="09:00"
        ),
    )


def schedule_weekly_digest(scheduler: JobScheduler, user_id: str, email: str) -> str:
    """Weekly summary, Sundays at 18:00."""
    return scheduler.schedule_job(
        JobType.WEEKLY_DIGEST,
        data={"user_id": user_id, "email": email},
        recurring=Recurrence(
            interval=RecurrenceInterval.WEEKLY, days_of_week=[SUNDAY], time_of_day="18:00"
        ),
    )


def schedule_interview_reminder(
    scheduler: JobScheduler,
    user_id: str,
    email: str,
    interview_date: datetime,
    application_data: Dict[str, Any],
) -> str:
    """One-shot reminder 24 hours before the interview."""
    return scheduler.schedule_job(
        JobType.EMAIL_REMINDER,
        data={
            "user_id": user_id,
            "email": email,
            "type": "interview_reminder",
            "application_data": {**application_data, "interview_date": interview_date.isoformat()},
        },
        scheduled_for=interview_date - timedelta(hours=24),
    )


def ensure_maintenance_jobs(scheduler: JobScheduler) -> List[str]:
    """Make sure the daily cleanup and security check exist, once each.

    Safe to call on every start: existing maintenance jobs are kept.
    """
    ids = []
    for job_type, time_of_day in MAINTENANCE_JOBS:
        existing = scheduler.find_jobs(job_type)
        if existing:
            ids.append(existing[0].id)
            continue
        ids.append(
            scheduler.schedule_job(
                job_type,
                recurring=Recurrence(interval=RecurrenceInterval.DAILY, time_of_day=time_of_day),
            )
        )
    return ids
