"""Recurrence arithmetic for scheduled jobs.

All arithmetic happens on local wall-clock time in the configured zone,
so a daily 09:00 job stays at 09:00 across daylight-saving changes even
though the elapsed time between runs is then 23 or 25 hours.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from .models import Recurrence, RecurrenceInterval

ONE_DAY = timedelta(days=1)


def sunday_weekday(value) -> int:
    """Weekday with Sunday = 0 .. Saturday = 6."""
    return value.isoweekday() % 7


def add_months(day: date, months: int, anchor_day: Optional[int] = None) -> date:
    """Shift by whole months, clamping to the last day of a shorter month.

    ``anchor_day`` is the day of month to aim for, so a series started on
    the 31st returns to the 31st after passing through a shorter month.
    """
    index = day.month - 1 + months
    year = day.year + index // 12
    month = index % 12 + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor_day or day.day, last))


def _localize(naive: datetime, tz: tzinfo) -> datetime:
    return naive.replace(tzinfo=tz).astimezone(timezone.utc)


def _advance_to_weekday(naive: datetime, recurring: Recurrence) -> datetime:
    if not recurring.days_of_week:
        return naive
    allowed = set(recurring.days_of_week)
    while sunday_weekday(naive) not in allowed:
        naive += ONE_DAY
    return naive


def calculate_next_run(
    base: datetime,
    recurring: Recurrence,
    tz: tzinfo = timezone.utc,
    anchor_day: Optional[int] = None,
) -> datetime:
    """Next occurrence after ``base`` according to ``recurring``.

    Adds one interval to the local date, overwrites the clock time when
    ``time_of_day`` is set, then moves forward (never backward) to the
    nearest allowed weekday. Returns an aware UTC datetime.
    """
    local = base.astimezone(tz).replace(tzinfo=None)
    if recurring.interval == RecurrenceInterval.DAILY:
        day = local.date() + ONE_DAY
    elif recurring.interval == RecurrenceInterval.WEEKLY:
        day = local.date() + timedelta(days=7)
    elif recurring.interval == RecurrenceInterval.MONTHLY:
        day = add_months(local.date(), 1, anchor_day)
    else:
        raise ValueError(f"Unsupported interval: {recurring.interval!r}")

    clock = recurring.clock_time()
    if clock is not None:
        wall = time(clock[0], clock[1])
    else:
        wall = local.time()

    return _localize(_advance_to_weekday(datetime.combine(day, wall), recurring), tz)


def initial_run(scheduled_for: datetime, recurring: Optional[Recurrence], tz: tzinfo = timezone.utc) -> datetime:
    """First eligible run for a newly scheduled job.

    Without a time-of-day or weekday constraint the job first runs at
    ``scheduled_for``. Otherwise it runs at the earliest instant at or
    after ``scheduled_for`` that satisfies the constraints.
    """
    if recurring is None or (recurring.time_of_day is None and not recurring.days_of_week):
        return scheduled_for.astimezone(timezone.utc)

    local = scheduled_for.astimezone(tz).replace(tzinfo=None)
    candidate = local
    clock = recurring.clock_time()
    if clock is not None:
        candidate = local.replace(hour=clock[0], minute=clock[1], second=0, microsecond=0)
        if candidate < local:
            candidate += ONE_DAY
    return _localize(_advance_to_weekday(candidate, recurring), tz)


def next_run_after(
    previous: Optional[datetime],
    last_run: datetime,
    recurring: Recurrence,
    tz: tzinfo = timezone.utc,
    anchor_day: Optional[int] = None,
) -> datetime:
    """Step the schedule forward from ``previous`` until strictly after ``last_run``.

    Stepping from the previous due time keeps the cadence; skipping past
    ``last_run`` means a job that was overdue for several periods runs
    once, not once per missed period.
    """
    nxt = calculate_next_run(previous or last_run, recurring, tz, anchor_day)
    while nxt <= last_run:
        nxt = calculate_next_run(nxt, recurring, tz, anchor_day)
    return nxt
