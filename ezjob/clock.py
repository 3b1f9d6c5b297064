"""Time sources."""

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from .models import ensure_aware


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to. Used for simulation and tests."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_aware(start) or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, when: datetime) -> None:
        self._now = ensure_aware(when)

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        """Move forward by ``delta`` or by timedelta keyword arguments."""
        self._now += delta if delta is not None else timedelta(**kwargs)
        return self._now
