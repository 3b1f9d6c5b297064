"""Bounded security event log and suspicious-activity heuristic."""

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Deque, List, Optional

from pydantic import ValidationError

from .clock import Clock, SystemClock
from .config import Settings
from .models import SecurityEvent, SecurityEventType, SuspiciousActivityResult
from .storage import MemoryStore, StateStore

logger = logging.getLogger(__name__)

MULTIPLE_FAILURES_REASON = "multiple failed login attempts"
MULTIPLE_FAILURES_RECOMMENDATION = "enable 2FA or change password"
MULTIPLE_IPS_REASON = "login attempts from multiple IP addresses"
MULTIPLE_IPS_RECOMMENDATION = "review recent account activity"


@dataclass(frozen=True)
class SuspicionPolicy:
    """Thresholds are exclusive: suspicious when the count is above them."""
    max_failures: int = 10
    max_distinct_ips: int = 5
    window: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SuspicionPolicy":
        return cls(
            max_failures=settings.suspicious_failure_threshold,
            max_distinct_ips=settings.suspicious_ip_threshold,
            window=timedelta(hours=settings.suspicious_window_hours),
        )


class SecurityEventLog:
    """Append-only log of the most recent security events.

    Oldest events are evicted first once ``capacity`` is reached. Writing
    to the log never raises: failing to record an event must not block
    the sign-in or reset that produced it.
    """

    def __init__(
        self,
        store: Optional[StateStore] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        policy: Optional[SuspicionPolicy] = None,
    ):
        self.settings = settings or Settings()
        self.store = store if store is not None else MemoryStore()
        self.clock = clock or SystemClock()
        self.policy = policy or SuspicionPolicy.from_settings(self.settings)
        self.capacity = self.settings.security_log_capacity
        self._events: Deque[SecurityEvent] = deque(maxlen=self.capacity)
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        try:
            raw = self.store.load() or []
            events = [SecurityEvent(**item) for item in raw]
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.warning("Could not load security events, starting empty: %s", e)
            return
        self._events.extend(events)

    def _persist(self) -> None:
        try:
            self.store.save([event.model_dump(mode="json") for event in self._events])
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to persist security events: %s", e)

    def log(self, event: SecurityEvent) -> Optional[SecurityEvent]:
        """Record ``event`` with a fresh id and timestamp.

        Returns the stored event, or None if it could not be recorded.
        """
        try:
            stored = event.model_copy(
                update={"id": uuid.uuid4().hex[:12], "timestamp": self.clock.now()}
            )
            with self._lock:
                self._events.append(stored)
                self._persist()
        except Exception as e:
            logger.warning("Failed to log security event %s: %s", getattr(event, "type", "?"), e)
            return None
        logger.info(
            "Security event logged: %s user=%s success=%s",
            stored.type.value, stored.user_id, stored.success,
        )
        return stored

    def events(self, user_id: Optional[str] = None) -> List[SecurityEvent]:
        """Snapshot of the log, oldest first, optionally for one user."""
        with self._lock:
            events = list(self._events)
        if user_id is None:
            return events
        return [event for event in events if event.user_id == user_id]

    def user_ids(self) -> List[str]:
        seen = {}
        for event in self.events():
            if event.user_id is not None:
                seen.setdefault(event.user_id, None)
        return list(seen)

    def check_suspicious_activity(self, user_id: str) -> SuspiciousActivityResult:
        """Look for brute-force patterns in the user's recent login failures."""
        since = self.clock.now() - self.policy.window
        failures = [
            event for event in self.events(user_id)
            if event.type == SecurityEventType.LOGIN_FAILURE
            and event.timestamp is not None
            and event.timestamp > since
        ]

        if len(failures) > self.policy.max_failures:
            return SuspiciousActivityResult(
                suspicious=True,
                reason=MULTIPLE_FAILURES_REASON,
                recommendation=MULTIPLE_FAILURES_RECOMMENDATION,
            )

        addresses = {event.ip_address for event in failures}
        if len(addresses) > self.policy.max_distinct_ips:
            return SuspiciousActivityResult(
                suspicious=True,
                reason=MULTIPLE_IPS_REASON,
                recommendation=MULTIPLE_IPS_RECOMMENDATION,
            )

        return SuspiciousActivityResult(suspicious=False)

    def prune(self, older_than: datetime) -> int:
        """Drop events recorded before ``older_than``. Returns how many went."""
        with self._lock:
            kept = [e for e in self._events if e.timestamp is None or e.timestamp >= older_than]
            removed = len(self._events) - len(kept)
            if removed:
                self._events.clear()
                self._events.extend(kept)
                self._persist()
        return removed

    def __len__(self) -> int:
        return len(self._events)
