"""Snapshot storage for scheduler and security-log state."""

import copy
import json
from pathlib import Path
from typing import Any, Callable, Optional, Protocol


class StateStore(Protocol):
    """Full-state snapshot store: load everything, replace everything."""

    def load(self) -> Any: ...

    def save(self, state: Any) -> None: ...


class JsonFileStore:
    """JSON file holding one snapshot, written atomically."""

    def __init__(self, path: Path, default: Optional[Callable[[], Any]] = list):
        self.path = Path(path)
        self.default = default

    def load(self) -> Any:
        """Read the snapshot, or the default if nothing was saved yet."""
        if not self.path.exists():
            return self.default() if self.default else None
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save(self, state: Any) -> None:
        """Write data to JSON file with atomic write."""
        temp_file = self.path.with_suffix(".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2, default=str)
        temp_file.replace(self.path)


class MemoryStore:
    """In-process store. Keeps a deep copy so callers can't mutate it."""

    def __init__(self, initial: Any = None):
        self._state = copy.deepcopy(initial) if initial is not None else []
        self.saves = 0

    def load(self) -> Any:
        return copy.deepcopy(self._state)

    def save(self, state: Any) -> None:
        self._state = copy.deepcopy(state)
        self.saves += 1


class Storage:
    """Data directory with one store per durable blob."""

    def __init__(self, data_dir: str = ".ezjob"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.jobs = JsonFileStore(self.data_dir / "scheduled_jobs.json")
        self.security_events = JsonFileStore(self.data_dir / "security_events.json")
        # read-only; written by the surrounding application
        self.applications = JsonFileStore(self.data_dir / "applications.json")
