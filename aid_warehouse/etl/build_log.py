"""Rejection and conflict logs collected during a build, plus the run summary."""

import threading
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class Rejection:
    table: str
    record_id: str
    reason: str
    dimension: str | None = None
    source: str | None = None


@dataclass(frozen=True)
class Conflict:
    dimension: str
    natural_key: tuple
    field: str
    kept: Any
    ignored: Any


class _Log:
    def __init__(self):
        self._entries: list = []
        self._lock = threading.Lock()

    def _append(self, entry) -> None:
        with self._lock:
            self._entries.append(entry)

    @property
    def entries(self) -> list:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def records(self) -> list[dict[str, Any]]:
        return [asdict(entry) for entry in self.entries]


class RejectionLog(_Log):
    def record(self, rejection: Rejection) -> None:
        self._append(rejection)

    def count(self, table: str) -> int:
        return sum(1 for r in self.entries if r.table == table)


class ConflictLog(_Log):
    """Distinct (dimension, natural key, field, ignored value) conflicts."""

    def __init__(self):
        super().__init__()
        self._seen: set = set()

    def record(self, conflict: Conflict) -> bool:
        """Returns False when the same conflict was already recorded."""
        marker = (conflict.dimension, conflict.natural_key, conflict.field, repr(conflict.ignored))
        with self._lock:
            if marker in self._seen:
                return False
            self._seen.add(marker)
            self._entries.append(conflict)
            return True

    def count(self, dimension: str) -> int:
        return sum(1 for c in self.entries if c.dimension == dimension)


@dataclass
class TableStats:
    rows: int = 0
    rejected: int = 0
    warned: int = 0


@dataclass
class BuildSummary:
    records_read: dict[str, int] = field(default_factory=dict)
    tables: dict[str, TableStats] = field(default_factory=dict)
    status: str = "success"
    error: str | None = None
    violations: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
