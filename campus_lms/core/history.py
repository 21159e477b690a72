from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Iterator

from campus_lms.core.clock import as_utc, utcnow


@dataclass(frozen=True)
class HistoryEntry:
    action: str
    at: datetime
    performed_by: int | None = None
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "at": self.at.isoformat(),
            "performed_by": self.performed_by,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryEntry":
        at = data.get("at")
        if isinstance(at, str):
            at = datetime.fromisoformat(at)
        return cls(
            action=data["action"],
            at=as_utc(at) or utcnow(),
            performed_by=data.get("performed_by"),
            details=data.get("details"),
        )


class BoundedHistory:
    """Append-only audit trail that keeps at most ``capacity`` entries.

    Entries are stored on the owning row as a JSON list; once the buffer is
    full the oldest entry is dropped on every append.
    """

    def __init__(self, entries: Iterable[dict[str, Any] | HistoryEntry] | None = None, capacity: int = 20):
        if capacity < 1:
            raise ValueError("history capacity must be at least 1")
        self._entries: deque[HistoryEntry] = deque(maxlen=capacity)
        for entry in entries or ():
            self._entries.append(entry if isinstance(entry, HistoryEntry) else HistoryEntry.from_dict(entry))

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def record(
        self,
        action: str,
        performed_by: int | None = None,
        details: str | None = None,
        at: datetime | None = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(action=action, at=as_utc(at) or utcnow(), performed_by=performed_by, details=details)
        self._entries.append(entry)
        return entry

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self._entries)
