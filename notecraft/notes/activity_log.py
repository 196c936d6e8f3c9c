"""Per-request activity log.

An append-only, chronologically ordered audit trail of every attempt, success
and failure while generating or continuing notes. The full sequence is
returned to the caller on every exit path; clients render it newest-first.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from notecraft.observability.logging import get_logger

logger = get_logger(__name__)


class ActivityStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class ActivityLogEntry:
    timestamp: datetime
    action: str
    status: ActivityStatus
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "status": self.status.value,
        }
        if self.details is not None:
            data["details"] = self.details
        return data


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ActivityLog:
    """Append-only list of ActivityLogEntry.

    Timestamps never go backwards: if the clock reports an earlier time than
    the last entry (NTP step, injected test clock), the last timestamp is
    reused.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._entries: list[ActivityLogEntry] = []

    def record(
        self,
        action: str,
        status: ActivityStatus | str,
        details: str | None = None,
    ) -> ActivityLogEntry:
        status = ActivityStatus(status)
        timestamp = self._clock()
        if self._entries and timestamp < self._entries[-1].timestamp:
            timestamp = self._entries[-1].timestamp

        entry = ActivityLogEntry(
            timestamp=timestamp, action=action, status=status, details=details
        )
        self._entries.append(entry)

        if status is ActivityStatus.ERROR:
            logger.warning("activity %s: %s", action, details or "")
        else:
            logger.info("activity %s (%s): %s", action, status.value, details or "")
        return entry

    def info(self, action: str, details: str | None = None) -> ActivityLogEntry:
        return self.record(action, ActivityStatus.INFO, details)

    def success(self, action: str, details: str | None = None) -> ActivityLogEntry:
        return self.record(action, ActivityStatus.SUCCESS, details)

    def error(self, action: str, details: str | None = None) -> ActivityLogEntry:
        return self.record(action, ActivityStatus.ERROR, details)

    @property
    def entries(self) -> tuple[ActivityLogEntry, ...]:
        return tuple(self._entries)

    def count(self, action: str) -> int:
        return sum(1 for e in self._entries if e.action == action)

    def actions(self) -> list[str]:
        return [e.action for e in self._entries]

    def to_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

    def __iter__(self) -> Iterator[ActivityLogEntry]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)
