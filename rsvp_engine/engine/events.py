"""Bounded playback event log.

WHY: Diagnostics and tests need to see what the scheduler did (start,
each tick, manual steps) without the log growing for the life
of a long reading session.

HOW: A ``collections.deque`` with ``maxlen`` keeps the most recent entries.
Timestamps are ISO-8601 strings from an injectable wall clock.

RULES:
- The log is never read for control flow
- Oldest entries are dropped first once the bound is reached
- EventKind inherits from str so entries serialize cleanly to JSON
"""

from __future__ import annotations

import enum
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from rsvp_engine import config


class EventKind(str, enum.Enum):
    START = "start"
    STOP = "stop"
    TICK = "tick"
    MANUAL = "manual"
    RESET = "reset"


@dataclass(frozen=True)
class LogEntry:
    event: EventKind
    index: int
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.event.value, "index": self.index, "timestamp": self.timestamp}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventLog:
    """Ring buffer of the most recent playback events."""

    def __init__(
        self,
        max_entries: int = config.EVENT_LOG_SIZE,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._entries: Deque[LogEntry] = deque(maxlen=max(1, max_entries))
        self._clock = clock or _utc_now

    def append(self, event: EventKind, index: int) -> LogEntry:
        entry = LogEntry(event=event, index=index, timestamp=self._clock().isoformat())
        self._entries.append(entry)
        return entry

    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
