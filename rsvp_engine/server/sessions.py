"""In-memory reader-session store with idle TTL cleanup.

WHY: The HTTP API hands out session IDs and drives the same ReaderSession
across many requests. Sessions are ephemeral and there is no persistence
requirement, but abandoned ones hold live timers and must be reclaimed.

HOW: Sessions live in a dict keyed by a UUID4 hex ID, guarded by a
threading.Lock. Each record remembers when it was last touched; the app's
periodic task calls cleanup_expired() to close and drop idle sessions.
Timer and frame back-ends come from ``engine_factory`` so the server can
bind them to its event loop while tests substitute virtual clocks.

RULES:
- All store mutations acquire self._lock
- create() raises ValueError when max_sessions is reached
- get() returns None for unknown IDs (no exceptions) and refreshes last_used
- delete() and expiry close the session so no timer outlives it
- Session methods themselves run on the event loop thread only
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from rsvp_engine import config
from rsvp_engine.core.spec import ConditionSpec
from rsvp_engine.engine.timers import AsyncioFrameSource, AsyncioTimer, FrameSource, Timer
from rsvp_engine.session import ReaderSession

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], Tuple[Timer, FrameSource]]


def asyncio_engines() -> Tuple[Timer, FrameSource]:
    """Timer and frame source bound to the running event loop."""
    return AsyncioTimer(), AsyncioFrameSource()


@dataclass
class SessionRecord:
    """A stored session plus bookkeeping.

    RULES:
    - id: UUID4 hex string, immutable
    - created_at / last_used: epoch seconds
    """

    id: str
    session: ReaderSession
    created_at: float
    last_used: float


class SessionStore:
    """Thread-safe in-memory store for reader sessions."""

    def __init__(
        self,
        ttl_seconds: int = config.SESSION_TTL_SECONDS,
        max_sessions: int = config.MAX_SESSIONS,
        engine_factory: Optional[EngineFactory] = None,
    ) -> None:
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self.engine_factory: EngineFactory = engine_factory or asyncio_engines

    def create(self, text: str = "", spec: Optional[ConditionSpec] = None) -> SessionRecord:
        """Create a session for ``text``; raises ValueError when the store is full."""
        with self._lock:
            if len(self._sessions) >= self.max_sessions:
                raise ValueError(
                    "Maximum number of sessions ({}) reached".format(self.max_sessions)
                )
            timer, frames = self.engine_factory()
            now = time.time()
            record = SessionRecord(
                id=uuid.uuid4().hex,
                session=ReaderSession(text=text, spec=spec, timer=timer, frames=frames),
                created_at=now,
                last_used=now,
            )
            self._sessions[record.id] = record

        logger.info("Created session %s (%d tokens)", record.id, len(record.session.tokens))
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._sessions.get(session_id)
            if record is not None:
                record.last_used = time.time()
            return record

    def list_sessions(self) -> List[SessionRecord]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda r: r.created_at)

    def delete(self, session_id: str) -> bool:
        """Close and remove a session. Returns False if it did not exist."""
        with self._lock:
            record = self._sessions.pop(session_id, None)
        if record is None:
            return False
        record.session.close()
        logger.info("Deleted session %s", session_id)
        return True

    def cleanup_expired(self) -> int:
        """Close and drop sessions idle for longer than the TTL."""
        now = time.time()
        expired: List[SessionRecord] = []
        with self._lock:
            for session_id, record in list(self._sessions.items()):
                if now - record.last_used > self._ttl_seconds:
                    expired.append(self._sessions.pop(session_id))

        for record in expired:
            record.session.close()
            logger.info("Expired session %s (idle %.0fs)", record.id, now - record.last_used)
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            records = list(self._sessions.values())
            self._sessions.clear()
        for record in records:
            record.session.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
