"""Session storage port.

Consumers that persist finished sessions depend on this protocol and get
an implementation injected; the decoding/scoring core never imports it.
"""

import threading
from datetime import date
from typing import Protocol, runtime_checkable

from sleeptracker.domain.models import SleepSession


@runtime_checkable
class SessionStore(Protocol):
    def save(self, session: SleepSession) -> None: ...

    def list_sessions(
        self, start: date | None = None, end: date | None = None
    ) -> list[SleepSession]:
        """Sessions whose date falls in [start, end), ordered by start time."""
        ...


class InMemorySessionStore:
    """Process-local store; sessions are immutable so they are kept by reference."""

    def __init__(self) -> None:
        self._sessions: list[SleepSession] = []
        self._lock = threading.Lock()

    def save(self, session: SleepSession) -> None:
        with self._lock:
            self._sessions.append(session)

    def list_sessions(
        self, start: date | None = None, end: date | None = None
    ) -> list[SleepSession]:
        with self._lock:
            sessions = list(self._sessions)
        if start:
            sessions = [s for s in sessions if s.date >= start]
        if end:
            sessions = [s for s in sessions if s.date < end]
        return sorted(sessions, key=lambda s: s.start_time)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
