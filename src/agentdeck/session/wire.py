"""Wire protocol — decouples session bookkeeping from whatever UI is attached.

The runtime and registry publish lifecycle events; a shell, a status
line or a picker subscribes and renders them. Reported errors travel the
same way so they reach the user without the core knowing how.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    SESSION_CREATED = "session_created"
    SESSION_SWITCHED = "session_switched"
    SESSION_SHOWN = "session_shown"
    SESSION_HIDDEN = "session_hidden"
    SESSION_RENAMED = "session_renamed"
    SESSION_DELETED = "session_deleted"
    SESSION_EXIT = "session_exit"
    ERROR = "error"
    STATUS = "status"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Broadcast bus: session core -> UI subscribers.

    Delivery is non-blocking (``put_nowait``) so it is safe to call from
    exit callbacks running on the event loop.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers. Dropped after ``close()``."""
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_status(self, message: str) -> None:
        self.send(WireEvent(type=EventType.STATUS, data={"message": message}))

    def send_error(self, error: str, kind: str = "") -> None:
        self.send(WireEvent(type=EventType.ERROR, data={"error": error, "kind": kind}))

    def send_session(self, type: EventType, session_id: object, **data: Any) -> None:
        """Send a session lifecycle event keyed by ``str(session_id)``."""
        self.send(WireEvent(type=type, data={"session_id": str(session_id), **data}))

    def send_session_exit(
        self,
        session_id: object,
        exit_code: int | None,
        last_output: str = "",
    ) -> None:
        """Notify subscribers that a session's process is gone."""
        self.send_session(
            EventType.SESSION_EXIT,
            session_id,
            exit_code=exit_code,
            last_output=last_output[:500],
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)


def drain(q: asyncio.Queue[WireEvent | None]) -> list[WireEvent]:
    """Pop every queued event without waiting. Stops at the close sentinel."""
    events: list[WireEvent] = []
    while not q.empty():
        event = q.get_nowait()
        if event is None:
            break
        events.append(event)
    return events
