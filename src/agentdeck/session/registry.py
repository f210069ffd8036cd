"""Session registry — names, timestamps and the active/last-active pointers.

The registry stores metadata only. Processes, buffers and surfaces belong
to the ``SessionRuntime``; the registry reaches them through the id and
learns about exits from the runtime's exit subscription, never by polling.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Callable

from agentdeck.errors import UnknownSessionError, ValidationError, report
from agentdeck.ids import SessionId
from agentdeck.session.wire import EventType

if TYPE_CHECKING:
    from agentdeck.config import AgentDeckConfig
    from agentdeck.pty.runtime import SessionRuntime
    from agentdeck.session.wire import Wire

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    id: SessionId
    name: str
    created_at: float
    last_active_at: float


@dataclass(frozen=True)
class RegistrySnapshot:
    """Point-in-time copy of the registry for listings and diagnostics."""

    records: tuple[SessionRecord, ...]
    active_id: SessionId | None
    last_active_id: SessionId | None
    counter: int

    @property
    def count(self) -> int:
        return len(self.records)


class SessionRegistry:
    """Tracks every session the user can switch to.

    ``active_id`` is the session currently on screen (or ``None``);
    ``last_active_id`` is the default target for toggling and survives
    hiding. Both are reconciled by one routine whenever a record goes
    away, whether through ``delete()`` or a process exit.
    """

    def __init__(
        self,
        runtime: SessionRuntime,
        config: AgentDeckConfig,
        wire: Wire | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._runtime = runtime
        self._config = config
        self._wire = wire
        self._clock = clock
        self._records: dict[SessionId, SessionRecord] = {}
        self._active_id: SessionId | None = None
        self._last_active_id: SessionId | None = None
        self._counter: int = 0
        runtime.register_exit_subscriber(self._on_session_exit)

    @property
    def config(self) -> AgentDeckConfig:
        return self._config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(
        self, name: str | None = None, config: AgentDeckConfig | None = None
    ) -> SessionId:
        """Start a new session and make it active.

        The counter only advances once the process has started, so a
        ``ProcessLaunchError`` leaves the registry untouched.
        """
        config = config or self._config
        session_id = SessionId(self._counter + 1)
        if not name or not name.strip():
            name = config.naming.name_for(session_id.number)

        self._runtime.create(session_id, config.argv, config.split)

        self._counter = session_id.number
        now = self._clock()
        self._records[session_id] = SessionRecord(
            id=session_id, name=name, created_at=now, last_active_at=now
        )
        previous = self._active_id
        if config.exclusive_surface and previous is not None:
            self._runtime.hide(previous)
        self._active_id = session_id
        self._last_active_id = session_id

        logger.info("Created session %s (%s)", session_id, name)
        if self._wire:
            self._wire.send_session(EventType.SESSION_CREATED, session_id, name=name)
        return session_id

    def switch_to(
        self, session_id: SessionId, config: AgentDeckConfig | None = None
    ) -> bool:
        """Show ``session_id`` and make it active, recreating it if it died."""
        record = self._records.get(session_id)
        if record is None:
            report(UnknownSessionError(session_id), logger, self._wire)
            return False

        config = config or self._config
        previous = self._active_id if self._active_id != session_id else None
        hide_previous = config.exclusive_surface and previous is not None

        if self._runtime.is_running(session_id):
            if hide_previous:
                self._runtime.hide(previous)
            self._runtime.show(session_id, config.split)
        else:
            # Died before its exit was delivered; relaunch under the same id.
            logger.info("Session %s is not running, recreating", session_id)
            self._runtime.create(session_id, config.argv, config.split)
            if hide_previous:
                self._runtime.hide(previous)
            if self._wire:
                self._wire.send_status(f"Restarted {record.name} ({session_id})")

        self._activate(record)
        if self._wire:
            self._wire.send_session(EventType.SESSION_SWITCHED, session_id, name=record.name)
        return True

    def toggle(self, config: AgentDeckConfig | None = None) -> SessionId:
        """Hide the last active session if it is showing, otherwise bring it back.

        With no sessions at all a new one is created.
        """
        target = self._last_active_id
        if target is None or target not in self._records:
            return self.create_session(config=config)
        if self._runtime.is_visible(target):
            self.hide(target)
        else:
            self.switch_to(target, config)
        return target

    def hide(self, session_id: SessionId | None = None) -> bool:
        """Hide a session (default: the active one). ``last_active_id`` is kept."""
        if session_id is None:
            session_id = self._active_id
        if session_id is None or session_id not in self._records:
            return False
        self._runtime.hide(session_id)
        if self._active_id == session_id:
            self._active_id = None
        return True

    def rename(self, session_id: SessionId, new_name: str) -> bool:
        record = self._records.get(session_id)
        if record is None:
            report(UnknownSessionError(session_id), logger, self._wire)
            return False
        if not new_name or not new_name.strip():
            report(ValidationError("Session name cannot be empty"), logger, self._wire)
            return False
        record.name = new_name.strip()
        if self._wire:
            self._wire.send_session(EventType.SESSION_RENAMED, session_id, name=record.name)
        return True

    def delete(self, session_id: SessionId) -> bool:
        """Remove a session and kill its process. Unknown ids return ``False``."""
        if not self._forget(session_id):
            return False
        # The resulting exit event finds no record and does nothing.
        self._runtime.terminate(session_id)
        logger.info("Deleted session %s", session_id)
        if self._wire:
            self._wire.send_session(EventType.SESSION_DELETED, session_id)
        return True

    def _on_session_exit(self, session_id: SessionId, exit_code: int | None) -> None:
        if self._forget(session_id):
            logger.info("Session %s exited (code=%s), record removed", session_id, exit_code)

    def _forget(self, session_id: SessionId) -> bool:
        """Drop a record and repair both pointers. Returns ``False`` if absent."""
        if self._records.pop(session_id, None) is None:
            return False
        if self._active_id == session_id:
            self._active_id = None
        if self._last_active_id == session_id:
            remaining = self.list()
            self._last_active_id = remaining[0].id if remaining else None
        return True

    def _activate(self, record: SessionRecord) -> None:
        self._active_id = record.id
        self._last_active_id = record.id
        record.last_active_at = self._clock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self) -> list[SessionRecord]:
        """All records, newest first. Ties keep insertion order."""
        return sorted(self._records.values(), key=lambda r: r.created_at, reverse=True)

    def get(self, session_id: SessionId) -> SessionRecord | None:
        return self._records.get(session_id)

    def get_active(self) -> SessionId | None:
        return self._active_id

    def get_last_active(self) -> SessionId | None:
        return self._last_active_id

    def has_sessions(self) -> bool:
        return bool(self._records)

    def count(self) -> int:
        return len(self._records)

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            records=tuple(replace(r) for r in self.list()),
            active_id=self._active_id,
            last_active_id=self._last_active_id,
            counter=self._counter,
        )

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._records
