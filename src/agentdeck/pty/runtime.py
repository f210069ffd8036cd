"""Session runtime — owns the live process, buffer and surface of every session."""

from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from agentdeck.display.base import Geometry, Surface, compute_geometry
from agentdeck.errors import NotRunningError, report
from agentdeck.ids import SessionId
from agentdeck.pty.buffer import BufferView, OutputBuffer
from agentdeck.session.wire import EventType

if TYPE_CHECKING:
    from agentdeck.config import SplitConfig
    from agentdeck.display.base import Display
    from agentdeck.pty.process import ProcessHandle, ProcessLauncher
    from agentdeck.session.wire import Wire

logger = logging.getLogger(__name__)

ExitSubscriber = Callable[[SessionId, "int | None"], None]


@dataclass
class Session:
    """One running agent process with its output and optional surface."""

    id: SessionId
    command: list[str]
    process: ProcessHandle
    buffer: OutputBuffer
    surface: Surface | None = None
    started_at: float = field(default_factory=time.time)


class SessionRuntime:
    """Manages the lifecycle of every session's process and surface.

    The runtime ensures:
    - At most one Session entry per id; exited processes are not retained
    - Surfaces are released whenever a session is hidden or exits
    - Each Session's exit is handled exactly once, whether the process
      quit on its own or was terminated through ``terminate()``
    - Exit subscribers are told about every exit, after cleanup
    """

    def __init__(
        self,
        display: Display,
        launcher: ProcessLauncher,
        wire: Wire | None = None,
        *,
        buffer_lines: int = 10_000,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self._display = display
        self._launcher = launcher
        self._wire = wire
        self._buffer_lines = buffer_lines
        self._cwd = cwd
        self._env = env or {}
        self._sessions: dict[SessionId, Session] = {}
        self._exit_subscribers: list[ExitSubscriber] = []

    def register_exit_subscriber(self, callback: ExitSubscriber) -> None:
        """Call ``callback(session_id, exit_code)`` after every future exit."""
        self._exit_subscribers.append(callback)

    def _geometry(self, split: SplitConfig) -> Geometry:
        columns, lines = self._display.screen_size()
        return compute_geometry(split, columns, lines)

    def create(
        self, session_id: SessionId, command: list[str], split: SplitConfig
    ) -> Session:
        """Start ``command`` for ``session_id`` and show it.

        The surface is acquired and bound before the process starts, so a
        display or launch failure propagates with nothing retained: the new
        surface is released and any previous entry for the id is untouched.
        A stale entry for the same id (process dead, exit not yet delivered)
        is replaced without notifying subscribers, since the id lives on.
        """
        geometry = self._geometry(split)
        buffer = OutputBuffer(max_lines=self._buffer_lines)
        surface = self._acquire(buffer, geometry)
        try:
            process = self._launcher.spawn(
                command,
                buffer.feed,
                cwd=self._cwd,
                env=self._env,
                size=(geometry.width, geometry.height),
            )
        except Exception:
            self._display.release_surface(surface)
            raise

        stale = self._sessions.pop(session_id, None)
        if stale is not None:
            logger.info("Replacing stale session %s", session_id)
            self._release(stale)
            stale.process.terminate()
            stale.buffer.clear()

        session = Session(
            id=session_id,
            command=list(command),
            process=process,
            buffer=buffer,
            surface=surface,
        )
        self._sessions[session_id] = session
        process.on_exit(functools.partial(self._handle_exit, session))
        logger.info("Session %s started: pid=%d cmd=%s", session_id, process.pid, " ".join(command))
        if self._wire:
            self._wire.send_session(EventType.SESSION_SHOWN, session_id)
        return session

    def _acquire(self, buffer: OutputBuffer, geometry: Geometry) -> Surface:
        surface = self._display.acquire_surface(geometry)
        try:
            self._display.bind_buffer(surface, buffer.view())
        except Exception:
            self._display.release_surface(surface)
            raise
        return surface

    def _attach(self, session: Session, geometry: Geometry) -> None:
        if session.surface is not None:
            self._display.release_surface(session.surface)
            session.surface = None
        session.surface = self._acquire(session.buffer, geometry)
        session.process.resize(geometry.width, geometry.height)
        if self._wire:
            self._wire.send_session(EventType.SESSION_SHOWN, session.id)

    def _release(self, session: Session) -> None:
        if session.surface is None:
            return
        self._display.release_surface(session.surface)
        session.surface = None
        if self._wire:
            self._wire.send_session(EventType.SESSION_HIDDEN, session.id)

    def show(self, session_id: SessionId, split: SplitConfig) -> bool:
        """Show an existing session. ``False`` means there is nothing to show."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        if not self.is_visible(session_id):
            self._attach(session, self._geometry(split))
        return True

    def hide(self, session_id: SessionId) -> None:
        """Release the session's surface; the process keeps running."""
        session = self._sessions.get(session_id)
        if session is not None:
            self._release(session)

    def is_visible(self, session_id: SessionId) -> bool:
        session = self._sessions.get(session_id)
        if session is None or session.surface is None:
            return False
        return self._display.is_valid(session.surface)

    def is_running(self, session_id: SessionId) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and session.process.is_alive()

    def send(self, text: str, session_id: SessionId) -> bool:
        """Type ``text`` into the session, adding a trailing newline if missing."""
        try:
            self._write(session_id, text)
        except NotRunningError as e:
            report(e, logger, self._wire)
            return False
        return True

    def _write(self, session_id: SessionId, text: str) -> None:
        session = self._sessions.get(session_id)
        if session is None or not session.process.is_alive():
            raise NotRunningError(session_id)
        if not text.endswith("\n"):
            text += "\n"
        try:
            session.process.write(text.encode("utf-8"))
        except OSError as e:
            raise NotRunningError(session_id) from e

    def peek(self, session_id: SessionId) -> BufferView | None:
        """Read-only view of a session's output, for previews."""
        session = self._sessions.get(session_id)
        return session.buffer.view() if session else None

    def surface_of(self, session_id: SessionId) -> Surface | None:
        session = self._sessions.get(session_id)
        return session.surface if session else None

    def id_for_surface(self, surface: Surface) -> SessionId | None:
        for session in self._sessions.values():
            if session.surface == surface:
                return session.id
        return None

    def terminate(self, session_id: SessionId) -> None:
        """Kill the session's process; teardown runs through the exit path."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        self._release(session)
        session.process.terminate()
        # A handle that swallowed its exit callback must not leave the entry behind.
        self._handle_exit(session, None)

    def _handle_exit(self, session: Session, exit_code: int | None) -> None:
        if self._sessions.get(session.id) is not session:
            logger.debug("Ignoring exit of superseded or removed session %s", session.id)
            return
        del self._sessions[session.id]

        tail = session.buffer.read_tail(3)
        self._release(session)
        session.buffer.clear()
        logger.info("Session %s exited (code=%s)", session.id, exit_code)

        if self._wire:
            self._wire.send_session_exit(session.id, exit_code, "\n".join(tail))
        for callback in list(self._exit_subscribers):
            try:
                callback(session.id, exit_code)
            except Exception:
                logger.exception("Error in exit subscriber for session %s", session.id)

    def describe(self, session_id: SessionId) -> dict[str, Any]:
        """Diagnostic state of one session."""
        session = self._sessions.get(session_id)
        if session is None:
            return {
                "id": str(session_id),
                "exists": False,
                "visible": False,
                "running": False,
            }
        return {
            "id": str(session_id),
            "exists": True,
            "pid": session.process.pid,
            "surface": session.surface.handle if session.surface else None,
            "visible": self.is_visible(session_id),
            "running": self.is_running(session_id),
            "lines": session.buffer.line_count,
        }

    def list_sessions(self) -> list[dict[str, Any]]:
        return [self.describe(session_id) for session_id in self._sessions]

    def shutdown(self) -> None:
        """Terminate every session. Called when the host exits."""
        for session_id in list(self._sessions):
            self.terminate(session_id)
        logger.info("All agent sessions cleaned up")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
