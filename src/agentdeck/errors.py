"""Error taxonomy for session operations.

``ProcessLaunchError`` propagates to the caller. The others are
*reported*: logged and published on the wire, and the operation that hit
them returns ``False``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentdeck.ids import SessionId
    from agentdeck.session.wire import Wire


class AgentDeckError(Exception):
    """Base class for all agentdeck errors."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class ProcessLaunchError(AgentDeckError):
    """The session command could not be started."""

    def __init__(self, command: list[str], reason: str) -> None:
        self.command = list(command)
        self.reason = reason
        shown = " ".join(command) or "<empty>"
        super().__init__(f"Failed to launch {shown!r}: {reason}")


class NotRunningError(AgentDeckError):
    """The operation needs a live process and there is none."""

    def __init__(self, session_id: SessionId) -> None:
        self.session_id = session_id
        super().__init__(f"Agent session {session_id} is not running")


class UnknownSessionError(AgentDeckError):
    """No record exists for the given id."""

    def __init__(self, session_id: SessionId) -> None:
        self.session_id = session_id
        super().__init__(f"Agent session {session_id} does not exist")


class ValidationError(AgentDeckError):
    """Caller input was rejected."""


def report(
    error: AgentDeckError, logger: logging.Logger, wire: Wire | None = None
) -> None:
    """Log a non-fatal error and publish it to wire subscribers."""
    logger.warning("%s", error)
    if wire is not None:
        wire.send_error(str(error), kind=error.kind)
