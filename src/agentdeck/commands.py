"""User commands, the operations a keybinding or shell line maps to."""

from __future__ import annotations

import os
import shlex
import time
from typing import TYPE_CHECKING, Callable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from agentdeck import __version__
from agentdeck.errors import ProcessLaunchError
from agentdeck.ids import SessionId
from agentdeck.session.listing import format_entry, sessions_table
from agentdeck.session.wire import EventType, WireEvent

if TYPE_CHECKING:
    from agentdeck.deck import AgentDeck
    from agentdeck.pty.runtime import SessionRuntime
    from agentdeck.session.registry import SessionRegistry

HELP = """\
Commands:
  toggle               Show or hide the last active session (creates one if none)
  new [NAME]           Start a new session
  select [ID]          Switch to a session (auto-selects when only one exists)
  hide                 Hide the active session
  rename NAME          Rename the active session
  list                 List sessions
  send TEXT...         Send a line to the active session
  ref PATH START [END] Mention a file line range in the last active session
  peek ID [LINES]      Show recent output of a session
  delete [ID]          Close a session (default: active)
  version              Show version
  help                 Show this help
  quit                 Close all sessions and exit"""


def describe_event(event: WireEvent) -> str | None:
    """Human-readable line for wire events worth showing to the user."""
    data = event.data
    if event.type == EventType.SESSION_EXIT:
        return f"Session {data['session_id']} exited (code={data['exit_code']})"
    if event.type == EventType.ERROR:
        return f"[red]{escape(data['error'])}[/red]"
    if event.type == EventType.STATUS:
        return escape(data["message"])
    return None


def file_reference(path: str, start: int, end: int | None = None) -> str:
    """``@/abs/path:START-END``, the form agent CLIs read as a file mention."""
    end = start if end is None else end
    if start < 1 or end < start:
        raise ValueError(f"invalid line range: {start}-{end}")
    return f"@{os.path.abspath(path)}:{start}-{end}"


class CommandDispatcher:
    """Maps user commands onto the registry and runtime of one deck."""

    def __init__(
        self,
        deck: AgentDeck,
        console: Console | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._deck = deck
        self._console = console or Console()
        self._clock = clock
        self._handlers: dict[str, Callable[[list[str]], bool]] = {
            "toggle": lambda args: self.toggle() is not None,
            "new": lambda args: self.new(" ".join(args) or None) is not None,
            "select": self._select_cmd,
            "hide": lambda args: self.hide(),
            "rename": lambda args: self.rename(" ".join(args)),
            "list": lambda args: self.list(),
            "send": lambda args: self.send(" ".join(args)),
            "ref": self._ref_cmd,
            "peek": self._peek_cmd,
            "delete": self._delete_cmd,
            "version": lambda args: self.version(),
            "help": lambda args: self.help(),
        }

    @property
    def registry(self) -> SessionRegistry:
        return self._deck.registry

    @property
    def runtime(self) -> SessionRuntime:
        return self._deck.runtime

    def _warn(self, message: str) -> None:
        self._console.print(f"[yellow]{escape(message)}[/yellow]")

    def toggle(self) -> SessionId | None:
        try:
            return self.registry.toggle()
        except ProcessLaunchError as e:
            self._console.print(f"[red]{escape(str(e))}[/red]")
            return None

    def new(self, name: str | None = None) -> SessionId | None:
        try:
            session_id = self.registry.create_session(name)
        except ProcessLaunchError as e:
            self._console.print(f"[red]{escape(str(e))}[/red]")
            return None
        record = self.registry.get(session_id)
        self._console.print(f"Started {escape(record.name)} ({session_id})")
        return session_id

    def select(self, session_id: SessionId | None = None) -> bool:
        records = self.registry.list()
        if not records:
            self._warn("No sessions available. Create one with `new`")
            return False
        if session_id is None:
            if len(records) > 1:
                now = self._clock()
                for record in records:
                    running = self.runtime.is_running(record.id)
                    line = f"  {record.id}  {format_entry(record, running, now)}"
                    self._console.print(line, markup=False)
                self._console.print("Choose one with `select ID`")
                return False
            session_id = records[0].id
        try:
            return self.registry.switch_to(session_id)
        except ProcessLaunchError as e:
            self._console.print(f"[red]{escape(str(e))}[/red]")
            return False

    def hide(self) -> bool:
        return self.registry.hide()

    def rename(self, name: str, session_id: SessionId | None = None) -> bool:
        target = session_id or self.registry.get_active()
        if target is None:
            self._warn("No active session to rename. Create one with `new`")
            return False
        if not self.registry.rename(target, name):
            return False
        self._console.print(f"Session renamed to: {escape(name.strip())}")
        return True

    def list(self) -> bool:
        records = self.registry.list()
        if not records:
            self._console.print("No sessions available. Create one with `new`")
            return True
        self._console.print(
            sessions_table(records, self.runtime, self.registry.get_active(), self._clock())
        )
        return True

    def send(self, text: str) -> bool:
        active = self.registry.get_active()
        if active is None or not self.runtime.is_running(active):
            self._warn("Agent session is not running")
            return False
        return self.runtime.send(text, active)

    def ref(self, path: str, start: int, end: int | None = None) -> bool:
        """Bring the last active session on screen, creating one if there is
        none, and type a reference to ``path`` lines ``start``-``end`` into it.
        """
        reference = file_reference(path, start, end)
        try:
            if not self.registry.has_sessions():
                self.registry.create_session()
            else:
                last = self.registry.get_last_active()
                if last is not None and (
                    self.registry.get_active() != last or not self.runtime.is_visible(last)
                ):
                    self.registry.switch_to(last)
        except ProcessLaunchError as e:
            self._console.print(f"[red]{escape(str(e))}[/red]")
            return False
        active = self.registry.get_active()
        if active is None or not self.runtime.is_running(active):
            self._warn("Agent session is not running")
            return False
        return self.runtime.send(reference, active)

    def peek(self, session_id: SessionId, lines: int = 20) -> bool:
        record = self.registry.get(session_id)
        view = self.runtime.peek(session_id)
        if record is None or view is None:
            self._warn(f"Session {session_id} is not running")
            return False
        title = format_entry(record, self.runtime.is_running(session_id), self._clock())
        self._console.print(Panel(Text("\n".join(view.read_tail(lines))), title=escape(title)))
        return True

    def delete(self, session_id: SessionId | None = None) -> bool:
        target = session_id or self.registry.get_active()
        if target is None:
            self._warn("No active session to delete")
            return False
        if not self.registry.delete(target):
            self._warn(f"Session {target} does not exist")
            return False
        return True

    def version(self) -> bool:
        self._console.print(f"agentdeck v{__version__}")
        return True

    def help(self) -> bool:
        self._console.print(HELP, markup=False)
        return True

    def _select_cmd(self, args: list[str]) -> bool:
        return self.select(SessionId.parse(args[0]) if args else None)

    def _delete_cmd(self, args: list[str]) -> bool:
        return self.delete(SessionId.parse(args[0]) if args else None)

    def _ref_cmd(self, args: list[str]) -> bool:
        if len(args) < 2:
            self._warn("Usage: ref PATH START [END]")
            return False
        end = int(args[2]) if len(args) > 2 else None
        return self.ref(args[0], int(args[1]), end)

    def _peek_cmd(self, args: list[str]) -> bool:
        if not args:
            self._warn("Usage: peek ID [LINES]")
            return False
        lines = int(args[1]) if len(args) > 1 else 20
        return self.peek(SessionId.parse(args[0]), lines)

    def execute(self, line: str) -> bool:
        """Run one command line. Returns ``False`` when the user asked to quit."""
        try:
            words = shlex.split(line)
        except ValueError as e:
            self._warn(f"Could not parse command: {e}")
            return True
        if not words:
            return True
        name, args = words[0].lower(), words[1:]
        if name in ("quit", "exit"):
            return False
        handler = self._handlers.get(name)
        if handler is None:
            self._warn(f"Unknown command: {name}")
            self.help()
            return True
        try:
            handler(args)
        except ValueError as e:
            self._warn(str(e))
        return True
