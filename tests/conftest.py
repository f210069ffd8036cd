"""Shared fixtures: in-memory processes, a ticking clock and a wired-up deck."""

from __future__ import annotations

import itertools

import pytest

from agentdeck.config import AgentDeckConfig
from agentdeck.deck import AgentDeck
from agentdeck.display import HeadlessDisplay
from agentdeck.errors import ProcessLaunchError
from agentdeck.pty.process import ExitCallback, OutputCallback
from agentdeck.session.wire import Wire

_pids = itertools.count(1000)


class FakeProcess:
    """Stands in for a PTY child. Exits are delivered synchronously."""

    def __init__(
        self,
        command: list[str],
        on_output: OutputCallback,
        size: tuple[int, int] | None,
    ) -> None:
        self.command = command
        self.pid = next(_pids)
        self.size = size
        self.alive = True
        self.writes: list[bytes] = []
        self.terminated = False
        self.exit_calls = 0
        self._on_output = on_output
        self._on_exit: ExitCallback | None = None
        self._finished = False

    def is_alive(self) -> bool:
        return self.alive

    def write(self, data: bytes) -> None:
        if not self.alive:
            raise OSError("input channel closed")
        self.writes.append(data)

    def resize(self, columns: int, lines: int) -> None:
        self.size = (columns, lines)

    def on_exit(self, callback: ExitCallback) -> None:
        self._on_exit = callback

    def emit(self, text: str) -> None:
        self._on_output(text)

    def die(self) -> None:
        """Process is gone but its exit has not been delivered yet."""
        self.alive = False

    def exit(self, code: int | None = 0) -> None:
        """Process quits on its own and the exit is delivered."""
        self.alive = False
        self._finish(code)

    def terminate(self) -> None:
        self.terminated = True
        self.alive = False
        self._finish(-9)

    def _finish(self, code: int | None) -> None:
        if self._finished:
            return
        self._finished = True
        self.exit_calls += 1
        if self._on_exit is not None:
            self._on_exit(code)


class FakeLauncher:
    def __init__(self) -> None:
        self.processes: list[FakeProcess] = []
        self.fail_with: str | None = None

    def spawn(
        self,
        command: list[str],
        on_output: OutputCallback,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        size: tuple[int, int] | None = None,
    ) -> FakeProcess:
        if self.fail_with:
            raise ProcessLaunchError(command, self.fail_with)
        process = FakeProcess(command, on_output, size)
        self.processes.append(process)
        return process

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


class TickingClock:
    """Advances one second on every read so creation order is unambiguous."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


@pytest.fixture
def config() -> AgentDeckConfig:
    return AgentDeckConfig(command="fake-agent --interactive")


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def display() -> HeadlessDisplay:
    return HeadlessDisplay(columns=100, lines=40)


@pytest.fixture
def wire() -> Wire:
    return Wire()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def deck(
    config: AgentDeckConfig,
    display: HeadlessDisplay,
    launcher: FakeLauncher,
    wire: Wire,
    clock: TickingClock,
) -> AgentDeck:
    return AgentDeck.build(
        config=config, display=display, launcher=launcher, wire=wire, clock=clock
    )
