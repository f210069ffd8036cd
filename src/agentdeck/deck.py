"""Composition root — one runtime and one registry sharing a display and wire."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from agentdeck.config import AgentDeckConfig
from agentdeck.display import Display, HeadlessDisplay
from agentdeck.pty.process import ProcessLauncher, PTYLauncher
from agentdeck.pty.runtime import SessionRuntime
from agentdeck.session.registry import SessionRegistry
from agentdeck.session.wire import Wire


@dataclass
class AgentDeck:
    """All components of a session manager, shared between the CLI and embedders."""

    config: AgentDeckConfig
    display: Display
    runtime: SessionRuntime
    registry: SessionRegistry
    wire: Wire | None = None

    @classmethod
    def build(
        cls,
        config: AgentDeckConfig | None = None,
        display: Display | None = None,
        launcher: ProcessLauncher | None = None,
        wire: Wire | None = None,
        clock: Callable[[], float] = time.time,
    ) -> AgentDeck:
        """Wire up a deck. Defaults: headless display and real PTY processes."""
        config = config or AgentDeckConfig()
        display = display or HeadlessDisplay()
        launcher = launcher or PTYLauncher(term=config.term, kill_grace=config.kill_grace)
        runtime = SessionRuntime(
            display,
            launcher,
            wire,
            buffer_lines=config.buffer_lines,
            cwd=config.cwd,
            env=config.env,
        )
        registry = SessionRegistry(runtime, config, wire=wire, clock=clock)
        return cls(
            config=config,
            display=display,
            runtime=runtime,
            registry=registry,
            wire=wire,
        )

    def shutdown(self) -> None:
        """Terminate every session; the registry empties through exit events."""
        self.runtime.shutdown()
