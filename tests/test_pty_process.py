"""Tests for agentdeck.pty.process against real child processes."""

from __future__ import annotations

import asyncio
import os
import shutil
import sys

import pytest

from agentdeck.config import AgentDeckConfig
from agentdeck.deck import AgentDeck
from agentdeck.display import HeadlessDisplay
from agentdeck.errors import ProcessLaunchError
from agentdeck.pty import process as process_module
from agentdeck.pty.process import PTYLauncher, PTYProcess

pytestmark = pytest.mark.skipif(
    sys.platform == "win32" or shutil.which("sh") is None or shutil.which("cat") is None,
    reason="needs a POSIX pty with sh and cat",
)

TIMEOUT = 5.0


async def _wait_for(predicate, timeout: float = TIMEOUT) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


class TestLaunchErrors:
    def test_empty_command(self) -> None:
        with pytest.raises(ProcessLaunchError, match="empty command"):
            PTYProcess([], lambda text: None).start()

    def test_command_not_found(self) -> None:
        async def run() -> None:
            PTYLauncher().spawn(["definitely-not-a-real-binary-xyz"], lambda text: None)

        with pytest.raises(ProcessLaunchError) as excinfo:
            asyncio.run(run())
        assert excinfo.value.reason == "command not found"
        assert excinfo.value.command == ["definitely-not-a-real-binary-xyz"]


class TestPTYProcess:
    def test_echo_roundtrip(self) -> None:
        chunks: list[str] = []

        async def run() -> None:
            process = PTYLauncher(kill_grace=0.2).spawn(["cat"], chunks.append)
            try:
                assert process.is_alive()
                assert process.pid > 0
                process.write(b"ping\n")
                await _wait_for(lambda: "ping" in "".join(chunks))
            finally:
                process.terminate()

        asyncio.run(run())

    def test_natural_exit_fires_once(self) -> None:
        codes: list[int | None] = []
        chunks: list[str] = []

        async def run() -> None:
            process = PTYLauncher().spawn(["sh", "-c", "echo done; exit 3"], chunks.append)
            process.on_exit(codes.append)
            await _wait_for(lambda: bool(codes))
            assert not process.is_alive()
            process.terminate()
            await asyncio.sleep(0.1)

        asyncio.run(run())
        assert codes == [3]
        assert "done" in "".join(chunks)

    def test_terminate_fires_exit_once(self) -> None:
        codes: list[int | None] = []

        async def run() -> None:
            process = PTYLauncher(kill_grace=0.2).spawn(["cat"], lambda text: None)
            process.on_exit(codes.append)
            process.terminate()
            assert not process.is_alive()
            # Let the reader notice EOF; it must not fire the callback again.
            await asyncio.sleep(0.3)

        asyncio.run(run())
        assert len(codes) == 1

    def test_environment_and_size(self) -> None:
        chunks: list[str] = []
        codes: list[int | None] = []

        async def run() -> None:
            process = PTYLauncher(term="dumb").spawn(
                ["sh", "-c", 'echo "T=$TERM X=$AGENTDECK_TEST"; stty size'],
                chunks.append,
                env={"AGENTDECK_TEST": "yes"},
                size=(77, 22),
            )
            process.on_exit(codes.append)
            await _wait_for(lambda: bool(codes))

        asyncio.run(run())
        output = "".join(chunks)
        assert "T=dumb X=yes" in output
        assert "22 77" in output


class TestDeckWithRealProcesses:
    def test_session_lifecycle(self) -> None:
        async def run() -> None:
            config = AgentDeckConfig(command="cat", kill_grace=0.2)
            deck = AgentDeck.build(config, display=HeadlessDisplay(columns=80, lines=24))
            try:
                first = deck.registry.create_session()
                assert deck.runtime.send("hello agent", first)
                await _wait_for(
                    lambda: any("hello agent" in line for line in deck.runtime.peek(first).read())
                )

                second = deck.registry.create_session()
                assert deck.registry.delete(second)
                assert deck.registry.get_active() is None
                assert deck.registry.get_last_active() == first
                assert deck.runtime.is_running(first)
            finally:
                deck.shutdown()
            assert not deck.registry.has_sessions()

        asyncio.run(run())

    def test_more_sessions_than_worker_threads(self) -> None:
        count = min(32, (os.cpu_count() or 1) + 4) + 4

        async def run() -> None:
            config = AgentDeckConfig(command="cat", kill_grace=0.2)
            deck = AgentDeck.build(config, display=HeadlessDisplay(columns=80, lines=24))
            try:
                ids = [deck.registry.create_session() for _ in range(count)]
                last = ids[-1]
                assert deck.runtime.send("hello-last", last)
                await _wait_for(
                    lambda: any("hello-last" in line for line in deck.runtime.peek(last).read())
                )

                # Ctrl-D at the start of a line ends cat; the exit must reach the registry.
                assert deck.runtime.send("\x04", last)
                await _wait_for(lambda: last not in deck.registry)
                assert deck.registry.count() == count - 1
            finally:
                deck.shutdown()

        asyncio.run(run())


class TestOrphanedChild:
    def test_child_that_closes_its_terminal_is_killed(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(process_module, "EOF_GRACE", 0.2)
        codes: list[int | None] = []

        async def run() -> PTYProcess:
            process = PTYLauncher().spawn(
                ["sh", "-c", "exec 0<&- 1>&- 2>&-; exec sleep 30"], lambda text: None
            )
            process.on_exit(codes.append)
            await _wait_for(lambda: bool(codes))
            return process

        process = asyncio.run(run())
        assert codes == [-9]
        assert not process.is_alive()
