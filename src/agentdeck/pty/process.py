"""PTY process layer — one child process on a pseudo-terminal.

The runtime talks to processes only through ``ProcessLauncher`` and
``ProcessHandle`` so tests can substitute in-memory fakes.
"""

from __future__ import annotations

import asyncio
import codecs
import fcntl
import logging
import os
import pty
import select
import signal
import struct
import subprocess
import termios
from typing import Callable, Protocol

from agentdeck.errors import ProcessLaunchError

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]
ExitCallback = Callable[[int | None], None]

_READ_SIZE = 4096
_WRITE_TIMEOUT = 5.0
_POLL_INTERVAL = 0.05
# How long a child may outlive its terminal before it is killed.
EOF_GRACE = 2.0


class ProcessHandle(Protocol):
    @property
    def pid(self) -> int: ...

    def is_alive(self) -> bool:
        """Non-blocking liveness check."""
        ...

    def write(self, data: bytes) -> None: ...

    def resize(self, columns: int, lines: int) -> None: ...

    def on_exit(self, callback: ExitCallback) -> None:
        """Set the callback fired exactly once when the process is gone."""
        ...

    def terminate(self) -> None:
        """Kill the process tree and fire the exit callback."""
        ...


class ProcessLauncher(Protocol):
    def spawn(
        self,
        command: list[str],
        on_output: OutputCallback,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        size: tuple[int, int] | None = None,
    ) -> ProcessHandle:
        """Start ``command``. Raises ``ProcessLaunchError`` if it can't start."""
        ...


def _set_winsize(fd: int, columns: int, lines: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", lines, columns, 0, 0))


class PTYProcess:
    """A child process attached to the slave side of a fresh PTY.

    - Own process group (``start_new_session``) so the whole tree can be killed
    - Output decoded incrementally and pushed to ``on_output``
    - Exit callback fired once, from EOF on the reader or from ``terminate()``

    Uses subprocess.Popen (not os.fork) to stay safe inside a running
    asyncio loop. ``start()`` must be called with that loop running. The
    master fd is non-blocking and watched with ``loop.add_reader``, so no
    thread is tied up per session and all callbacks run on the loop thread.
    """

    def __init__(
        self,
        command: list[str],
        on_output: OutputCallback,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        term: str = "xterm-256color",
        kill_grace: float = 0.5,
        size: tuple[int, int] | None = None,
    ) -> None:
        self.command = list(command)
        self._on_output = on_output
        self._cwd = cwd
        self._env = env or {}
        self._term = term
        self._kill_grace = kill_grace
        self._size = size
        self._proc: subprocess.Popen | None = None
        self._master_fd: int = -1
        self._pgid: int = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._exit_task: asyncio.Task | None = None
        self._on_exit: ExitCallback | None = None
        self._finished: bool = False
        self.exit_code: int | None = None

    @property
    def pid(self) -> int:
        return self._proc.pid if self._proc else 0

    def start(self) -> None:
        """Spawn the process. Raises ``ProcessLaunchError`` on failure."""
        if not self.command:
            raise ProcessLaunchError(self.command, "empty command")

        loop = asyncio.get_running_loop()
        master_fd, slave_fd = pty.openpty()
        if self._size:
            _set_winsize(slave_fd, *self._size)

        env = {**os.environ, **self._env, "TERM": self._term}
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                env=env,
                cwd=self._cwd,
            )
        except FileNotFoundError:
            os.close(master_fd)
            raise ProcessLaunchError(self.command, "command not found") from None
        except PermissionError:
            os.close(master_fd)
            raise ProcessLaunchError(self.command, "permission denied") from None
        except OSError as e:
            os.close(master_fd)
            raise ProcessLaunchError(self.command, str(e)) from e
        finally:
            os.close(slave_fd)

        self._master_fd = master_fd
        self._pgid = os.getpgid(self._proc.pid)
        self._loop = loop
        os.set_blocking(master_fd, False)
        loop.add_reader(master_fd, self._on_readable)
        logger.info(
            "Spawned pid=%d pgid=%d cmd=%s", self._proc.pid, self._pgid, " ".join(self.command)
        )

    def on_exit(self, callback: ExitCallback) -> None:
        self._on_exit = callback

    def is_alive(self) -> bool:
        if self._finished or self._proc is None:
            return False
        try:
            return self._proc.poll() is None
        except OSError as e:
            logger.debug("Liveness check failed for pid %d: %s", self.pid, e)
            return False

    def write(self, data: bytes) -> None:
        """Write all of ``data`` to the terminal input. Raises ``OSError`` if closed."""
        if self._master_fd < 0:
            raise OSError(f"terminal of pid {self.pid} is closed")
        view = memoryview(data)
        while view:
            try:
                written = os.write(self._master_fd, view)
            except BlockingIOError:
                _, ready, _ = select.select([], [self._master_fd], [], _WRITE_TIMEOUT)
                if not ready:
                    raise TimeoutError(f"terminal of pid {self.pid} is not accepting input")
                continue
            view = view[written:]

    def resize(self, columns: int, lines: int) -> None:
        if self._master_fd < 0:
            return
        try:
            _set_winsize(self._master_fd, columns, lines)
        except OSError as e:
            logger.debug("Resize failed for pid %d: %s", self.pid, e)

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master_fd, _READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO once every slave fd is closed, i.e. the child is gone.
            data = b""
        if data:
            self._emit(self._decoder.decode(data))
            return
        self._close_terminal()
        if not self._finished and self._loop is not None:
            self._exit_task = self._loop.create_task(self._wait_for_exit())

    def _close_terminal(self) -> None:
        """Stop watching the master fd, flushing whatever output is still queued."""
        fd = self._master_fd
        if fd < 0:
            return
        self._master_fd = -1
        if self._loop is not None:
            self._loop.remove_reader(fd)
        while True:
            try:
                data = os.read(fd, _READ_SIZE)
            except OSError:
                break
            if not data:
                break
            self._emit(self._decoder.decode(data))
        self._emit(self._decoder.decode(b"", final=True))
        try:
            os.close(fd)
        except OSError as e:
            logger.debug("Closing terminal of pid %d failed: %s", self.pid, e)

    async def _wait_for_exit(self) -> None:
        exit_code = await self._poll_exit(EOF_GRACE)
        if exit_code is None and not self._finished:
            # Terminal closed but the process lives on; don't let it escape.
            logger.warning("pid %d closed its terminal but kept running, killing it", self.pid)
            self._signal_group(signal.SIGKILL)
            exit_code = await self._poll_exit(2.0)
        self._finish(exit_code)

    async def _poll_exit(self, timeout: float) -> int | None:
        deadline = asyncio.get_running_loop().time() + timeout
        while self._proc is not None:
            exit_code = self._proc.poll()
            if exit_code is not None or asyncio.get_running_loop().time() >= deadline:
                return exit_code
            await asyncio.sleep(_POLL_INTERVAL)
        return None

    def _emit(self, text: str) -> None:
        if not text:
            return
        try:
            self._on_output(text)
        except Exception:
            logger.exception("Output handler failed for pid %d", self.pid)

    def _reap(self, timeout: float) -> int | None:
        if self._proc is None:
            return None
        try:
            return self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def _signal_group(self, sig: signal.Signals) -> None:
        try:
            os.killpg(self._pgid, sig)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        except OSError as e:
            logger.warning("Error signalling pgid %d: %s", self._pgid, e)

    def terminate(self) -> None:
        """Hang up the process group, escalating to SIGKILL after the grace period."""
        if self._finished or self._proc is None:
            return
        self._signal_group(signal.SIGHUP)
        exit_code = self._reap(self._kill_grace)
        if exit_code is None:
            self._signal_group(signal.SIGKILL)
            exit_code = self._reap(2.0)
        self._close_terminal()
        self._finish(exit_code)

    def _finish(self, exit_code: int | None) -> None:
        if self._finished:
            return
        self._finished = True
        self.exit_code = exit_code
        logger.info("Process pid=%d exited (code=%s)", self.pid, exit_code)
        if self._on_exit is not None:
            try:
                self._on_exit(exit_code)
            except Exception:
                logger.exception("Error in exit callback for pid %d", self.pid)


class PTYLauncher:
    """Spawns ``PTYProcess`` instances with shared terminal settings."""

    def __init__(self, term: str = "xterm-256color", kill_grace: float = 0.5) -> None:
        self._term = term
        self._kill_grace = kill_grace

    def spawn(
        self,
        command: list[str],
        on_output: OutputCallback,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        size: tuple[int, int] | None = None,
    ) -> PTYProcess:
        process = PTYProcess(
            command,
            on_output,
            cwd=cwd,
            env=env,
            term=self._term,
            kill_grace=self._kill_grace,
            size=size,
        )
        process.start()
        return process
