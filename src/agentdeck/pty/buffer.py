"""Rolling output buffer for agent sessions."""

from __future__ import annotations

import re
import threading
from collections import deque

from agentdeck.pty.text import clean_line

# A partial line longer than this is flushed as if it ended.
MAX_PENDING_CHARS = 64 * 1024


def _visible(raw: str) -> str:
    """What a terminal shows for ``raw`` after carriage returns overwrite it."""
    segments = [s for s in raw.split("\r") if s]
    return clean_line(segments[-1]) if segments else ""


class OutputBuffer:
    """Thread-safe rolling buffer for session output.

    Output arrives in arbitrary chunks from the PTY reader; ``feed()``
    reassembles lines across chunk boundaries. Two tracks are kept:

    * **cleaned**: ANSI-stripped, control-free text for previews and search.
    * **raw**: the line as received, escape sequences included.

    The trailing partial line (typically an interactive prompt) is visible
    to every read but only counts towards ``total_lines`` once it ends.
    """

    def __init__(self, max_lines: int = 10_000) -> None:
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._raw_lines: deque[str] = deque(maxlen=max_lines)
        self._pending: str = ""
        self._total_lines: int = 0
        self._lock = threading.Lock()

    def feed(self, chunk: str) -> None:
        """Append a chunk of decoded terminal output."""
        if not chunk:
            return
        with self._lock:
            text = (self._pending + chunk).replace("\r\n", "\n")
            parts = text.split("\n")
            self._pending = parts.pop()
            if len(self._pending) > MAX_PENDING_CHARS:
                parts.append(self._pending)
                self._pending = ""
            for raw in parts:
                self._lines.append(_visible(raw))
                self._raw_lines.append(raw)
                self._total_lines += 1

    def append(self, line: str) -> None:
        """Append one complete line."""
        self.feed(line + "\n")

    def _snapshot(self, raw: bool = False) -> list[str]:
        with self._lock:
            lines = list(self._raw_lines if raw else self._lines)
            if self._pending:
                lines.append(self._pending if raw else _visible(self._pending))
        return lines

    def read(self, offset: int = 0, limit: int = 500) -> list[str]:
        """Read cleaned lines starting at ``offset`` within the current buffer."""
        lines = self._snapshot()
        start = min(offset, len(lines))
        return lines[start : start + limit]

    def read_raw(self, offset: int = 0, limit: int = 500) -> list[str]:
        """Read raw lines (escape sequences preserved)."""
        lines = self._snapshot(raw=True)
        start = min(offset, len(lines))
        return lines[start : start + limit]

    def read_all(self) -> str:
        return "\n".join(self._snapshot())

    def read_tail(self, n: int = 100) -> list[str]:
        """Read the last ``n`` cleaned lines."""
        if n <= 0:
            return []
        return self._snapshot()[-n:]

    def search(self, pattern: str, limit: int = 50) -> list[tuple[int, str]]:
        """Lines matching a regex as ``(index, line)``. Invalid patterns match nothing."""
        try:
            compiled = re.compile(pattern)
        except re.error:
            return []
        results = []
        for i, line in enumerate(self._snapshot()):
            if compiled.search(line):
                results.append((i, line))
                if len(results) >= limit:
                    break
        return results

    @property
    def line_count(self) -> int:
        """Lines currently held, including a trailing partial line."""
        with self._lock:
            return len(self._lines) + (1 if self._pending else 0)

    @property
    def total_lines(self) -> int:
        """Complete lines ever added."""
        with self._lock:
            return self._total_lines

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()
            self._raw_lines.clear()
            self._pending = ""
            self._total_lines = 0

    def view(self) -> BufferView:
        return BufferView(self)


class BufferView:
    """Read-only window onto an ``OutputBuffer``.

    Handed to displays and pickers; there is no way to write through it.
    """

    __slots__ = ("_buffer",)

    def __init__(self, buffer: OutputBuffer) -> None:
        self._buffer = buffer

    def read(self, offset: int = 0, limit: int = 500) -> list[str]:
        return self._buffer.read(offset, limit)

    def read_raw(self, offset: int = 0, limit: int = 500) -> list[str]:
        return self._buffer.read_raw(offset, limit)

    def read_all(self) -> str:
        return self._buffer.read_all()

    def read_tail(self, n: int = 100) -> list[str]:
        return self._buffer.read_tail(n)

    def search(self, pattern: str, limit: int = 50) -> list[tuple[int, str]]:
        return self._buffer.search(pattern, limit)

    @property
    def line_count(self) -> int:
        return self._buffer.line_count

    @property
    def total_lines(self) -> int:
        return self._buffer.total_lines
