"""Terminal text cleanup for buffered session output."""

from __future__ import annotations

import re

# CSI sequences, OSC sequences (BEL or ST terminated) and two-byte escapes.
_ANSI_RE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[@-Z\\-_]"
)


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences."""
    return _ANSI_RE.sub("", text)


def _keep(ch: str) -> bool:
    if ch == "\t":
        return True
    cp = ord(ch)
    if cp < 0x20 or 0x7F <= cp < 0xA0:
        return False
    return not 0xFFF9 <= cp <= 0xFFFB


def sanitize_binary_output(text: str) -> str:
    """Drop control characters (other than tab) and interlinear annotation marks.

    Line breaks are expected to be split off by the caller before this runs.
    """
    return "".join(ch for ch in text if _keep(ch))


def clean_line(raw: str) -> str:
    """Cleaned form of a single raw terminal line."""
    return sanitize_binary_output(strip_ansi(raw))
