"""PTY process management — agent sessions on pseudo-terminals.

Each session runs in its own process group with a rolling output
buffer. The runtime owns processes, buffers and surfaces, and reports
every exit exactly once.
"""

from agentdeck.pty.buffer import BufferView, OutputBuffer
from agentdeck.pty.process import PTYLauncher, PTYProcess
from agentdeck.pty.runtime import Session, SessionRuntime

__all__ = [
    "BufferView",
    "OutputBuffer",
    "PTYLauncher",
    "PTYProcess",
    "Session",
    "SessionRuntime",
]
