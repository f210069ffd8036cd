"""Session bookkeeping: registry of named sessions and the event wire."""

from agentdeck.session.registry import RegistrySnapshot, SessionRecord, SessionRegistry
from agentdeck.session.wire import EventType, Wire, WireEvent

__all__ = [
    "EventType",
    "RegistrySnapshot",
    "SessionRecord",
    "SessionRegistry",
    "Wire",
    "WireEvent",
]
