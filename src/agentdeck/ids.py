"""Session identifiers."""

from __future__ import annotations

from dataclasses import dataclass

_PREFIX = "term-"


@dataclass(frozen=True, order=True)
class SessionId:
    """Opaque identifier for one agent session.

    Wraps the registry counter value so ids can't be confused with names
    or other string keys. Renders as ``term-<n>``.
    """

    number: int

    def __post_init__(self) -> None:
        if self.number < 1:
            raise ValueError(f"session number must be positive, got {self.number}")

    def __str__(self) -> str:
        return f"{_PREFIX}{self.number}"

    @classmethod
    def parse(cls, text: str) -> SessionId:
        """Parse ``term-3`` or a bare ``3``."""
        value = text.strip()
        if value.startswith(_PREFIX):
            value = value[len(_PREFIX) :]
        try:
            return cls(int(value))
        except ValueError:
            raise ValueError(f"invalid session id: {text!r}") from None
