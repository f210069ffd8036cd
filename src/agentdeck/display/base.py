"""Display protocol and geometry types."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from agentdeck.config import SplitConfig
    from agentdeck.pty.buffer import BufferView


class Position(enum.StrEnum):
    """Which side of the screen a session surface is split off."""

    RIGHT = "right"
    LEFT = "left"
    TOP = "top"
    BOTTOM = "bottom"

    @property
    def vertical_split(self) -> bool:
        return self in (Position.RIGHT, Position.LEFT)


@dataclass(frozen=True)
class Geometry:
    position: Position
    width: int
    height: int


@dataclass(frozen=True)
class Surface:
    """Handle to one on-screen region."""

    handle: int
    geometry: Geometry


def compute_geometry(split: SplitConfig, columns: int, lines: int) -> Geometry:
    """Size a split from the configured fraction of the screen.

    Side splits take a fraction of the width and the full height; top and
    bottom splits take a fraction of the height and the full width.
    """
    if split.position.vertical_split:
        width = max(1, math.floor(columns * split.size))
        return Geometry(split.position, width, max(1, lines))
    height = max(1, math.floor(lines * split.size))
    return Geometry(split.position, max(1, columns), height)


class Display(Protocol):
    def screen_size(self) -> tuple[int, int]:
        """Return ``(columns, lines)`` of the host screen."""
        ...

    def acquire_surface(self, geometry: Geometry) -> Surface: ...

    def release_surface(self, surface: Surface) -> None:
        """Release a surface. Releasing an unknown surface is a no-op."""
        ...

    def bind_buffer(self, surface: Surface, view: BufferView) -> None: ...

    def is_valid(self, surface: Surface) -> bool: ...
