"""In-memory display used by the shell and by tests."""

from __future__ import annotations

import itertools
import shutil
from typing import TYPE_CHECKING, Callable

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from agentdeck.display.base import Geometry, Surface

if TYPE_CHECKING:
    from agentdeck.pty.buffer import BufferView


class HeadlessDisplay:
    """Tracks surfaces without drawing them until ``render()`` is called.

    ``columns``/``lines`` default to the current terminal size.
    """

    def __init__(self, columns: int | None = None, lines: int | None = None) -> None:
        fallback = shutil.get_terminal_size((120, 40))
        self._columns = columns or fallback.columns
        self._lines = lines or fallback.lines
        self._handles = itertools.count(1)
        self._surfaces: dict[int, Surface] = {}
        self._views: dict[int, BufferView] = {}

    def screen_size(self) -> tuple[int, int]:
        return self._columns, self._lines

    def acquire_surface(self, geometry: Geometry) -> Surface:
        surface = Surface(handle=next(self._handles), geometry=geometry)
        self._surfaces[surface.handle] = surface
        return surface

    def release_surface(self, surface: Surface) -> None:
        self._surfaces.pop(surface.handle, None)
        self._views.pop(surface.handle, None)

    def bind_buffer(self, surface: Surface, view: BufferView) -> None:
        if surface.handle not in self._surfaces:
            raise KeyError(f"surface {surface.handle} is not acquired")
        self._views[surface.handle] = view

    def is_valid(self, surface: Surface) -> bool:
        return surface.handle in self._surfaces

    @property
    def surfaces(self) -> list[Surface]:
        return list(self._surfaces.values())

    def view_for(self, surface: Surface) -> BufferView | None:
        return self._views.get(surface.handle)

    def render(
        self,
        console: Console,
        title_for: Callable[[Surface], str] | None = None,
        tail: int | None = None,
    ) -> None:
        """Print every visible surface as a panel of its latest output."""
        panels = []
        for handle, surface in self._surfaces.items():
            view = self._views.get(handle)
            rows = tail or max(1, surface.geometry.height - 2)
            body = "\n".join(view.read_tail(rows)) if view else ""
            title = title_for(surface) if title_for else f"surface {handle}"
            panels.append(
                Panel(
                    Text(body),
                    title=title,
                    width=min(surface.geometry.width, console.width),
                )
            )
        if panels:
            console.print(Group(*panels))
