"""Display layer — where session output is shown.

The runtime never draws anything itself. It asks a ``Display`` for a
surface with some geometry, binds a read-only buffer view to it, and
releases it again on hide or exit. Editors, terminal multiplexers and the
headless implementation here all sit behind the same protocol.
"""

from agentdeck.display.base import (
    Display,
    Geometry,
    Position,
    Surface,
    compute_geometry,
)
from agentdeck.display.headless import HeadlessDisplay

__all__ = [
    "Display",
    "Geometry",
    "HeadlessDisplay",
    "Position",
    "Surface",
    "compute_geometry",
]
