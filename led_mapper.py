"""
Logical-to-physical pixel mapping for chained square LED panels.

Panels sit side by side, left to right, each `panel_size` pixels square and
wired as one serpentine strip (even rows run left to right, odd rows right to
left). Every panel may be mounted rotated by 0/90/180/270 degrees, and the
chain may start at either the left or the right panel.

Rotation convention (one for every animation):
    90   (x, y) -> (y, size-1-x)
    180  (x, y) -> (size-1-x, size-1-y)
    270  (x, y) -> (size-1-y, x)
Four 90-degree turns compose to the identity.

map_to_physical() is pure: it reads the config on every call and returns
None for anything it cannot place. Callers treat None as "do not draw".
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

PANEL_SIZE: int = 16
PANEL_COUNT: int = 2
DEFAULT_ROTATION: int = 90
VALID_ROTATIONS: tuple[int, ...] = (0, 90, 180, 270)


@dataclass
class PanelConfig:
    """Physical layout of the matrix. Mutable at runtime."""

    panel_count: int = PANEL_COUNT
    panel_size: int = PANEL_SIZE
    reversed: bool = False  # True = chain starts at the rightmost panel
    rotations: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.panel_count < 1 or self.panel_size < 1:
            raise ValueError(
                f"invalid panel layout: {self.panel_count} x {self.panel_size}"
            )
        # Pad / trim so there is exactly one angle per panel
        rots = list(self.rotations)[: self.panel_count]
        rots += [DEFAULT_ROTATION] * (self.panel_count - len(rots))
        self.rotations = rots

    @property
    def width(self) -> int:
        return self.panel_count * self.panel_size

    @property
    def height(self) -> int:
        return self.panel_size

    @property
    def led_count(self) -> int:
        return self.panel_count * self.panel_size * self.panel_size

    def rotation(self, panel: int) -> int:
        return self.rotations[panel]

    def set_rotation(self, panel: int, angle: int) -> None:
        if not 0 <= panel < self.panel_count:
            raise IndexError(f"panel {panel} out of range 0..{self.panel_count - 1}")
        if angle not in VALID_ROTATIONS:
            raise ValueError(f"rotation must be one of {VALID_ROTATIONS}, got {angle}")
        self.rotations[panel] = angle

    def swap(self) -> None:
        self.reversed = not self.reversed

    def key(self) -> tuple[int, int, bool, tuple[int, ...]]:
        """Value snapshot of the layout (changes whenever the layout does)."""
        return (self.panel_count, self.panel_size, self.reversed, tuple(self.rotations))


def rotate(x: int, y: int, angle: int, size: int) -> tuple[int, int]:
    """Rotate panel-local (x, y) about the panel centre. Raises on a bad angle."""
    m = size - 1
    if angle == 0:
        return x, y
    if angle == 90:
        return y, m - x
    if angle == 180:
        return m - x, m - y
    if angle == 270:
        return m - y, x
    raise ValueError(f"unsupported rotation {angle}")


def map_to_physical(x: int, y: int, config: PanelConfig) -> int | None:
    """Strip index for logical pixel (x, y), or None if it is not drawable."""
    size = config.panel_size
    if x < 0 or y < 0 or x >= config.width or y >= size:
        return None

    panel = x // size
    angle = config.rotations[panel]
    if angle not in VALID_ROTATIONS:
        return None
    lx, ly = rotate(x % size, y, angle, size)

    # Serpentine wiring: odd rows run right to left
    if ly % 2 == 1:
        lx = size - 1 - lx

    if config.reversed:
        panel = config.panel_count - 1 - panel

    index = panel * size * size + ly * size + lx
    if not 0 <= index < config.led_count:
        return None
    return index


def index_table(config: PanelConfig) -> NDArray[np.intp]:
    """(height, width) table of strip indices, -1 where unmappable."""
    table = np.full((config.height, config.width), -1, dtype=np.intp)
    for y in range(config.height):
        for x in range(config.width):
            idx = map_to_physical(x, y, config)
            if idx is not None:
                table[y, x] = idx
    return table


def logical_view(pixels: NDArray[np.uint8], config: PanelConfig) -> NDArray[np.uint8]:
    """Undo the mapping: physical (n, 3) pixels -> logical (h, w, 3) image."""
    table = index_table(config)
    out = np.zeros((config.height, config.width, 3), dtype=np.uint8)
    valid = (table >= 0) & (table < len(pixels))
    out[valid] = pixels[table[valid]]
    return out
