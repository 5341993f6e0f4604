"""
Frame buffer: one RGB triple per physical LED, in strip order.

Arithmetic follows the 8-bit LED-strip conventions: additive writes
saturate at 255, fades scale each channel by (256 - amount) / 256, and
global brightness is a scale applied to a copy at flush time only.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

Color = tuple[int, int, int]

BLACK: Color = (0, 0, 0)
WHITE: Color = (255, 255, 255)


def clamp8(v: float) -> int:
    return 0 if v < 0 else 255 if v > 255 else int(v)


def blend(a: Color, b: Color, t: float) -> Color:
    """Linear blend a -> b, t in [0, 1]."""
    t = 0.0 if t < 0.0 else 1.0 if t > 1.0 else t
    return (
        clamp8(a[0] + (b[0] - a[0]) * t + 0.5),
        clamp8(a[1] + (b[1] - a[1]) * t + 0.5),
        clamp8(a[2] + (b[2] - a[2]) * t + 0.5),
    )


def scale(c: Color, factor: float) -> Color:
    """Multiply every channel by factor, saturating."""
    return (clamp8(c[0] * factor), clamp8(c[1] * factor), clamp8(c[2] * factor))


class FrameBuffer:
    """Fixed-size pixel store addressed by physical strip index."""

    def __init__(self, led_count: int) -> None:
        if led_count <= 0:
            raise ValueError(f"led_count must be positive, got {led_count}")
        self.led_count: int = led_count
        self._px: NDArray[np.uint8] = np.zeros((led_count, 3), dtype=np.uint8)

    def __len__(self) -> int:
        return self.led_count

    @property
    def pixels(self) -> NDArray[np.uint8]:
        """Read-only view of the stored pixels."""
        view = self._px.view()
        view.flags.writeable = False
        return view

    def _valid(self, index: int | None) -> bool:
        return index is not None and 0 <= index < self.led_count

    def get(self, index: int) -> Color:
        r, g, b = self._px[index].tolist()
        return (r, g, b)

    def set(self, index: int | None, color: Color) -> None:
        """Overwrite one pixel. Invalid indices are ignored."""
        if self._valid(index):
            self._px[index] = color

    def add(self, index: int | None, color: Color) -> None:
        """Saturating per-channel add. Invalid indices are ignored."""
        if not self._valid(index):
            return
        cur = self._px[index].astype(np.int16)
        cur += np.asarray(color, dtype=np.int16)
        np.clip(cur, 0, 255, out=cur)
        self._px[index] = cur.astype(np.uint8)

    def set_many(self, indices: NDArray[np.intp], colors: NDArray[np.uint8]) -> None:
        """Vectorised overwrite; entries with a negative index are skipped."""
        ok = (indices >= 0) & (indices < self.led_count)
        self._px[indices[ok]] = colors[ok]

    def fill(self, color: Color) -> None:
        self._px[:] = color

    def clear(self) -> None:
        self._px.fill(0)

    def fade_all(self, amount: int) -> None:
        """Dim every channel by amount/256 (255 = straight to black)."""
        amount = max(0, min(255, int(amount)))
        if amount == 0:
            return
        keep = 256 - amount
        scaled = self._px.astype(np.uint16) * keep
        scaled >>= 8
        self._px[:] = scaled.astype(np.uint8)

    def scaled(self, brightness: int) -> NDArray[np.uint8]:
        """Copy of the buffer with global brightness applied (255 = unchanged)."""
        brightness = max(0, min(255, int(brightness)))
        if brightness == 255:
            return self._px.copy()
        out = self._px.astype(np.uint16) * (brightness + 1)
        out >>= 8
        return out.astype(np.uint8)
