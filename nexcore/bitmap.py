"""Raw pixel bitmaps with three bytes per pixel."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


class BitmapFormat(IntEnum):
    RGB = 0
    RGBA = 1


@dataclass
class Bitmap:
    """A width x height pixel buffer; allocates zeroed storage unless given some."""

    width: int
    height: int
    format: BitmapFormat = BitmapFormat.RGB
    data: bytearray | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError("bitmap dimensions must not be negative")
        self.format = BitmapFormat(self.format)
        needed = self.width * self.height * 3
        if self.data is None:
            self.data = bytearray(needed)
        elif len(self.data) < needed:
            raise ValueError(f"bitmap data needs at least {needed} bytes")