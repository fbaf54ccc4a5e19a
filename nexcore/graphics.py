"""Clipped drawing of rectangles, lines and one-bit bitmaps onto an RGB bitmap."""

from __future__ import annotations

from dataclasses import dataclass, replace

from .bitmap import Bitmap

FACTOR = 256


@dataclass(frozen=True)
class Color:
    """A colour; a non-zero ``a`` blends with what is already drawn."""

    r: int
    g: int
    b: int
    a: int = 0


BLACK = Color(0, 0, 0)
WHITE = Color(255, 255, 255)


@dataclass
class _Clip:
    x: int
    y: int
    w: int
    h: int


class Graphics:
    """A drawing context on a bitmap, limited to a clip rectangle."""

    def __init__(self, bitmap: Bitmap, parent: Graphics | None = None) -> None:
        self.bitmap = bitmap
        self.fgcolor = WHITE
        self.bgcolor = BLACK
        self.clip = _Clip(0, 0, bitmap.width, bitmap.height)
        self.parent = parent

    def child(self) -> Graphics:
        """Return a new context sharing the bitmap, colours and clip of this one."""
        g = Graphics(self.bitmap, self)
        g.fgcolor = self.fgcolor
        g.bgcolor = self.bgcolor
        g.clip = replace(self.clip)
        return g

    def width(self) -> int:
        return self.clip.w

    def height(self) -> int:
        return self.clip.h

    def set_clip(self, x: int, y: int, w: int, h: int) -> bool:
        """Narrow the clip to a rectangle relative to the current clip origin."""
        if x < 0 or y < 0 or w < 0 or h < 0:
            return False
        x += self.clip.x
        y += self.clip.y
        if x >= self.bitmap.width or y >= self.bitmap.width:
            return False
        if x + w >= self.bitmap.width or y + h >= self.bitmap.height:
            return False
        self.clip = _Clip(x, y, w, h)
        return True

    def _plot(self, x: int, y: int, c: Color) -> None:
        b = self.bitmap
        if not (0 <= x < b.width and 0 <= y < b.height):
            return
        i = (b.width * y + x) * 3
        data = b.data
        if c.a == 0:
            data[i + 2] = c.r
            data[i + 1] = c.g
            data[i] = c.b
        else:
            a = c.a
            inv = 256 - a
            data[i] = (c.r * inv + data[i] * a) >> 8
            data[i + 1] = (c.g * inv + data[i + 1] * a) >> 8
            data[i + 2] = (c.b * inv + data[i + 2] * a) >> 8

    def pixel(self, x: int, y: int) -> Color:
        """Return the colour at a point relative to the clip origin."""
        ax, ay = x + self.clip.x, y + self.clip.y
        b = self.bitmap
        if not (0 <= ax < b.width and 0 <= ay < b.height):
            raise IndexError(f"pixel ({x}, {y}) is outside the bitmap")
        i = (b.width * ay + ax) * 3
        return Color(b.data[i + 2], b.data[i + 1], b.data[i])

    def _fill(self, x: int, y: int, w: int, h: int, c: Color) -> None:
        if x < 0:
            w += x
            x = 0
        if y < 0:
            h += y
            y = 0
        if x > self.clip.w or y > self.clip.h:
            return
        w = min(self.clip.w - x, w)
        h = min(self.clip.h - y, h)
        x += self.clip.x
        y += self.clip.y
        for j in range(h):
            for i in range(w):
                self._plot(x + i, y + j, c)

    def rect(self, x: int, y: int, w: int, h: int) -> None:
        self._fill(x, y, w, h, self.fgcolor)

    def clear(self, x: int, y: int, w: int, h: int) -> None:
        self._fill(x, y, w, h, self.bgcolor)

    def _line_vert(self, x: int, y: int, h: int) -> None:
        while True:
            self._plot(x, y, self.fgcolor)
            y += 1
            h -= 1
            if h <= 0:
                return

    def _line_hozo(self, x: int, y: int, w: int) -> None:
        while True:
            self._plot(x, y, self.fgcolor)
            x += 1
            w -= 1
            if w <= 0:
                return

    def _line_q1(self, x: int, y: int, w: int, h: int) -> None:
        slope = FACTOR * w // h
        counter = 0
        while True:
            self._plot(x, y, self.fgcolor)
            y += 1
            h -= 1
            counter += slope
            if counter > FACTOR:
                counter -= FACTOR
                x += 1
            if h <= 0:
                return

    def _line_q2(self, x: int, y: int, w: int, h: int) -> None:
        slope = FACTOR * h // w
        counter = 0
        while True:
            self._plot(x, y, self.fgcolor)
            x += 1
            w -= 1
            counter += slope
            if counter > FACTOR:
                counter -= FACTOR
                y += 1
            if w <= 0:
                return

    def _line_q3(self, x: int, y: int, w: int, h: int) -> None:
        slope = -FACTOR * h // w
        counter = 0
        while True:
            self._plot(x, y, self.fgcolor)
            x += 1
            w -= 1
            counter += slope
            if counter > FACTOR:
                counter -= FACTOR
                y -= 1
            if w <= 0:
                return

    def _line_q4(self, x: int, y: int, w: int, h: int) -> None:
        slope = (FACTOR * w) // -h
        counter = 0
        while True:
            self._plot(x, y, self.fgcolor)
            y -= 1
            h += 1
            counter += slope
            if counter > FACTOR:
                counter -= FACTOR
                x += 1
            if h >= 0:
                return

    def line(self, x: int, y: int, w: int, h: int) -> None:
        """Draw a line from (x, y) spanning (w, h); lines leaving the clip are dropped."""
        if w < 0:
            x, y, w, h = x + w, y + h, -w, -h
        if x < 0 or y < 0 or x > self.clip.w or y > self.clip.h:
            return
        if x + w >= self.clip.w or y + h >= self.clip.h or y + h < 0:
            return
        x += self.clip.x
        y += self.clip.y
        if h > 0:
            if w == 0:
                self._line_vert(x, y, h)
            elif h > w:
                self._line_q1(x, y, w, h)
            else:
                self._line_q2(x, y, w, h)
        elif h < 0:
            if w == 0:
                self._line_vert(x, y + h, -h)
            elif -h < w:
                self._line_q3(x, y, w, h)
            else:
                self._line_q4(x, y, w, h)
        else:
            self._line_hozo(x, y, w)

    def draw_bitmap(self, x: int, y: int, width: int, height: int, data: bytes) -> None:
        """Draw a one-bit image, most significant bit first, set bits in the foreground."""
        width = min(self.clip.w - x, width)
        height = min(self.clip.h - y, height)
        if width <= 0 or height <= 0:
            return
        needed = -(-width * height // 8)
        if len(data) < needed:
            raise ValueError(f"bitmap data needs at least {needed} bytes")
        x += self.clip.x
        y += self.clip.y
        bit = 0
        for j in range(height):
            for i in range(width):
                byte = data[bit // 8]
                on = (byte << (bit % 8)) & 0x80
                self._plot(x + i, y + j, self.fgcolor if on else self.bgcolor)
                bit += 1

    def scrollup(self, x: int, y: int, w: int, h: int, dy: int) -> None:
        """Move a region up by ``dy`` rows and clear the rows uncovered at the bottom."""
        w = min(self.clip.w - x, w)
        h = min(self.clip.h - y, h)
        x += self.clip.x
        y += self.clip.y
        dy = min(dy, h)
        data = self.bitmap.data
        bw = self.bitmap.width
        for j in range(h - dy):
            dst = ((y + j) * bw + x) * 3
            src = ((y + j + dy) * bw + x) * 3
            data[dst:dst + w * 3] = data[src:src + w * 3]
        self.clear(x, y + h - dy, w, dy)