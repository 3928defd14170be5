"""Indexed-colour framebuffer with a 256-entry palette and small math helpers."""

from __future__ import annotations

import math
from enum import IntEnum

WIDTH = 320
HEIGHT = 240
PALETTE_SIZE = 256


class Button(IntEnum):
    """Gamepad buttons, numbered as the console reports them."""

    UP = 0
    DOWN = 1
    LEFT = 2
    RIGHT = 3
    A = 4
    B = 5
    X = 6
    Y = 7


def clamp(value: float, low: float, high: float) -> float:
    """Limit value to the range [low, high]."""
    return max(low, min(value, high))


def saturate(value: float) -> float:
    """Limit value to the range [0, 1]."""
    return clamp(value, 0.0, 1.0)


def fract(value: float) -> float:
    """Return the fractional part of value, always in [0, 1)."""
    return value - math.floor(value)


class Framebuffer:
    """A grid of 8-bit colour indices and the palette that maps them to RGB."""

    def __init__(self, width: int = WIDTH, height: int = HEIGHT) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("framebuffer dimensions must be positive")
        self.width = width
        self.height = height
        self.pixels = bytearray(width * height)
        self._palette = bytearray(PALETTE_SIZE * 4)

    def cls(self, color: int) -> None:
        """Fill the whole framebuffer with one colour."""
        self.pixels[:] = bytes([color & 0xFF]) * len(self.pixels)

    def _inside(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def set_pixel(self, x: int, y: int, color: int) -> None:
        """Set one pixel; pixels outside the framebuffer are ignored."""
        if self._inside(x, y):
            self.pixels[y * self.width + x] = color & 0xFF

    def get_pixel(self, x: int, y: int) -> int:
        """Return the colour of one pixel, or 0 outside the framebuffer."""
        if self._inside(x, y):
            return self.pixels[y * self.width + x]
        return 0

    def hline(self, x1: int, x2: int, y: int, color: int) -> None:
        """Draw a horizontal line from x1 up to, but not including, x2."""
        if not 0 <= y < self.height:
            return
        left = max(x1, 0)
        right = min(x2, self.width)
        if left < right:
            start = y * self.width
            self.pixels[start + left:start + right] = bytes([color & 0xFF]) * (right - left)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < PALETTE_SIZE:
            raise IndexError(f"palette index {index} out of range")

    def set_palette_entry(self, index: int, red: int, green: int, blue: int) -> None:
        """Set the RGB value of one palette entry."""
        self._check_index(index)
        base = index * 4
        self._palette[base:base + 3] = bytes((red & 0xFF, green & 0xFF, blue & 0xFF))

    def palette_entry(self, index: int) -> tuple[int, int, int]:
        """Return the RGB value of one palette entry."""
        self._check_index(index)
        base = index * 4
        red, green, blue = self._palette[base:base + 3]
        return red, green, blue