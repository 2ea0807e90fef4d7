"""Box geometry: overlap ratio, smoothing and frame-relative position."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Normalized-position split points shared by the horizontal and vertical axes
_LOW_SPLIT = 0.35
_HIGH_SPLIT = 0.65


class Zone(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class Level(str, Enum):
    TOP = "top"
    MIDDLE = "middle"
    BOTTOM = "bottom"


@dataclass(frozen=True)
class Box:
    """Axis-aligned box in pixels: (x, y) is the top-left corner."""

    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)


def iou(a: Box, b: Box) -> float:
    """Intersection-over-Union of two boxes; 0.0 when they do not overlap."""
    inter_w = min(a.x + a.width, b.x + b.width) - max(a.x, b.x)
    inter_h = min(a.y + a.height, b.y + b.height) - max(a.y, b.y)
    if inter_w <= 0.0 or inter_h <= 0.0:
        return 0.0

    inter_area = inter_w * inter_h
    union = a.area + b.area - inter_area
    if union <= 0.0:
        return 0.0
    return inter_area / union


def ema(new: float, old: float, alpha: float) -> float:
    """Exponential moving average step: alpha * new + (1 - alpha) * old."""
    return alpha * new + (1.0 - alpha) * old


def blend(new: Box, old: Box, alpha: float) -> Box:
    """Apply one EMA step to each box component."""
    return Box(
        x=ema(new.x, old.x, alpha),
        y=ema(new.y, old.y, alpha),
        width=ema(new.width, old.width, alpha),
        height=ema(new.height, old.height, alpha),
    )


def horizontal_zone(box: Box, frame_width: float) -> Zone:
    normalized_x = box.center[0] / frame_width
    if normalized_x < _LOW_SPLIT:
        return Zone.LEFT
    if normalized_x > _HIGH_SPLIT:
        return Zone.RIGHT
    return Zone.CENTER


def vertical_level(box: Box, frame_height: float) -> Level:
    normalized_y = box.center[1] / frame_height
    if normalized_y < _LOW_SPLIT:
        return Level.TOP
    if normalized_y > _HIGH_SPLIT:
        return Level.BOTTOM
    return Level.MIDDLE


def locate(
    box: Box,
    frame_size: tuple[int, int],
    vertical: bool = False,
) -> tuple[Zone, Level | None]:
    """Place a box in the frame's zone grid.

    Args:
        box: Box in pixels of the frame described by frame_size.
        frame_size: (width, height) of the *current* frame.
        vertical: Also compute the top/middle/bottom level.
    """
    width, height = frame_size
    zone = horizontal_zone(box, width)
    level = vertical_level(box, height) if vertical else None
    return zone, level
