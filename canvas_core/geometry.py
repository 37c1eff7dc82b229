"""
Geometry helpers for canvas elements.

Bounding boxes, hit testing and rotation math shared by the store, the snap
engine and the interaction layer.
"""

import math
from typing import Iterable, NamedTuple


class Box(NamedTuple):
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


EMPTY_BOX = Box(0, 0, 0, 0)


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def normalize_rotation(angle: float) -> float:
    """Map any angle in degrees onto [0, 360)."""
    angle = angle % 360
    return 0.0 if angle == 360 else angle


def rotate_point(x: float, y: float, cx: float, cy: float, degrees: float) -> tuple[float, float]:
    """Rotate (x, y) around (cx, cy) by ``degrees`` (clockwise in screen space)."""
    rad = math.radians(degrees)
    cos, sin = math.cos(rad), math.sin(rad)
    dx, dy = x - cx, y - cy
    return (cx + dx * cos - dy * sin, cy + dx * sin + dy * cos)


def _corners(element) -> list[tuple[float, float]]:
    x, y, w, h = element.x, element.y, element.width, element.height
    if not element.rotation:
        return [(x, y), (x + w, y + h)]
    cx, cy = x + w / 2, y + h / 2
    return [rotate_point(px, py, cx, cy, element.rotation)
            for px, py in ((x, y), (x + w, y), (x + w, y + h), (x, y + h))]


def bounding_box(elements: Iterable) -> Box:
    """
    Axis-aligned box covering the elements as drawn, rotation included.

    Returns:
        Box, or an all-zero box for no elements
    """
    points = [p for element in elements for p in _corners(element)]
    if not points:
        return EMPTY_BOX
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return Box(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


def axis_aligned_box(elements: Iterable) -> Box:
    """
    Min/max box over the unrotated x/y/width/height of the elements.

    Used as the pivot box for group and multi-element rotation.
    """
    elements = list(elements)
    if not elements:
        return EMPTY_BOX
    min_x = min(e.x for e in elements)
    min_y = min(e.y for e in elements)
    max_x = max(e.x + e.width for e in elements)
    max_y = max(e.y + e.height for e in elements)
    return Box(min_x, min_y, max_x - min_x, max_y - min_y)


def is_point_in_element(x: float, y: float, element) -> bool:
    """Hit test that undoes the element's rotation before comparing."""
    if not element.rotation:
        return (element.x <= x <= element.x + element.width
                and element.y <= y <= element.y + element.height)

    cx, cy = element.x + element.width / 2, element.y + element.height / 2
    local_x, local_y = rotate_point(x, y, cx, cy, -element.rotation)
    return (abs(local_x - cx) <= element.width / 2
            and abs(local_y - cy) <= element.height / 2)


def is_element_in_selection(element, start_x: float, start_y: float,
                            end_x: float, end_y: float) -> bool:
    """True when the element (its rotated box if rotated) lies fully inside the marquee."""
    min_x, max_x = min(start_x, end_x), max(start_x, end_x)
    min_y, max_y = min(start_y, end_y), max(start_y, end_y)
    box = bounding_box([element])
    return (box.x >= min_x and box.right <= max_x
            and box.y >= min_y and box.bottom <= max_y)
