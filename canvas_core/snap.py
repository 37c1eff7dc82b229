"""
Snap and binding engine.

Shapes expose anchor points; arrow endpoints snap to the nearest anchor in
range and remember it as a binding. Whenever bound shapes move, resize,
rotate or (un)group, get_arrows_to_update re-resolves the bindings against
the current element list and returns fresh arrow geometry.

Update batches are plain ``{element_id: {field: value}}`` dicts so they can
be merged, queued and sent over the wire without conversion.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from .elements import AnchorPosition, ArrowBinding, ElementType, is_arrow
from .errors import BindingResolutionFailure

logger = structlog.get_logger(__name__)

# Radius of the highlight circle drawn around an anchor (canvas units)
SNAP_RADIUS = 20
# Maximum distance at which an endpoint snaps (canvas units)
SNAP_THRESHOLD = 35
# Smallest box an arrow is shrunk to when its endpoints are recomputed
MIN_ARROW_BOX = 10

UpdateBatch = dict[str, dict]


@dataclass
class SnapPoint:
    """An anchor on an element, in absolute canvas coordinates."""
    x: float
    y: float
    element_id: str
    position: AnchorPosition

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "element_id": self.element_id,
                "position": self.position.value}


@dataclass
class SnapResult:
    """Outcome of a snap query; unsnapped results keep the query coordinates."""
    snapped: bool
    x: float
    y: float
    snap_point: Optional[SnapPoint] = None
    binding: Optional[ArrowBinding] = None

    def to_dict(self) -> dict:
        result = {"snapped": self.snapped, "x": self.x, "y": self.y}
        if self.snap_point:
            result["snap_point"] = self.snap_point.to_dict()
        if self.binding:
            result["binding"] = self.binding.model_dump(mode="json")
        return result


def anchor_coordinates(x: float, y: float, width: float, height: float,
                       position: AnchorPosition) -> tuple[float, float]:
    """Absolute coordinates of an anchor tag on a box."""
    cx, cy = x + width / 2, y + height / 2
    return {
        AnchorPosition.TOP: (cx, y),
        AnchorPosition.BOTTOM: (cx, y + height),
        AnchorPosition.LEFT: (x, cy),
        AnchorPosition.RIGHT: (x + width, cy),
        AnchorPosition.CENTER: (cx, cy),
        AnchorPosition.TOP_LEFT: (x, y),
        AnchorPosition.TOP_RIGHT: (x + width, y),
        AnchorPosition.BOTTOM_LEFT: (x, y + height),
        AnchorPosition.BOTTOM_RIGHT: (x + width, y + height),
    }[AnchorPosition(position)]


# Scan order matters: ties go to the first anchor seen
_BOX_ANCHORS = (
    AnchorPosition.TOP_LEFT,
    AnchorPosition.TOP_RIGHT,
    AnchorPosition.BOTTOM_LEFT,
    AnchorPosition.BOTTOM_RIGHT,
    AnchorPosition.TOP,
    AnchorPosition.BOTTOM,
    AnchorPosition.LEFT,
    AnchorPosition.RIGHT,
    AnchorPosition.CENTER,
)

_CIRCLE_ANCHORS = (
    AnchorPosition.TOP,
    AnchorPosition.BOTTOM,
    AnchorPosition.LEFT,
    AnchorPosition.RIGHT,
    AnchorPosition.CENTER,
)


def get_element_snap_points(element) -> list[SnapPoint]:
    """
    Anchors of one element.

    Arrows have none, circles have the four edge midpoints plus the centre,
    every other element has corners, edge midpoints and centre (9 points).
    """
    if is_arrow(element):
        return []
    anchors = _CIRCLE_ANCHORS if element.type == ElementType.CIRCLE.value else _BOX_ANCHORS
    points = []
    for position in anchors:
        x, y = anchor_coordinates(element.x, element.y, element.width, element.height, position)
        points.append(SnapPoint(x=x, y=y, element_id=element.id, position=position))
    return points


def get_all_snap_points(elements: Iterable, exclude_id: Optional[str] = None) -> list[SnapPoint]:
    """Anchors of every element except ``exclude_id`` (the arrow being edited)."""
    points: list[SnapPoint] = []
    for element in elements:
        if element.id == exclude_id:
            continue
        points.extend(get_element_snap_points(element))
    return points


def find_nearest_snap_point(
    x: float,
    y: float,
    points: list[SnapPoint],
    threshold: float = SNAP_THRESHOLD,
) -> SnapResult:
    """
    Pick the closest anchor within ``threshold``.

    Args:
        x, y: Query point in canvas coordinates
        points: Candidate anchors
        threshold: Maximum snap distance (inclusive)

    Returns:
        SnapResult; not snapped (and unchanged coordinates) when nothing is in range
    """
    nearest: Optional[SnapPoint] = None
    min_distance = math.inf

    for point in points:
        distance = math.hypot(point.x - x, point.y - y)
        if distance < min_distance and distance <= threshold:
            min_distance = distance
            nearest = point

    if nearest is None:
        return SnapResult(snapped=False, x=x, y=y)

    return SnapResult(
        snapped=True,
        x=nearest.x,
        y=nearest.y,
        snap_point=nearest,
        binding=ArrowBinding(element_id=nearest.element_id, position=nearest.position),
    )


def snap_arrow_point(
    x: float,
    y: float,
    elements: Iterable,
    arrow_id: Optional[str] = None,
    threshold: float = SNAP_THRESHOLD,
) -> SnapResult:
    """Snap an arrow endpoint against every element but the arrow itself."""
    return find_nearest_snap_point(x, y, get_all_snap_points(elements, arrow_id), threshold)


def get_active_snap_points(arrow, elements: Iterable,
                           threshold: float = SNAP_THRESHOLD) -> list[SnapPoint]:
    """Anchors currently within reach of either endpoint of ``arrow`` (for highlighting)."""
    if arrow.arrow_start is None or arrow.arrow_end is None:
        return []

    candidates = get_all_snap_points(elements, arrow.id)
    active: list[SnapPoint] = []
    for point in (arrow.arrow_start, arrow.arrow_end):
        result = find_nearest_snap_point(arrow.x + point.x, arrow.y + point.y,
                                         candidates, threshold)
        if result.snapped and not any(
                p.x == result.snap_point.x and p.y == result.snap_point.y for p in active):
            active.append(result.snap_point)
    return active


def resolve_binding(binding: ArrowBinding, elements: Iterable) -> tuple[float, float]:
    """
    Absolute (x, y) of the anchor a binding points at.

    Raises:
        BindingResolutionFailure: The target is not a top-level element
    """
    for element in elements:
        if element.id == binding.element_id:
            return anchor_coordinates(element.x, element.y, element.width,
                                      element.height, binding.position)
    raise BindingResolutionFailure("Binding target not found", {"element_id": binding.element_id})


def get_binding_position(binding: Optional[ArrowBinding],
                         elements: Iterable) -> Optional[tuple[float, float]]:
    """
    Resolve a binding against the current elements.

    Returns:
        Absolute (x, y) of the bound anchor, or None when unbound or the target is gone
    """
    if binding is None:
        return None
    try:
        return resolve_binding(binding, elements)
    except BindingResolutionFailure as e:
        logger.debug("ignoring stale binding", error=str(e))
        return None


def arrow_geometry(start: tuple[float, float], end: tuple[float, float],
                   min_size: float = MIN_ARROW_BOX) -> dict:
    """
    Box and relative endpoints for an arrow running from ``start`` to ``end``.

    Width and height never drop below ``min_size``.
    """
    min_x = min(start[0], end[0])
    min_y = min(start[1], end[1])
    return {
        "x": min_x,
        "y": min_y,
        "width": max(abs(end[0] - start[0]), min_size),
        "height": max(abs(end[1] - start[1]), min_size),
        "arrow_start": {"x": start[0] - min_x, "y": start[1] - min_y},
        "arrow_end": {"x": end[0] - min_x, "y": end[1] - min_y},
    }


def get_arrows_to_update(
    moved_ids: Iterable[str],
    elements: list,
    include_arrows_in_list: bool = True,
) -> UpdateBatch:
    """
    Recompute arrows bound to elements that moved.

    An arrow is recomputed when its start or end binding targets a moved
    element, or, with ``include_arrows_in_list``, when the arrow itself moved
    and has any binding. Each bound side resolves against ``elements``
    (which must already reflect the move); a stale or missing binding keeps
    the arrow's stored point.

    Args:
        moved_ids: Ids of elements that moved or changed size
        elements: The full post-mutation element list
        include_arrows_in_list: Also refresh moved arrows that carry bindings

    Returns:
        Update batch keyed by arrow id
    """
    moved = set(moved_ids)
    updates: UpdateBatch = {}

    for arrow in elements:
        if not is_arrow(arrow) or arrow.arrow_start is None or arrow.arrow_end is None:
            continue

        start_moved = arrow.start_binding is not None and arrow.start_binding.element_id in moved
        end_moved = arrow.end_binding is not None and arrow.end_binding.element_id in moved
        self_moved = (include_arrows_in_list and arrow.id in moved
                      and (arrow.start_binding is not None or arrow.end_binding is not None))
        if not (start_moved or end_moved or self_moved):
            continue

        start = get_binding_position(arrow.start_binding, elements)
        if start is None:
            start = (arrow.x + arrow.arrow_start.x, arrow.y + arrow.arrow_start.y)
        end = get_binding_position(arrow.end_binding, elements)
        if end is None:
            end = (arrow.x + arrow.arrow_end.x, arrow.y + arrow.arrow_end.y)

        updates[arrow.id] = arrow_geometry(start, end)

    if updates:
        logger.debug("rebinding arrows", count=len(updates))
    return updates


def merge_updates(base: UpdateBatch, overrides: UpdateBatch) -> UpdateBatch:
    """
    Merge two update batches; an id present in ``overrides`` takes its update wholesale.

    Binding-driven arrow geometry always replaces whatever the drag/resize
    math computed for the same arrow.
    """
    merged = dict(base)
    merged.update(overrides)
    return merged
