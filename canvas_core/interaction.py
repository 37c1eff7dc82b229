"""
Pointer interaction math.

Pure functions compute what a drag or resize frame should change (with
alignment guides and binding refresh folded in); FrameCoalescer and
GestureSession turn a stream of pointer moves into at most one store update
per frame and two history entries per gesture.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

import structlog

from .elements import Viewport
from .geometry import Box
from .snap import UpdateBatch, get_arrows_to_update, merge_updates

if TYPE_CHECKING:
    from .store import ElementStore

logger = structlog.get_logger(__name__)

# Screen pixels; divided by the viewport scale before use
GUIDE_SNAP_DISTANCE = 10
DRAG_THRESHOLD = 5
MIN_RESIZE_SIZE = 20
# Centre spacing difference still counted as "equal distance"
DISTANCE_TOLERANCE = 1

_VERTICAL_ALIGNMENTS = ("left", "right", "center_x")
_HORIZONTAL_ALIGNMENTS = ("top", "bottom", "center_y")


class ResizeHandle(str, Enum):
    TOP_LEFT = "tl"
    TOP_RIGHT = "tr"
    BOTTOM_LEFT = "bl"
    BOTTOM_RIGHT = "br"
    TOP = "t"
    BOTTOM = "b"
    LEFT = "l"
    RIGHT = "r"

    @property
    def is_corner(self) -> bool:
        return len(self.value) == 2


@dataclass
class GuideLine:
    """An alignment guide: a vertical line at x=position or a horizontal one at y=position."""
    orientation: str  # "vertical" or "horizontal"
    position: float
    start: float
    end: float

    def to_dict(self) -> dict:
        return {"orientation": self.orientation, "position": self.position,
                "start": self.start, "end": self.end}


@dataclass
class FrameUpdate:
    """Everything one pointer frame wants to apply."""
    updates: UpdateBatch = field(default_factory=dict)
    guides: list[GuideLine] = field(default_factory=list)


def alignment_points(element) -> dict[str, float]:
    return {
        "left": element.x,
        "right": element.x + element.width,
        "top": element.y,
        "bottom": element.y + element.height,
        "center_x": element.x + element.width / 2,
        "center_y": element.y + element.height / 2,
    }


def _snap_distance(viewport: Optional[Viewport], snap_distance: float) -> float:
    scale = viewport.scale if viewport else 1
    return snap_distance / scale


def _dedupe(guides: list[GuideLine]) -> list[GuideLine]:
    seen: set[tuple[str, float]] = set()
    unique = []
    for guide in guides:
        key = (guide.orientation, guide.position)
        if key not in seen:
            seen.add(key)
            unique.append(guide)
    return unique


def _vertical_guide(position: float, a, b) -> GuideLine:
    return GuideLine("vertical", position, min(a.y, b.y),
                     max(a.y + a.height, b.y + b.height))


def _horizontal_guide(position: float, a, b) -> GuideLine:
    return GuideLine("horizontal", position, min(a.x, b.x),
                     max(a.x + a.width, b.x + b.width))


def detect_guide_lines(moving, others: list, viewport: Optional[Viewport] = None,
                       snap_distance: float = GUIDE_SNAP_DISTANCE) -> list[GuideLine]:
    """
    Guides for edges and centres of ``moving`` that nearly (not exactly) line up with others.

    Each guide sits on the other element's coordinate; duplicates by
    (orientation, position) are dropped.
    """
    limit = _snap_distance(viewport, snap_distance)
    mine = alignment_points(moving)
    guides: list[GuideLine] = []

    for other in others:
        theirs = alignment_points(other)
        for kind in _VERTICAL_ALIGNMENTS:
            distance = abs(mine[kind] - theirs[kind])
            if 0 < distance < limit:
                guides.append(_vertical_guide(theirs[kind], moving, other))
        for kind in _HORIZONTAL_ALIGNMENTS:
            distance = abs(mine[kind] - theirs[kind])
            if 0 < distance < limit:
                guides.append(_horizontal_guide(theirs[kind], moving, other))

    return _dedupe(guides)


def calculate_snapped_position(moving, others: list, viewport: Optional[Viewport] = None,
                               snap_distance: float = GUIDE_SNAP_DISTANCE) -> tuple[float, float]:
    """
    Top-left position of ``moving`` after snapping to nearby alignments.

    Later matches override earlier ones, so the last aligned element in
    ``others`` wins on each axis.
    """
    limit = _snap_distance(viewport, snap_distance)
    mine = alignment_points(moving)
    x, y = moving.x, moving.y

    for other in others:
        theirs = alignment_points(other)
        if abs(mine["left"] - theirs["left"]) < limit:
            x = other.x
        if abs(mine["right"] - theirs["right"]) < limit:
            x = other.x + other.width - moving.width
        if abs(mine["center_x"] - theirs["center_x"]) < limit:
            x = other.x + other.width / 2 - moving.width / 2
        if abs(mine["top"] - theirs["top"]) < limit:
            y = other.y
        if abs(mine["bottom"] - theirs["bottom"]) < limit:
            y = other.y + other.height - moving.height
        if abs(mine["center_y"] - theirs["center_y"]) < limit:
            y = other.y + other.height / 2 - moving.height / 2

    return x, y


def detect_resize_guide_lines(resizing, others: list, viewport: Optional[Viewport] = None,
                              snap_distance: float = GUIDE_SNAP_DISTANCE) -> list[GuideLine]:
    """Guides where an edge of ``resizing`` meets any edge of another element (centres ignored)."""
    limit = _snap_distance(viewport, snap_distance)
    mine = alignment_points(resizing)
    guides: list[GuideLine] = []

    for other in others:
        theirs = alignment_points(other)
        for kind in ("left", "right"):
            for other_kind in ("left", "right"):
                if abs(mine[kind] - theirs[other_kind]) < limit:
                    guides.append(_vertical_guide(theirs[other_kind], resizing, other))
        for kind in ("top", "bottom"):
            for other_kind in ("top", "bottom"):
                if abs(mine[kind] - theirs[other_kind]) < limit:
                    guides.append(_horizontal_guide(theirs[other_kind], resizing, other))

    return _dedupe(guides)


def detect_distance_guides(elements: list) -> dict[str, list[float]]:
    """Centre coordinates that form runs of three equally spaced elements, per axis."""
    result: dict[str, list[float]] = {"vertical": [], "horizontal": []}
    if len(elements) < 2:
        return result

    for orientation, key in (("vertical", "center_x"), ("horizontal", "center_y")):
        positions = sorted(alignment_points(e)[key] for e in elements)
        found: list[float] = []
        for i in range(len(positions) - 2):
            first = positions[i + 1] - positions[i]
            second = positions[i + 2] - positions[i + 1]
            if abs(first - second) < DISTANCE_TOLERANCE:
                found.extend(positions[i:i + 3])
        result[orientation] = list(dict.fromkeys(found))

    return result


def compute_drag_updates(
    elements: list,
    start_positions: dict[str, tuple[float, float]],
    dx: float,
    dy: float,
    viewport: Optional[Viewport] = None,
    snap_distance: float = GUIDE_SNAP_DISTANCE,
) -> FrameUpdate:
    """
    Updates for one drag frame.

    The first dragged element snaps to alignment guides and the rest follow
    by the same offset. Arrows bound to dragged elements are re-bound against
    the moved geometry, except arrows that are themselves being dragged.

    Args:
        elements: Current top-level elements
        start_positions: Id to (x, y) at gesture start, in drag order
        dx, dy: Pointer offset since gesture start (canvas units)
        viewport: Current viewport (scales the guide snap distance)

    Returns:
        FrameUpdate with the merged update batch and guides to draw
    """
    by_id = {e.id: e for e in elements}
    dragged = [by_id[i] for i in start_positions if i in by_id]
    if not dragged:
        return FrameUpdate()

    first = dragged[0]
    first_x, first_y = start_positions[first.id]
    moved_first = first.model_copy(update={"x": first_x + dx, "y": first_y + dy})
    others = [e for e in elements if e.id not in start_positions]

    guides = detect_guide_lines(moved_first, others, viewport, snap_distance)
    snapped_x, snapped_y = calculate_snapped_position(moved_first, others, viewport, snap_distance)
    offset_x = dx + snapped_x - moved_first.x
    offset_y = dy + snapped_y - moved_first.y

    updates: UpdateBatch = {}
    for element_id, (x, y) in start_positions.items():
        if element_id in by_id:
            updates[element_id] = {"x": x + offset_x, "y": y + offset_y}

    moved = [e.model_copy(update=updates[e.id]) if e.id in updates else e for e in elements]
    bindings = {arrow_id: update
                for arrow_id, update in get_arrows_to_update(list(updates), moved).items()
                if arrow_id not in start_positions}

    return FrameUpdate(updates=merge_updates(updates, bindings), guides=guides)


def resize_box(start: Box, handle: ResizeHandle, dx: float, dy: float,
               keep_aspect: bool = True, min_size: float = MIN_RESIZE_SIZE) -> Box:
    """
    New box for dragging ``handle`` of ``start`` by (dx, dy).

    Corners keep the aspect ratio when ``keep_aspect`` (height follows
    width); the edge opposite to the handle stays fixed.
    """
    handle = ResizeHandle(handle)
    x, y, width, height = start
    right, bottom = start.x + start.width, start.y + start.height

    if handle.is_corner:
        grow_right = handle in (ResizeHandle.TOP_RIGHT, ResizeHandle.BOTTOM_RIGHT)
        grow_down = handle in (ResizeHandle.BOTTOM_LEFT, ResizeHandle.BOTTOM_RIGHT)
        width = max(min_size, start.width + dx if grow_right else start.width - dx)
        if keep_aspect and start.height > 0:
            height = max(min_size, width / (start.width / start.height))
        else:
            height = max(min_size, start.height + dy if grow_down else start.height - dy)
        if not grow_right:
            x = right - width
        if not grow_down:
            y = bottom - height
    elif handle == ResizeHandle.TOP:
        height = max(min_size, start.height - dy)
        y = bottom - height
    elif handle == ResizeHandle.BOTTOM:
        height = max(min_size, start.height + dy)
    elif handle == ResizeHandle.LEFT:
        width = max(min_size, start.width - dx)
        x = right - width
    elif handle == ResizeHandle.RIGHT:
        width = max(min_size, start.width + dx)

    return Box(x, y, width, height)


def compute_resize_updates(
    elements: list,
    start_boxes: dict[str, Box],
    handle: ResizeHandle | str,
    dx: float,
    dy: float,
    keep_aspect: bool = True,
    viewport: Optional[Viewport] = None,
    snap_distance: float = GUIDE_SNAP_DISTANCE,
) -> FrameUpdate:
    """
    Updates for one resize frame.

    Every element in ``start_boxes`` is resized from its start box; arrows
    bound to them are then re-bound, and those binding updates replace any
    resize result computed for the same arrow.
    """
    updates: UpdateBatch = {}
    for element_id, start in start_boxes.items():
        box = resize_box(Box(*start), handle, dx, dy, keep_aspect)
        updates[element_id] = {"x": box.x, "y": box.y,
                               "width": box.width, "height": box.height}

    moved = [e.model_copy(update=updates[e.id]) if e.id in updates else e for e in elements]

    guides: list[GuideLine] = []
    first_id = next(iter(start_boxes), None)
    resized = next((e for e in moved if e.id == first_id), None)
    if resized is not None:
        others = [e for e in moved if e.id not in start_boxes]
        guides = detect_resize_guide_lines(resized, others, viewport, snap_distance)

    bindings = get_arrows_to_update(list(updates), moved)
    return FrameUpdate(updates=merge_updates(updates, bindings), guides=guides)


class FrameCoalescer:
    """
    Single-slot mailbox between pointer events and the store.

    ``submit`` replaces whatever is pending (last computed wins), ``tick``
    applies and clears at most one pending batch, and ``flush`` applies the
    pending batch right away for pointer-up.
    """

    def __init__(self, apply: Callable[[UpdateBatch], None]):
        self._apply = apply
        self._pending: Optional[UpdateBatch] = None

    @property
    def pending(self) -> Optional[UpdateBatch]:
        return self._pending

    def submit(self, updates: UpdateBatch):
        self._pending = updates

    def tick(self) -> bool:
        """Apply the pending batch, if any. Returns True when something was applied."""
        pending, self._pending = self._pending, None
        if not pending:
            return False
        self._apply(pending)
        return True

    def flush(self) -> bool:
        return self.tick()

    def cancel(self):
        self._pending = None


class GestureSession:
    """
    One drag or resize gesture against an ElementStore.

    History sees exactly two entries per gesture: the batch starts on the
    first move past the drag threshold and ends on release, after the last
    pending frame has been flushed.
    """

    def __init__(
        self,
        store: "ElementStore",
        pointer_x: float,
        pointer_y: float,
        element_ids: Optional[list[str]] = None,
        handle: Optional[ResizeHandle | str] = None,
        threshold: float = DRAG_THRESHOLD,
    ):
        self.store = store
        self.origin = (pointer_x, pointer_y)
        self.handle = ResizeHandle(handle) if handle else None
        self.threshold = threshold
        self.active = False
        self.guides: list[GuideLine] = []
        self.coalescer = FrameCoalescer(store.update_elements)

        ids = element_ids if element_ids is not None else list(store.selected_ids)
        elements = {e.id: e for e in store.elements}
        self.start_positions = {i: (elements[i].x, elements[i].y) for i in ids if i in elements}
        self.start_boxes = {i: Box(elements[i].x, elements[i].y, elements[i].width,
                                   elements[i].height) for i in self.start_positions}

    def move(self, pointer_x: float, pointer_y: float, keep_aspect: bool = True) -> bool:
        """Feed a pointer position (canvas units). Returns True once the gesture is live."""
        dx = pointer_x - self.origin[0]
        dy = pointer_y - self.origin[1]

        if not self.active:
            # Resizing starts immediately, dragging only past the threshold
            if self.handle is None and math.hypot(dx, dy) <= self.threshold / self.store.viewport.scale:
                return False
            self.active = True
            self.store.begin_batch_update()
            logger.debug("gesture started", resize=self.handle is not None,
                         elements=len(self.start_positions))

        if self.handle is None:
            frame = compute_drag_updates(self.store.elements, self.start_positions, dx, dy,
                                         self.store.viewport)
        else:
            frame = compute_resize_updates(self.store.elements, self.start_boxes, self.handle,
                                           dx, dy, keep_aspect, self.store.viewport)
        self.guides = frame.guides
        self.coalescer.submit(frame.updates)
        return True

    def tick(self) -> bool:
        """Animation frame: apply at most one pending update."""
        return self.coalescer.tick()

    def release(self):
        """Pointer-up: apply the last frame synchronously, then close the history batch."""
        self.coalescer.flush()
        self.guides = []
        if self.active:
            self.store.end_batch_update()
            self.active = False
            logger.debug("gesture finished")
