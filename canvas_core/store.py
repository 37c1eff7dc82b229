"""
Element Store - owner of the canvas document, selection, viewport and history.

This module implements:
- The element collection, selection set, viewport and clipboard
- Linear undo/redo history using full snapshots (bounded, default 50)
- Batch updates that collapse a gesture into a before and an after entry
- Rigid multi-element rotation, grouping/ungrouping and z-order commands
- Binding refresh for arrows after geometry-changing commands

Every other component is a pure function over snapshots; only the store
mutates document state.
"""

from typing import Callable, Iterable, Optional

import structlog

from .config import get_settings
from .elements import (
    DEFAULT_ARROW_STYLE,
    ArrowBinding,
    CanvasState,
    ElementType,
    GroupElement,
    Point,
    ShapeElement,
    Viewport,
    apply_element_updates,
    element_list_adapter,
    generate_element_id,
    is_arrow,
    new_element,
)
from .geometry import axis_aligned_box, normalize_rotation, rotate_point
from .snap import UpdateBatch, arrow_geometry, get_arrows_to_update

logger = structlog.get_logger(__name__)

PASTE_OFFSET = 20
# Arrows drawn by hand are never smaller than this box
MIN_NEW_ARROW_BOX = 50
ROTATION_EPSILON = 0.001
# Update fields that move an element's anchors
GEOMETRY_FIELDS = {"x", "y", "width", "height", "rotation"}


def _clone_with_new_ids(element, dx: float = 0, dy: float = 0):
    """Deep copy with fresh ids (recursively for group children), shifted by (dx, dy)."""
    update = {"id": generate_element_id(), "x": element.x + dx, "y": element.y + dy}
    if isinstance(element, GroupElement):
        update["children"] = [_clone_with_new_ids(child) for child in element.children]
    return element.model_copy(update=update, deep=True)


def _compact_z(ordered: list) -> list:
    return [element.model_copy(update={"z_index": i}) for i, element in enumerate(ordered)]


class ElementStore:
    """
    Manages the canvas document, its selection and its history.

    Features:
    - Snapshot-based undo/redo with the current state kept on top of the undo stack
    - Duplicate commits are ignored (but still clear the redo stack)
    - Batch updates for drag/resize gestures
    - Change callbacks for real-time sync

    The history system works via snapshots:
    - Each committed mutation pushes a full snapshot of the document
    - Undo moves the top snapshot to the redo stack and applies the new top
    - Redo moves it back and applies it
    """

    def __init__(self, elements: Optional[Iterable] = None,
                 viewport: Optional[Viewport] = None,
                 history_limit: Optional[int] = None):
        self._elements: list = list(elements or [])
        self._selected_ids: list[str] = []
        self._viewport: Viewport = viewport or Viewport()
        self._clipboard: list = []
        self._history_limit = history_limit or get_settings().history_limit
        self._undo_stack: list[dict] = []
        self._redo_stack: list[dict] = []
        self._batching = False
        self._applying_snapshot = False
        self._on_change_callbacks: list[Callable] = []

        self._undo_stack.append(self.snapshot())

    # --- Properties ---

    @property
    def elements(self) -> list:
        """Current top-level elements (a copy of the list; elements are never mutated in place)."""
        return list(self._elements)

    @property
    def selected_ids(self) -> list[str]:
        return list(self._selected_ids)

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def clipboard(self) -> list:
        return list(self._clipboard)

    @property
    def is_batching(self) -> bool:
        return self._batching

    @property
    def can_undo(self) -> bool:
        """Check if undo is available (the bottom entry is the initial state)."""
        return len(self._undo_stack) > 1

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return len(self._redo_stack) > 0

    @property
    def history_depth(self) -> int:
        return len(self._undo_stack)

    def get_element(self, element_id: str):
        for element in self._elements:
            if element.id == element_id:
                return element
        return None

    def get_selected_elements(self) -> list:
        selected = set(self._selected_ids)
        return [e for e in self._elements if e.id in selected]

    # --- Change Callbacks ---

    def on_change(self, callback: Callable):
        """Register a callback for document changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self):
        for callback in self._on_change_callbacks:
            callback()

    # --- Snapshots ---

    def snapshot(self) -> dict:
        """Deep-value snapshot of the document: plain JSON-compatible dicts only."""
        return {
            "elements": element_list_adapter.dump_python(self._elements, mode="json"),
            "selected_ids": list(self._selected_ids),
            "viewport": self._viewport.model_dump(mode="json"),
        }

    def get_state(self) -> CanvasState:
        """Immutable view of the current document."""
        return CanvasState(elements=self._elements, selected_ids=self._selected_ids,
                           viewport=self._viewport).model_copy(deep=True)

    def _apply_snapshot(self, snapshot: dict):
        self._applying_snapshot = True
        try:
            state = CanvasState.model_validate(snapshot)
            self._elements = list(state.elements)
            self._selected_ids = list(state.selected_ids)
            self._viewport = state.viewport
        finally:
            self._applying_snapshot = False

    # --- History Management ---

    def _commit(self):
        """Push the current state unless suppressed (batch or snapshot apply) or unchanged."""
        if self._applying_snapshot or self._batching:
            return

        snapshot = self.snapshot()
        if self._undo_stack and self._undo_stack[-1] == snapshot:
            self._redo_stack.clear()
            return

        self._undo_stack.append(snapshot)
        if len(self._undo_stack) > self._history_limit:
            self._undo_stack.pop(0)
        self._redo_stack.clear()

    def _changed(self):
        self._commit()
        self._notify_change()

    def begin_batch_update(self):
        """Commit the pre-gesture state, then stop auto-committing."""
        self._commit()
        self._batching = True

    def end_batch_update(self):
        """Resume auto-committing and commit the post-gesture state."""
        self._batching = False
        self._commit()

    def undo(self) -> bool:
        """Undo the last committed change. Returns False at the history boundary."""
        if len(self._undo_stack) <= 1:
            return False

        self._redo_stack.append(self._undo_stack.pop())
        self._apply_snapshot(self._undo_stack[-1])
        logger.debug("undo", undo_depth=len(self._undo_stack), redo_depth=len(self._redo_stack))
        self._notify_change()
        return True

    def redo(self) -> bool:
        """Redo the last undone change. Returns False when there is nothing to redo."""
        if not self._redo_stack:
            return False

        snapshot = self._redo_stack.pop()
        self._undo_stack.append(snapshot)
        self._apply_snapshot(snapshot)
        logger.debug("redo", undo_depth=len(self._undo_stack), redo_depth=len(self._redo_stack))
        self._notify_change()
        return True

    # --- Element Operations ---

    def add_element(self, element):
        self._elements.append(element)
        self._changed()
        return element

    def add_elements(self, elements: Iterable) -> list:
        elements = list(elements)
        self._elements.extend(elements)
        self._changed()
        return elements

    def update_element(self, element_id: str, updates: dict, rebind: bool = False):
        """
        Update one element; returns the new element or None when the id is unknown.

        With ``rebind``, arrows bound to the element follow a geometry change
        in the same history entry.
        """
        result = None
        for i, element in enumerate(self._elements):
            if element.id == element_id:
                result = apply_element_updates(element, updates)
                self._elements[i] = result
        if result is None:
            return None
        if rebind:
            self._rebind_updated({element_id: updates})
        self._changed()
        return result

    def update_elements(self, updates: UpdateBatch, rebind: bool = False):
        """
        Apply a whole update batch atomically (one commit, one notification).

        Gestures fold binding updates into the batch themselves; other callers
        pass ``rebind`` to have bound arrows follow moved or resized elements.
        """
        if not updates:
            return
        self._elements = [apply_element_updates(e, updates[e.id]) if e.id in updates else e
                          for e in self._elements]
        if rebind:
            self._rebind_updated(updates)
        self._changed()

    def delete_elements(self, ids: Iterable[str]):
        ids = set(ids)
        self._elements = [e for e in self._elements if e.id not in ids]
        self._selected_ids = [i for i in self._selected_ids if i not in ids]
        self._changed()

    def import_elements(self, elements: Iterable) -> list:
        """Insert compiled elements in one commit and select them."""
        elements = list(elements)
        self._elements.extend(elements)
        self._selected_ids = [e.id for e in elements]
        self._changed()
        logger.info("imported elements", count=len(elements))
        return elements

    def load_state(self, state: CanvasState, reset_history: bool = True):
        """Replace the whole document (e.g. from storage)."""
        self._elements = list(state.elements)
        self._selected_ids = list(state.selected_ids)
        self._viewport = state.viewport
        if reset_history:
            self._undo_stack = [self.snapshot()]
            self._redo_stack = []
            self._notify_change()
        else:
            self._changed()

    # --- Binding refresh ---

    def _refresh_bindings(self, moved_ids: Iterable[str]):
        """Re-resolve arrows bound to moved elements against the current list."""
        updates = get_arrows_to_update(moved_ids, self._elements)
        if updates:
            self._elements = [apply_element_updates(e, updates[e.id]) if e.id in updates else e
                              for e in self._elements]

    def _rebind_updated(self, updates: UpdateBatch):
        """Re-bind arrows attached to elements whose geometry an update batch changed."""
        moved = [i for i, update in updates.items() if GEOMETRY_FIELDS & set(update)]
        rebound = get_arrows_to_update(moved, self._elements, include_arrows_in_list=False)
        # Explicit updates to an arrow win over its bindings
        rebound = {k: v for k, v in rebound.items() if k not in updates}
        if rebound:
            self._elements = [apply_element_updates(e, rebound[e.id]) if e.id in rebound else e
                              for e in self._elements]

    # --- Rotation ---

    def _rotate_rigidly(self, ids: set[str], angle: float):
        targets = [e for e in self._elements if e.id in ids]
        pivot_x, pivot_y = axis_aligned_box(targets).center

        rotated = []
        for element in self._elements:
            if element.id not in ids:
                rotated.append(element)
                continue
            cx, cy = rotate_point(element.x + element.width / 2, element.y + element.height / 2,
                                  pivot_x, pivot_y, angle)
            rotated.append(element.model_copy(update={
                "x": cx - element.width / 2,
                "y": cy - element.height / 2,
                "rotation": normalize_rotation(element.rotation + angle),
            }))
        self._elements = rotated

    def rotate_elements(self, ids: Iterable[str], angle: float):
        """
        Rotate by ``angle`` degrees.

        A single element rotates in place; several rotate as one rigid body
        around the centre of their combined box.
        """
        ids = set(ids)
        targets = [e for e in self._elements if e.id in ids]
        if not targets:
            return

        if len(targets) == 1:
            self._elements = [
                e.model_copy(update={"rotation": normalize_rotation(e.rotation + angle)})
                if e.id in ids else e
                for e in self._elements
            ]
        else:
            self._rotate_rigidly(ids, angle)

        self._refresh_bindings(ids)
        self._changed()

    def set_rotation(self, ids: Iterable[str], target: float):
        """
        Set an absolute rotation.

        With several elements the first one is the reference: all of them
        rotate rigidly by (target - reference rotation).
        """
        ids = set(ids)
        targets = [e for e in self._elements if e.id in ids]
        if not targets:
            return

        if len(targets) == 1:
            self._elements = [
                e.model_copy(update={"rotation": normalize_rotation(target)}) if e.id in ids else e
                for e in self._elements
            ]
        else:
            diff = target - targets[0].rotation
            if abs(diff) < ROTATION_EPSILON:
                return
            self._rotate_rigidly(ids, diff)

        self._refresh_bindings(ids)
        self._changed()

    # --- Selection & Viewport ---

    def select(self, ids: Iterable[str]):
        """Replace the selection. Selection alone is not a history entry."""
        self._selected_ids = list(ids)
        self._notify_change()

    def toggle_selection(self, element_id: str):
        if element_id in self._selected_ids:
            self._selected_ids = [i for i in self._selected_ids if i != element_id]
        else:
            self._selected_ids = self._selected_ids + [element_id]
        self._notify_change()

    def clear_selection(self):
        self._selected_ids = []
        self._notify_change()

    def update_viewport(self, **updates) -> Viewport:
        data = self._viewport.model_dump()
        data.update({k: v for k, v in updates.items() if v is not None})
        self._viewport = Viewport.model_validate(data)
        self._changed()
        return self._viewport

    # --- Clipboard ---

    def copy_selected(self) -> int:
        self._clipboard = [e.model_copy(deep=True) for e in self.get_selected_elements()]
        return len(self._clipboard)

    def paste(self) -> list:
        """Paste clones offset by 20/20, select them, and make them the new clipboard."""
        if not self._clipboard:
            return []

        pasted = [_clone_with_new_ids(e, PASTE_OFFSET, PASTE_OFFSET) for e in self._clipboard]
        self._elements.extend(pasted)
        self._selected_ids = [e.id for e in pasted]
        self._clipboard = [e.model_copy(deep=True) for e in pasted]
        self._changed()
        return pasted

    # --- Creation ---

    def create_element(self, kind: ElementType | str, x: float, y: float,
                       src: Optional[str] = None, width: Optional[float] = None,
                       height: Optional[float] = None):
        """Create a default-styled element on top of the stack and select it."""
        element = new_element(kind, x, y, z_index=len(self._elements), src=src,
                              width=width, height=height)
        self._elements.append(element)
        self._selected_ids = [element.id]
        self._changed()
        return element

    def create_arrow(self, start: tuple[float, float], end: tuple[float, float],
                     start_binding: Optional[ArrowBinding] = None,
                     end_binding: Optional[ArrowBinding] = None) -> ShapeElement:
        """Create an arrow between two absolute points and select it."""
        geometry = arrow_geometry(start, end, min_size=MIN_NEW_ARROW_BOX)
        arrow = ShapeElement(
            type=ElementType.ARROW.value,
            x=geometry["x"],
            y=geometry["y"],
            width=geometry["width"],
            height=geometry["height"],
            z_index=len(self._elements),
            arrow_start=Point(**geometry["arrow_start"]),
            arrow_end=Point(**geometry["arrow_end"]),
            start_binding=start_binding,
            end_binding=end_binding,
            **DEFAULT_ARROW_STYLE,
        )
        self._elements.append(arrow)
        self._selected_ids = [arrow.id]
        self._changed()
        return arrow

    def update_arrow_point(self, arrow_id: str, point: str, x: float, y: float,
                           binding: Optional[ArrowBinding] = None):
        """
        Move one endpoint of an arrow to absolute (x, y) and set that side's binding.

        Args:
            arrow_id: Arrow to edit
            point: "start" or "end"
            x, y: New absolute endpoint
            binding: Binding for the moved side (None unbinds it)
        """
        if point not in ("start", "end"):
            raise ValueError(f"Unknown arrow point: {point}")

        arrow = self.get_element(arrow_id)
        if not is_arrow(arrow) or arrow.arrow_start is None or arrow.arrow_end is None:
            return None

        other = arrow.arrow_end if point == "start" else arrow.arrow_start
        other_abs = (arrow.x + other.x, arrow.y + other.y)
        start, end = ((x, y), other_abs) if point == "start" else (other_abs, (x, y))

        updates = arrow_geometry(start, end)
        updates[f"{point}_binding"] = binding.model_dump() if binding else None
        return self.update_element(arrow_id, updates)

    # --- Grouping ---

    def group_elements(self, ids: Iterable[str]) -> Optional[GroupElement]:
        """
        Group two or more elements.

        Children keep their size and rotation; their x/y become relative to
        the group's box. The group takes the highest z-index of its children
        and is appended after the remaining elements.
        """
        ids = set(ids)
        members = [e for e in self._elements if e.id in ids]
        if len(members) < 2:
            return None

        box = axis_aligned_box(members)
        group = GroupElement(
            x=box.x,
            y=box.y,
            width=box.width,
            height=box.height,
            z_index=max(e.z_index for e in members),
            children=[e.model_copy(update={"x": e.x - box.x, "y": e.y - box.y}) for e in members],
        )
        self._elements = [e for e in self._elements if e.id not in ids] + [group]
        self._selected_ids = [group.id]
        self._refresh_bindings(ids | {group.id})
        self._changed()
        logger.debug("grouped elements", group_id=group.id, count=len(members))
        return group

    def _release_children(self, group: GroupElement) -> list:
        natural = axis_aligned_box(group.children)
        scale_x = group.width / max(natural.width, 1)
        scale_y = group.height / max(natural.height, 1)
        centre_x, centre_y = group.width / 2, group.height / 2

        released = []
        for child in group.children:
            width = child.width * scale_x
            height = child.height * scale_y
            local_cx = child.x * scale_x + width / 2
            local_cy = child.y * scale_y + height / 2
            abs_cx, abs_cy = rotate_point(local_cx, local_cy, centre_x, centre_y, group.rotation)
            abs_cx += group.x
            abs_cy += group.y

            update = {
                "x": abs_cx - width / 2,
                "y": abs_cy - height / 2,
                "width": width,
                "height": height,
                "rotation": normalize_rotation(child.rotation + group.rotation),
                "z_index": group.z_index,
            }
            if is_arrow(child):
                for key in ("arrow_start", "arrow_end"):
                    point = getattr(child, key)
                    if point is not None:
                        update[key] = Point(x=point.x * scale_x, y=point.y * scale_y)
            released.append(child.model_copy(update=update))
        return released

    def ungroup_elements(self, ids: Iterable[str]) -> list:
        """
        Dissolve groups, restoring children to absolute coordinates.

        A group resized or rotated since grouping passes its scale (group size
        over the children's natural box) and rotation on to each child.
        """
        ids = set(ids)
        groups = [e for e in self._elements if e.id in ids and isinstance(e, GroupElement)]
        if not groups:
            return []

        group_ids = {g.id for g in groups}
        remaining = [e for e in self._elements if e.id not in group_ids]
        released = []
        for group in groups:
            released.extend(self._release_children(group))

        self._elements = remaining + released
        self._selected_ids = [e.id for e in released]
        self._refresh_bindings(group_ids | {e.id for e in released})
        self._changed()
        return released

    # --- Z-order ---

    def _sorted_by_z(self) -> list:
        return sorted(self._elements, key=lambda e: e.z_index)

    def _reorder(self, ordered: list):
        self._elements = _compact_z(ordered)
        self._changed()

    def bring_to_front(self, ids: Iterable[str]):
        ids = set(ids)
        if not ids:
            return
        ordered = self._sorted_by_z()
        self._reorder([e for e in ordered if e.id not in ids] + [e for e in ordered if e.id in ids])

    def send_to_back(self, ids: Iterable[str]):
        ids = set(ids)
        if not ids:
            return
        ordered = self._sorted_by_z()
        self._reorder([e for e in ordered if e.id in ids] + [e for e in ordered if e.id not in ids])

    def bring_forward(self, ids: Iterable[str]):
        """Move each selected element (or contiguous run) up past one unselected neighbour."""
        ids = set(ids)
        if not ids:
            return
        ordered = self._sorted_by_z()
        for i in range(len(ordered) - 2, -1, -1):
            if ordered[i].id in ids and ordered[i + 1].id not in ids:
                ordered[i], ordered[i + 1] = ordered[i + 1], ordered[i]
        self._reorder(ordered)

    def send_backward(self, ids: Iterable[str]):
        """Move each selected element (or contiguous run) down past one unselected neighbour."""
        ids = set(ids)
        if not ids:
            return
        ordered = self._sorted_by_z()
        for i in range(1, len(ordered)):
            if ordered[i].id in ids and ordered[i - 1].id not in ids:
                ordered[i], ordered[i - 1] = ordered[i - 1], ordered[i]
        self._reorder(ordered)

    def __repr__(self) -> str:
        return (f"ElementStore(elements={len(self._elements)}, selected={len(self._selected_ids)}, "
                f"history={len(self._undo_stack)}/{self._history_limit})")
