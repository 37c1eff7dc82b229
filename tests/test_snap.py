import pytest

from canvas_core.errors import BindingResolutionFailure

from canvas_core.elements import AnchorPosition, ArrowBinding, ShapeElement, apply_element_updates
from canvas_core.snap import (
    arrow_geometry,
    find_nearest_snap_point,
    get_active_snap_points,
    get_all_snap_points,
    get_arrows_to_update,
    get_binding_position,
    get_element_snap_points,
    merge_updates,
    resolve_binding,
    snap_arrow_point,
)

from .conftest import make_arrow, make_rect


def test_rectangle_has_nine_anchors():
    points = get_element_snap_points(make_rect("r", 0, 0, 100, 50))
    coords = {(p.x, p.y): p.position for p in points}

    assert len(points) == 9
    assert coords[(50, 0)] == AnchorPosition.TOP
    assert coords[(0, 25)] == AnchorPosition.LEFT
    assert coords[(50, 25)] == AnchorPosition.CENTER
    assert coords[(100, 50)] == AnchorPosition.BOTTOM_RIGHT


def test_circle_has_five_anchors_and_arrows_none():
    circle = ShapeElement(id="c", type="circle", x=0, y=0, width=80, height=80)
    assert len(get_element_snap_points(circle)) == 5
    assert get_element_snap_points(make_arrow("x", (0, 0), (10, 10))) == []


def test_snaps_to_nearest_anchor_in_range():
    result = snap_arrow_point(52, 3, [make_rect("r", 0, 0, 100, 50)])

    assert result.snapped
    assert (result.x, result.y) == (50, 0)
    assert result.binding == ArrowBinding(element_id="r", position=AnchorPosition.TOP)


def test_threshold_is_inclusive():
    result = snap_arrow_point(50, -35, [make_rect("r", 0, 0, 100, 50)], threshold=35)
    assert result.snapped
    assert result.snap_point.position == AnchorPosition.TOP


def test_out_of_range_keeps_query_point():
    result = snap_arrow_point(500, 500, [make_rect("r")])
    assert not result.snapped
    assert (result.x, result.y) == (500, 500)
    assert result.to_dict() == {"snapped": False, "x": 500, "y": 500}


def test_edited_arrow_is_excluded():
    elements = [make_rect("r"), make_rect("arrowish", 500, 500)]
    points = get_all_snap_points(elements, exclude_id="arrowish")
    assert {p.element_id for p in points} == {"r"}


def test_find_nearest_prefers_first_on_tie():
    points = get_element_snap_points(make_rect("r", 0, 0, 100, 100))
    # (25, 0) is equally far from top-left and top-mid; top-left is scanned first
    result = find_nearest_snap_point(25, 0, points)
    assert result.snap_point.position == AnchorPosition.TOP_LEFT


def test_binding_resolution():
    elements = [make_rect("r", 10, 20, 100, 50)]
    assert get_binding_position(ArrowBinding(element_id="r", position="right"), elements) == (110, 45)
    assert get_binding_position(ArrowBinding(element_id="gone"), elements) is None
    assert get_binding_position(None, elements) is None


def test_arrow_geometry_enforces_minimum_box():
    geometry = arrow_geometry((10, 10), (110, 10))
    assert geometry["height"] == 10
    assert geometry["arrow_start"] == {"x": 0, "y": 0}
    assert geometry["arrow_end"] == {"x": 100, "y": 0}


def test_moving_target_moves_bound_endpoint_only():
    rect = make_rect("a", 0, 0, 100, 50)
    arrow = make_arrow("arrow", (100, 25), (500, 500), start_binding=("a", "right"))
    moved = rect.model_copy(update={"x": 50, "y": 10})

    updates = get_arrows_to_update(["a"], [moved, arrow])

    assert set(updates) == {"arrow"}
    updated = apply_element_updates(arrow, updates["arrow"])
    assert (updated.x + updated.arrow_start.x, updated.y + updated.arrow_start.y) == (150, 35)
    assert (updated.x + updated.arrow_end.x, updated.y + updated.arrow_end.y) == (500, 500)


def test_unrelated_arrows_are_left_alone():
    arrow = make_arrow("arrow", (0, 0), (100, 100), start_binding=("other", "center"))
    assert get_arrows_to_update(["a"], [make_rect("a"), arrow]) == {}


def test_missing_target_falls_back_to_stored_point():
    arrow = make_arrow("arrow", (0, 0), (200, 100),
                       start_binding=("deleted", "center"), end_binding=("b", "left"))
    b = make_rect("b", 300, 0, 100, 50)

    updates = get_arrows_to_update(["b"], [b, arrow])

    geometry = updates["arrow"]
    assert (geometry["x"] + geometry["arrow_start"]["x"],
            geometry["y"] + geometry["arrow_start"]["y"]) == (0, 0)
    assert (geometry["x"] + geometry["arrow_end"]["x"],
            geometry["y"] + geometry["arrow_end"]["y"]) == (300, 25)


def test_moved_arrow_rebinds_itself():
    a = make_rect("a", 0, 0, 100, 50)
    arrow = make_arrow("arrow", (100, 25), (300, 25), start_binding=("a", "right"))
    shifted = arrow.model_copy(update={"x": arrow.x + 40})

    assert "arrow" in get_arrows_to_update(["arrow"], [a, shifted])
    assert get_arrows_to_update(["arrow"], [a, shifted], include_arrows_in_list=False) == {}


def test_active_snap_points_for_endpoints():
    a = make_rect("a", 0, 0, 100, 50)
    arrow = make_arrow("arrow", (102, 25), (600, 600))
    active = get_active_snap_points(arrow, [a, arrow])
    assert [(p.x, p.y) for p in active] == [(100, 25)]


def test_merge_updates_replaces_whole_entry():
    merged = merge_updates({"a": {"x": 1, "y": 2}, "b": {"x": 3}}, {"a": {"width": 10}})
    assert merged == {"a": {"width": 10}, "b": {"x": 3}}


@pytest.mark.parametrize("position, expected", [
    ("top-left", (0, 0)),
    ("bottom", (50, 50)),
    ("center", (50, 25)),
])
def test_anchor_positions(position, expected):
    binding = ArrowBinding(element_id="r", position=position)
    assert get_binding_position(binding, [make_rect("r", 0, 0, 100, 50)]) == expected


def test_resolve_binding_raises_for_missing_target():
    with pytest.raises(BindingResolutionFailure):
        resolve_binding(ArrowBinding(element_id="gone"), [make_rect("r")])
