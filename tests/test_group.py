import pytest

from canvas_core.elements import GroupElement

from .conftest import make_arrow, make_rect


def boxes(store, ids):
    """Flat [x, y, width, height, ...] for the given ids, in order."""
    result = []
    for element_id in ids:
        e = store.get_element(element_id)
        result.extend((e.x, e.y, e.width, e.height))
    return result


def test_group_needs_two_elements(store):
    store.add_element(make_rect("a"))
    assert store.group_elements(["a"]) is None
    assert store.group_elements(["a", "missing"]) is None


def test_group_box_and_relative_children(store):
    store.add_elements([make_rect("a", 10, 20, 100, 50, z_index=1),
                        make_rect("b", 200, 100, 50, 50, z_index=4)])

    group = store.group_elements(["a", "b"])

    assert isinstance(group, GroupElement)
    assert (group.x, group.y, group.width, group.height) == (10, 20, 240, 130)
    assert [(c.x, c.y) for c in group.children] == [(0, 0), (190, 80)]
    assert group.z_index == 4
    assert [e.id for e in store.elements] == [group.id]
    assert store.selected_ids == [group.id]


def test_ungroup_restores_children(store):
    store.add_elements([make_rect("a", 10, 20, 100, 50), make_rect("b", 200, 100, 50, 50)])
    before = boxes(store, ["a", "b"])

    group = store.group_elements(["a", "b"])
    released = store.ungroup_elements([group.id])

    assert {e.id for e in released} == {"a", "b"}
    assert boxes(store, ["a", "b"]) == pytest.approx(before)
    assert sorted(store.selected_ids) == ["a", "b"]
    assert store.get_element(group.id) is None


def test_ungroup_applies_group_rotation(store):
    store.add_elements([make_rect("a", 0, 0, 100, 100), make_rect("b", 200, 0, 100, 100)])
    group = store.group_elements(["a", "b"])
    store.update_element(group.id, {"rotation": 90})

    store.ungroup_elements([group.id])

    a, b = store.get_element("a"), store.get_element("b")
    assert (a.x, a.y) == pytest.approx((100, -100))
    assert (b.x, b.y) == pytest.approx((100, 100))
    assert a.rotation == b.rotation == 90


def test_ungroup_applies_group_scale(store):
    store.add_elements([make_rect("a", 0, 0, 100, 100), make_rect("b", 200, 0, 100, 100)])
    group = store.group_elements(["a", "b"])
    store.update_element(group.id, {"width": 600, "height": 200})

    store.ungroup_elements([group.id])

    assert boxes(store, ["a", "b"]) == pytest.approx([0, 0, 200, 200, 400, 0, 200, 200])


def test_bound_arrow_follows_moved_group_after_ungroup(store):
    store.add_elements([
        make_rect("a", 0, 0, 100, 50),
        make_rect("b", 300, 0, 100, 50),
        make_arrow("arrow", (100, 25), (300, 25), start_binding=("a", "right"),
                   end_binding=("b", "left")),
    ])
    group = store.group_elements(["a", "b"])
    store.update_element(group.id, {"x": 100})

    store.ungroup_elements([group.id])

    arrow = store.get_element("arrow")
    assert arrow.x == pytest.approx(200)
    assert arrow.x + arrow.arrow_end.x == pytest.approx(400)
    assert arrow.y + arrow.arrow_end.y == pytest.approx(25)


def test_group_and_ungroup_are_undoable(store):
    store.add_elements([make_rect("a"), make_rect("b", 200, 0)])
    group = store.group_elements(["a", "b"])
    store.ungroup_elements([group.id])

    store.undo()
    assert [e.id for e in store.elements] == [group.id]
    store.undo()
    assert [e.id for e in store.elements] == ["a", "b"]
