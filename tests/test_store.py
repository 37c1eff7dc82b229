import pytest

from canvas_core.elements import ArrowBinding, CanvasState, Viewport
from canvas_core.store import ElementStore

from .conftest import make_arrow, make_rect


def xs(store):
    return {e.id: e.x for e in store.elements}


class TestHistory:
    def test_initial_state_cannot_be_undone(self, store):
        assert store.history_depth == 1
        assert not store.can_undo
        assert store.undo() is False
        assert store.redo() is False

    def test_undo_and_redo(self, store):
        store.add_element(make_rect("a"))
        assert store.can_undo

        assert store.undo()
        assert store.elements == []
        assert store.can_redo

        assert store.redo()
        assert [e.id for e in store.elements] == ["a"]
        assert not store.can_redo

    def test_new_commit_clears_redo(self, store):
        store.add_element(make_rect("a"))
        store.undo()
        store.add_element(make_rect("b"))
        assert not store.can_redo

    def test_unchanged_commit_is_not_recorded(self, store):
        store.add_element(make_rect("a"))
        store.update_element("a", {"x": 5})
        store.undo()
        assert store.history_depth == 2

        store.update_element("a", {"x": 0})

        assert store.history_depth == 2
        assert not store.can_redo

    def test_history_is_bounded(self):
        store = ElementStore(history_limit=3)
        for i in range(5):
            store.add_element(make_rect(f"r{i}"))
        assert store.history_depth == 3

        assert store.undo()
        assert store.undo()
        assert not store.can_undo
        assert [e.id for e in store.elements] == ["r0", "r1", "r2"]

    def test_batch_collapses_to_one_entry(self, store):
        store.add_element(make_rect("a"))
        depth = store.history_depth

        store.begin_batch_update()
        for x in (10, 20, 30):
            store.update_element("a", {"x": x})
        assert store.history_depth == depth
        store.end_batch_update()

        assert store.history_depth == depth + 1
        store.undo()
        assert xs(store) == {"a": 0}
        store.redo()
        assert xs(store) == {"a": 30}

    def test_selection_is_not_an_entry_but_viewport_is(self, store):
        store.add_element(make_rect("a"))
        depth = store.history_depth

        store.select(["a"])
        store.toggle_selection("a")
        store.clear_selection()
        assert store.history_depth == depth

        store.update_viewport(x=10, scale=2)
        assert store.history_depth == depth + 1
        assert store.viewport == Viewport(x=10, y=0, scale=2)

    def test_change_callbacks(self, store):
        calls = []
        store.on_change(lambda: calls.append(1))

        store.add_element(make_rect("a"))
        store.select(["a"])
        store.undo()

        assert len(calls) == 3


class TestElements:
    def test_update_unknown_element(self, store):
        assert store.update_element("missing", {"x": 1}) is None
        assert store.history_depth == 1

    def test_update_batch_is_one_entry(self, store, two_rects):
        store.add_elements(two_rects)
        store.update_elements({"a": {"x": 5}, "b": {"y": 7}})

        assert store.history_depth == 3
        assert store.get_element("a").x == 5
        assert store.get_element("b").y == 7

    def test_rebind_moves_bound_arrow_in_same_entry(self, store):
        store.add_elements([
            make_rect("a", 0, 0, 100, 50),
            make_arrow("arrow", (100, 25), (400, 25), start_binding=("a", "right")),
        ])
        depth = store.history_depth
        store.update_element("a", {"x": 50}, rebind=True)

        arrow = store.get_element("arrow")
        assert arrow.x + arrow.arrow_start.x == pytest.approx(150)
        assert store.history_depth == depth + 1

    def test_update_without_rebind_leaves_arrows(self, store):
        store.add_elements([
            make_rect("a", 0, 0, 100, 50),
            make_arrow("arrow", (100, 25), (400, 25), start_binding=("a", "right")),
        ])
        store.update_elements({"a": {"x": 50}})
        assert store.get_element("arrow").x == 100

    def test_rebind_keeps_explicit_arrow_update(self, store):
        store.add_elements([
            make_rect("a", 0, 0, 100, 50),
            make_arrow("arrow", (100, 25), (400, 25), start_binding=("a", "right")),
        ])
        store.update_elements({"a": {"x": 50}, "arrow": {"x": 500}}, rebind=True)
        assert store.get_element("arrow").x == 500

    def test_rebind_ignores_non_geometry_updates(self, store):
        store.add_elements([
            make_rect("a", 0, 0, 100, 50),
            make_arrow("arrow", (90, 25), (400, 25), start_binding=("a", "right")),
        ])
        store.update_element("a", {"content": "hi"}, rebind=True)
        assert store.get_element("arrow").x == 90

    def test_delete_filters_selection(self, store, two_rects):
        store.add_elements(two_rects)
        store.select(["a", "b"])
        store.delete_elements(["a"])

        assert [e.id for e in store.elements] == ["b"]
        assert store.selected_ids == ["b"]

    def test_import_selects_imported(self, store, two_rects):
        store.import_elements(two_rects)
        assert store.selected_ids == ["a", "b"]
        assert store.history_depth == 2

    def test_load_state_resets_history(self, store, two_rects):
        store.add_element(make_rect("x"))
        store.load_state(CanvasState(elements=two_rects, selected_ids=["a"]))

        assert store.history_depth == 1
        assert store.selected_ids == ["a"]
        assert [e.id for e in store.get_state().elements] == ["a", "b"]

    def test_create_element_selects_it(self, store, two_rects):
        store.add_elements(two_rects)
        element = store.create_element("circle", 10, 20)

        assert element.z_index == 2
        assert store.selected_ids == [element.id]
        assert store.history_depth == 3

    def test_copy_paste(self, store, two_rects):
        store.add_elements(two_rects)
        store.select(["a"])
        assert store.copy_selected() == 1

        first = store.paste()
        second = store.paste()

        assert first[0].id != "a"
        assert (first[0].x, first[0].y) == (20, 20)
        assert (second[0].x, second[0].y) == (40, 40)
        assert store.selected_ids == [second[0].id]
        assert len(store.elements) == 4

    def test_paste_with_empty_clipboard(self, store):
        assert store.paste() == []
        assert store.history_depth == 1


class TestArrows:
    def test_create_arrow_has_minimum_box(self, store):
        arrow = store.create_arrow((0, 0), (10, 0))
        assert (arrow.width, arrow.height) == (50, 50)
        assert (arrow.arrow_end.x, arrow.arrow_end.y) == (10, 0)
        assert arrow.arrow_head_size == 18
        assert store.selected_ids == [arrow.id]

    def test_update_arrow_point(self, store):
        store.add_element(make_rect("b", 300, 0, 100, 50))
        arrow = store.create_arrow((0, 0), (200, 100))

        updated = store.update_arrow_point(arrow.id, "end", 300, 25,
                                           ArrowBinding(element_id="b", position="left"))

        assert (updated.x, updated.y, updated.width, updated.height) == (0, 0, 300, 25)
        assert updated.end_binding.element_id == "b"
        assert updated.start_binding is None
        assert store.undo()
        assert store.get_element(arrow.id).width == 200

    def test_update_arrow_point_rejects_unknown_side(self, store):
        arrow = store.create_arrow((0, 0), (100, 100))
        with pytest.raises(ValueError):
            store.update_arrow_point(arrow.id, "middle", 0, 0)


class TestRotation:
    def test_single_element_rotates_in_place(self, store, two_rects):
        store.add_elements(two_rects)
        store.rotate_elements(["a"], -30)

        a = store.get_element("a")
        assert a.rotation == 330
        assert (a.x, a.y) == (0, 0)

    def test_multiple_elements_rotate_rigidly(self, store):
        store.add_elements([make_rect("a", 0, 0, 100, 100), make_rect("b", 200, 0, 100, 100)])
        store.rotate_elements(["a", "b"], 90)

        a, b = store.get_element("a"), store.get_element("b")
        assert (a.x, a.y) == pytest.approx((100, -100))
        assert (b.x, b.y) == pytest.approx((100, 100))
        assert a.rotation == b.rotation == 90

    def test_set_rotation_uses_first_as_reference(self, store):
        store.add_elements([make_rect("a", 0, 0, 100, 100, rotation=10),
                            make_rect("b", 200, 0, 100, 100, rotation=40)])
        store.set_rotation(["a", "b"], 100)

        assert store.get_element("a").rotation == pytest.approx(100)
        assert store.get_element("b").rotation == pytest.approx(130)

    def test_set_rotation_noop_is_not_recorded(self, store):
        store.add_elements([make_rect("a", rotation=45), make_rect("b", rotation=10)])
        depth = store.history_depth
        store.set_rotation(["a", "b"], 45)
        assert store.history_depth == depth

    def test_rotation_refreshes_bound_arrows(self, store):
        store.add_elements([
            make_rect("a", 0, 0, 100, 100),
            make_rect("b", 200, 0, 100, 100),
            make_arrow("arrow", (300, 50), (600, 50), start_binding=("b", "right")),
        ])
        store.rotate_elements(["a", "b"], 90)

        arrow = store.get_element("arrow")
        # b's unrotated box now sits at (100, 100); its right anchor is (200, 150)
        assert arrow.x + arrow.arrow_start.x == pytest.approx(200)
        assert arrow.y + arrow.arrow_start.y == pytest.approx(150)


class TestZOrder:
    @pytest.fixture
    def abcd(self, store):
        store.add_elements([make_rect(i, z_index=z) for z, i in enumerate("abcd")])
        return store

    def order(self, store):
        return [e.id for e in sorted(store.elements, key=lambda e: e.z_index)]

    def test_bring_forward_moves_run_one_step(self, abcd):
        abcd.bring_forward(["a", "b"])
        assert self.order(abcd) == ["c", "a", "b", "d"]

    def test_send_backward_moves_run_one_step(self, abcd):
        abcd.send_backward(["c", "d"])
        assert self.order(abcd) == ["a", "c", "d", "b"]

    def test_front_and_back(self, abcd):
        abcd.bring_to_front(["a"])
        assert self.order(abcd) == ["b", "c", "d", "a"]
        abcd.send_to_back(["d"])
        assert self.order(abcd) == ["d", "b", "c", "a"]

    def test_z_indices_are_compact(self, abcd):
        abcd.bring_forward(["d"])
        assert sorted(e.z_index for e in abcd.elements) == [0, 1, 2, 3]
        assert self.order(abcd) == ["a", "b", "c", "d"]
