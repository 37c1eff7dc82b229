import pytest

from canvas_core.compiler import (
    CompileOptions,
    box_intersection,
    compile_graph,
    compile_text,
    hash_string_to_index,
    node_color,
    parallel_curve,
    readable_text_color,
    wrap_text,
)
from canvas_core.elements import AnchorPosition
from canvas_core.errors import ParseError
from canvas_core.layout import choose_layout
from canvas_core.parsers import parse_flowchart


def by_kind(elements):
    nodes = [e for e in elements if e.id.startswith("node-")]
    arrows = [e for e in elements if e.id.startswith("arrow-")]
    return nodes, arrows


def test_wrap_text_breaks_long_labels():
    assert wrap_text("abcdefghij", 4) == "abcd\nefgh\nij"
    assert wrap_text("abcd efgh", 4) == "abcd\nefgh"
    assert wrap_text("short", 20) == "short"


def test_colour_hash_is_stable():
    assert hash_string_to_index("a", 8) == 4
    assert node_color("A") == node_color("A")
    assert node_color(None) == node_color(None, "colorful")


def test_readable_text_color():
    assert readable_text_color("#ffffff") == "#0f172a"
    assert readable_text_color("#000000") == "#ffffff"
    assert readable_text_color("#fff") == "#0f172a"


def test_box_intersection_exits_through_nearest_side():
    assert box_intersection(0, 0, 100, 50, 100, 0) == pytest.approx((50, 0))
    assert box_intersection(0, 0, 100, 50, 0, 100) == pytest.approx((0, 25))
    assert box_intersection(0, 0, 100, 50, 0, 0) == (0, 0)


def test_parallel_curves_fan_out_and_clamp():
    options = CompileOptions()
    assert parallel_curve(0, 1, options) == pytest.approx(0.28)
    assert parallel_curve(0, 2, options) == -1.0
    assert parallel_curve(1, 2, options) == 1.0
    assert parallel_curve(0, 1, CompileOptions(enable_bend=False)) == 0


def test_compile_flowchart_nodes_and_bound_arrow():
    graph = parse_flowchart("graph TD\nA[Start]-->B(Next)")
    elements = compile_graph(graph, choose_layout(graph))

    assert [e.z_index for e in elements] == list(range(len(elements)))
    nodes, arrows = by_kind(elements)
    a, b = nodes
    arrow = arrows[0]

    assert a.content == "Start"
    assert a.type == "rounded-rectangle"
    assert arrow.start_binding.element_id == a.id
    assert arrow.end_binding.element_id == b.id
    assert arrow.start_binding.position == AnchorPosition.BOTTOM
    assert arrow.end_binding.position == AnchorPosition.TOP

    # Endpoints sit on the facing box edges
    assert arrow.y + arrow.arrow_start.y == pytest.approx(a.y + a.height)
    assert arrow.y + arrow.arrow_end.y == pytest.approx(b.y)


def test_compile_places_layout_at_start_offset():
    graph = parse_flowchart("graph TD\nA[Start]")
    (node,) = compile_graph(graph, choose_layout(graph), start_x=100, start_y=100)
    assert node.center() == pytest.approx((100, 100))


def test_parallel_edges_get_opposite_curves():
    graph = parse_flowchart("graph TD\nA-->B\nA-->|again| B")
    _, arrows = by_kind(compile_graph(graph, choose_layout(graph)))

    assert sorted(a.arrow_curve for a in arrows) == [-1.0, 1.0]
    assert arrows[1].content == "again"


def test_diamond_nodes_become_rectangles():
    graph = parse_flowchart("graph TD\nA{Choice}")
    (node,) = compile_graph(graph, choose_layout(graph))
    assert node.type == "rectangle"
    assert node.corner_radius is None


def test_outline_compiles_with_rails_and_stubs():
    elements = compile_text("- root\n  - a\n  - b")

    ids = [e.id for e in elements]
    assert len(elements) == 10  # 3 nodes, 3 stubs, 2 arrows, 2 rails
    assert sum(i.startswith("connector-") for i in ids) == 3
    assert sum(i.startswith("guide-") for i in ids) == 2
    assert ids[-1].startswith("guide-right-")
    stubs = [e for e in elements if e.id.startswith("connector-")]
    assert all(s.arrow_head_size == 0 for s in stubs)


def test_single_level_outline_has_no_rails():
    elements = compile_text("- lonely")
    assert len(elements) == 1


def test_outline_decision_is_pushed_right():
    elements = compile_text("- root\n  - ok?", start_x=100)
    decision = next(e for e in elements if e.id.startswith("node-node1-"))
    assert decision.x == 700


def test_outline_decisions_share_one_column():
    elements = compile_text("- root\n  - ok?\n  - sure?", start_x=100)
    decisions = [e for e in elements if e.id.startswith(("node-node1-", "node-node2-"))]
    assert [d.x for d in decisions] == [700, 700]


def test_outline_trunk_nodes_do_not_overlap():
    wide = "x" * 30
    text = "- root\n" + "".join(f"  - {wide} item {i}\n" for i in range(3))
    elements = compile_text(text, "outline")

    children = sorted((e for e in elements
                       if e.id.startswith(("node-node1-", "node-node2-", "node-node3-"))),
                      key=lambda e: e.x)
    assert len(children) == 3
    for left, right in zip(children, children[1:]):
        assert left.x + left.width + 160 == pytest.approx(right.x)
    centre = (children[0].x + children[-1].x + children[-1].width) / 2
    assert centre == pytest.approx(100)


def test_outline_levels_style_text():
    elements = compile_text("- root\n  - child")
    root = next(e for e in elements if e.id.startswith("node-node0-"))
    child = next(e for e in elements if e.id.startswith("node-node1-"))
    assert root.text_style.bold
    assert not child.text_style.bold
    assert root.background_color == "#3B82F6"


def test_compile_text_rejects_empty():
    with pytest.raises(ParseError):
        compile_text("   ")
