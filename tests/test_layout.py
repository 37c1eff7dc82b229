import pytest

from canvas_core.layout import (
    OFF_TRUNK_OFFSET_X,
    assign_layers,
    choose_layout,
    layer_centres,
    layout_graph,
    layout_outline_tree,
    minimize_crossings,
)
from canvas_core.models import Direction, Graph, GraphEdge, GraphNode
from canvas_core.parsers import parse_flowchart, parse_outline


def graph_of(node_ids, edges, direction=Direction.TD):
    return Graph(
        direction=direction,
        nodes=[GraphNode(id=i, label=i) for i in node_ids],
        edges=[GraphEdge(source=s, target=t) for s, t in edges],
    )


def test_bfs_layers_diamond():
    graph = graph_of(["A", "B", "C", "D"], [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")])
    assert assign_layers(graph) == [["A"], ["B", "C"], ["D"]]


def test_cycle_without_root_starts_at_first_node():
    graph = graph_of(["A", "B"], [("A", "B"), ("B", "A")])
    assert assign_layers(graph) == [["A"], ["B"]]


def test_unreachable_nodes_form_trailing_layer():
    graph = graph_of(["A", "B", "C"], [("A", "B"), ("B", "A"), ("C", "C")])
    assert assign_layers(graph) == [["A"], ["B"], ["C"]]


def test_empty_graph_has_no_layers():
    assert assign_layers(Graph()) == []


def test_barycenter_untangles_crossing():
    graph = graph_of(["A", "B", "C", "D"], [("A", "D"), ("B", "C")])
    layers = [["A", "B"], ["C", "D"]]

    minimize_crossings(layers, graph)

    assert layers == [["A", "B"], ["D", "C"]]


def test_crossing_reduction_keeps_layer_membership():
    graph = parse_flowchart(
        "graph TD\nA-->E\nA-->D\nB-->C\nB-->E\nC-->F\nD-->G\nE-->F"
    )
    before = [set(layer) for layer in assign_layers(graph)]
    after = [set(layer) for layer in layout_graph(graph).layers]
    assert before == after


def test_layout_is_deterministic():
    graph = parse_flowchart("graph TD\nA-->B\nA-->C\nB-->D\nC-->D\nD-->A\nE-->C")
    first = layout_graph(graph)
    second = layout_graph(graph)
    assert first.layers == second.layers
    assert first.positions == second.positions


def test_vertical_layout_centres_layers():
    result = layout_graph(graph_of(["A", "B", "C"], [("A", "B"), ("A", "C")]))

    assert (result.positions["A"].x, result.positions["A"].y) == (0, 0)
    assert (result.positions["B"].x, result.positions["B"].y) == (-160, 220)
    assert (result.positions["C"].x, result.positions["C"].y) == (160, 220)


def test_horizontal_layout_uses_fixed_spacing():
    result = layout_graph(graph_of(["A", "B", "C"], [("A", "B"), ("A", "C")], Direction.LR))

    assert (result.positions["A"].x, result.positions["A"].y) == (0, 0)
    assert (result.positions["B"].x, result.positions["B"].y) == (220, -80)
    assert (result.positions["C"].x, result.positions["C"].y) == (220, 80)


def test_reversed_directions_draw_last_layer_first():
    bt = layout_graph(graph_of(["A", "B"], [("A", "B")], Direction.BT))
    assert bt.positions["A"].y == 220
    assert bt.positions["B"].y == 0

    rl = layout_graph(graph_of(["A", "B"], [("A", "B")], Direction.RL))
    assert rl.positions["A"].x == 220
    assert rl.positions["B"].x == 0


def test_shape_sizes_feed_positions():
    graph = parse_flowchart("graph TD\nA{Choice}")
    node = layout_graph(graph).positions["A"]
    assert (node.width, node.height) == (120, 120)


def test_layer_centres_uses_widths_vertically():
    assert layer_centres([100, 300], 1, False, node_spacing=100, layer_spacing=200) == [
        (-200, 200), (100, 200),
    ]


def test_outline_tree_places_decisions_off_trunk():
    graph = parse_outline("- root\n  - a\n  - b\n  - ok?")
    result = layout_outline_tree(graph)

    assert result.layers == [["node0"], ["node1", "node2"]]
    root, a, b, decision = (result.positions[f"node{i}"] for i in range(4))
    assert (root.x, root.y) == (0, 0)
    assert (a.x, a.y) == (-150, 220)
    assert (b.x, b.y) == (150, 220)
    assert (decision.x, decision.y) == (OFF_TRUNK_OFFSET_X, 220)
    assert (decision.width, decision.height) == (120, 120)


@pytest.mark.parametrize("text, outline", [
    ("- a\n  - b", True),
    ("graph TD\nA-->B", False),
])
def test_choose_layout(text, outline):
    graph = parse_outline(text) if outline else parse_flowchart(text)
    result = choose_layout(graph)
    if outline:
        assert result.positions["node0"].x == 0
    else:
        assert result.layers == [["A"], ["B"]]
