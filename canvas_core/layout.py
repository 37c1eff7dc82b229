"""
Layout algorithms for imported diagrams.

Two strategies turn a Graph into positioned boxes:
- Layered: BFS layering, barycenter crossing reduction, then coordinate
  assignment along the graph direction (simplified Sugiyama)
- Outline tree: trunk nodes spread per level, decision nodes hung off a
  side rail to the right

Positions are box centres in an abstract space centred near the origin; the
compiler translates them onto the canvas.
"""

from collections import defaultdict
from typing import TYPE_CHECKING

import structlog

from .models import LayoutNode, LayoutResult, NodeShape

if TYPE_CHECKING:
    from .models import Graph, GraphNode

logger = structlog.get_logger(__name__)


# Default layout parameters
DEFAULT_NODE_SPACING = 160
DEFAULT_LAYER_SPACING = 220
DEFAULT_NODE_WIDTH = 160
DEFAULT_NODE_HEIGHT = 80
CROSSING_ITERATIONS = 3

# Outline tree parameters
TREE_WIDTH = 600
OFF_TRUNK_OFFSET_X = 400
OFF_TRUNK_STEP = 120

_SHAPE_SIZES = {
    NodeShape.DIAMOND: (120, 120),
    NodeShape.CIRCLE: (100, 100),
    NodeShape.PARALLELOGRAM: (160, 70),
}


def default_node_size(shape: NodeShape) -> tuple[float, float]:
    """Placeholder (width, height) for a node shape before text sizing."""
    return _SHAPE_SIZES.get(shape, (DEFAULT_NODE_WIDTH, DEFAULT_NODE_HEIGHT))


def layout_graph(
    graph: "Graph",
    node_spacing: float = DEFAULT_NODE_SPACING,
    layer_spacing: float = DEFAULT_LAYER_SPACING,
) -> LayoutResult:
    """
    Lay out a graph in layers along its direction.

    Args:
        graph: Parsed graph
        node_spacing: Gap between neighbouring nodes inside a layer
        layer_spacing: Distance between consecutive layers

    Returns:
        LayoutResult with one position per node and the final layer order
    """
    layers = assign_layers(graph)
    minimize_crossings(layers, graph, CROSSING_ITERATIONS)
    positions = assign_coordinates(layers, graph, node_spacing, layer_spacing)
    logger.debug("layered layout", layers=len(layers), nodes=len(positions),
                 direction=graph.direction.value)
    return LayoutResult(positions=positions, layers=layers)


def assign_layers(graph: "Graph") -> list[list[str]]:
    """
    Assign nodes to layers by breadth-first search from the roots.

    Roots are nodes with in-degree 0; when a cycle leaves none, the first
    node seeds the search. A node takes the layer where it is first reached,
    and nodes no root reaches are collected into one trailing layer.

    Args:
        graph: Parsed graph

    Returns:
        List of layers, each a list of node ids
    """
    if not graph.nodes:
        return []

    in_degree: dict[str, int] = {n.id: 0 for n in graph.nodes}
    out_edges: dict[str, list[str]] = defaultdict(list)
    for edge in graph.edges:
        in_degree[edge.target] = in_degree.get(edge.target, 0) + 1
        out_edges[edge.source].append(edge.target)

    roots = [n.id for n in graph.nodes if in_degree[n.id] == 0]
    if not roots:
        # Cycle with no entry point, start anywhere
        roots = [graph.nodes[0].id]

    layers: list[list[str]] = []
    visited: set[str] = set()
    current = roots

    while current:
        layers.append(list(current))
        visited.update(current)

        # dict keeps discovery order while dropping duplicates
        next_layer: dict[str, None] = {}
        for node_id in current:
            for target in out_edges.get(node_id, []):
                if target not in visited:
                    next_layer[target] = None
        current = list(next_layer)

    unvisited = [n.id for n in graph.nodes if n.id not in visited]
    if unvisited:
        layers.append(unvisited)

    return layers


def minimize_crossings(
    layers: list[list[str]],
    graph: "Graph",
    iterations: int = CROSSING_ITERATIONS,
) -> list[list[str]]:
    """
    Reorder nodes inside each layer with the barycenter heuristic.

    Each iteration sweeps down (layers 1..n-1, ordered by predecessors) and
    then up (layers n-2..0, ordered by successors). Nodes without a placed
    neighbour sort to the end; ties break on node id. Only the order inside
    a layer changes, never its membership.

    Args:
        layers: Layers to reorder (modified in-place)
        graph: Graph providing the edges
        iterations: Number of down+up sweeps

    Returns:
        The same list of layers
    """
    predecessors: dict[str, list[str]] = defaultdict(list)
    successors: dict[str, list[str]] = defaultdict(list)
    for edge in graph.edges:
        predecessors[edge.target].append(edge.source)
        successors[edge.source].append(edge.target)

    def reorder(layer_index: int, from_previous: bool):
        layer = layers[layer_index]
        if len(layer) <= 1:
            return
        neighbour_layer = layers[layer_index - 1] if from_previous else layers[layer_index + 1]
        index_of = {node_id: i for i, node_id in enumerate(neighbour_layer)}
        neighbours = predecessors if from_previous else successors

        def barycenter(node_id: str) -> float:
            indices = [index_of[n] for n in neighbours.get(node_id, []) if n in index_of]
            if not indices:
                return float("inf")
            return sum(indices) / len(indices)

        layer[:] = sorted(layer, key=lambda node_id: (barycenter(node_id), node_id))

    for _ in range(iterations):
        for i in range(1, len(layers)):
            reorder(i, True)
        for i in range(len(layers) - 2, -1, -1):
            reorder(i, False)

    return layers


def assign_coordinates(
    layers: list[list[str]],
    graph: "Graph",
    node_spacing: float = DEFAULT_NODE_SPACING,
    layer_spacing: float = DEFAULT_LAYER_SPACING,
) -> dict[str, LayoutNode]:
    """
    Compute centre coordinates for every node.

    Vertical directions (TB, TD, BT) pack each layer left to right using the
    real node widths and centre it on x=0. Horizontal directions (LR, RL)
    advance layers along x and space nodes along y by node_spacing only,
    ignoring their heights. BT and RL draw the last layer first.

    Args:
        layers: Ordered layers
        graph: Graph providing node shapes and direction
        node_spacing: Gap between nodes inside a layer
        layer_spacing: Distance between layers

    Returns:
        Mapping of node id to LayoutNode
    """
    nodes = {n.id: n for n in graph.nodes}
    horizontal = graph.direction.is_horizontal
    reverse = graph.direction.is_reversed
    positions: dict[str, LayoutNode] = {}

    for layer_index, layer in enumerate(layers):
        rank = len(layers) - 1 - layer_index if reverse else layer_index
        sizes = [default_node_size(nodes[node_id].shape) for node_id in layer]
        centres = layer_centres([w for w, _ in sizes], rank, horizontal,
                                node_spacing, layer_spacing)
        for node_id, (width, height), (x, y) in zip(layer, sizes, centres):
            positions[node_id] = LayoutNode(node_id=node_id, x=x, y=y,
                                            width=width, height=height)

    return positions


def layer_centres(
    widths: list[float],
    rank: int,
    horizontal: bool,
    node_spacing: float = DEFAULT_NODE_SPACING,
    layer_spacing: float = DEFAULT_LAYER_SPACING,
) -> list[tuple[float, float]]:
    """
    Centre points for the nodes of one layer.

    Shared by the layout engine and by the compiler, which re-centres layers
    once label sizes are known.
    """
    count = len(widths)
    if horizontal:
        return [(rank * layer_spacing, (i - (count - 1) / 2) * node_spacing)
                for i in range(count)]

    total = sum(widths) + max(0, count - 1) * node_spacing
    offset = -total / 2
    centres = []
    for width in widths:
        centres.append((offset + width / 2, rank * layer_spacing))
        offset += width + node_spacing
    return centres


def is_off_trunk(node: "GraphNode") -> bool:
    """Decision nodes of an outline are drawn outside the trunk."""
    return node.is_decision or node.shape == NodeShape.DIAMOND


def layout_outline_tree(
    graph: "Graph",
    layer_spacing: float = DEFAULT_LAYER_SPACING,
) -> LayoutResult:
    """
    Lay out an outline-derived tree.

    Trunk nodes of each level are spread evenly over TREE_WIDTH (a lone node
    sits at x=0). Decision nodes are placed OFF_TRUNK_OFFSET_X to the right
    at the height of their level, stacked OFF_TRUNK_STEP apart.

    Args:
        graph: Graph whose nodes all carry a level
        layer_spacing: Vertical distance between levels

    Returns:
        LayoutResult whose layers hold the trunk nodes only
    """
    trunk: dict[int, list[str]] = defaultdict(list)
    off_trunk: dict[int, list[str]] = defaultdict(list)
    nodes = {n.id: n for n in graph.nodes}

    for node in graph.nodes:
        level = node.level or 0
        (off_trunk if is_off_trunk(node) else trunk)[level].append(node.id)

    layers = [trunk[level] for level in sorted(trunk)]
    positions: dict[str, LayoutNode] = {}

    for layer_index, layer in enumerate(layers):
        y = layer_index * layer_spacing
        item_width = TREE_WIDTH / len(layer)
        for index, node_id in enumerate(layer):
            x = 0 if len(layer) == 1 else (index + 0.5) * item_width - TREE_WIDTH / 2
            width, height = default_node_size(nodes[node_id].shape)
            positions[node_id] = LayoutNode(node_id=node_id, x=x, y=y,
                                            width=width, height=height)

    for level in sorted(off_trunk):
        group = off_trunk[level]
        y = level * layer_spacing
        for index, node_id in enumerate(group):
            x = OFF_TRUNK_OFFSET_X + (index - len(group) / 2 + 0.5) * OFF_TRUNK_STEP
            size = 100 if nodes[node_id].shape == NodeShape.CIRCLE else 120
            positions[node_id] = LayoutNode(node_id=node_id, x=x, y=y,
                                            width=size, height=size)

    logger.debug("outline tree layout", trunk_levels=len(layers),
                 off_trunk=sum(len(g) for g in off_trunk.values()))
    return LayoutResult(positions=positions, layers=layers)


def choose_layout(graph: "Graph", **kwargs) -> LayoutResult:
    """Outline graphs get the tree layout, everything else the layered one."""
    if graph.is_outline():
        return layout_outline_tree(graph, layer_spacing=kwargs.get(
            "layer_spacing", DEFAULT_LAYER_SPACING))
    return layout_graph(graph, **kwargs)
