"""
Graph-to-element compiler.

Turns a laid-out Graph into canvas elements:
- one shape per node, sized to its wrapped label and coloured per id
- one bound arrow per edge, leaving each node box where the centre line
  crosses it, with parallel edges fanned out by curvature
- for outline trees, cosmetic side rails and stubs (no arrow heads)
"""

import sys
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Literal, Optional

import structlog

from .elements import ArrowBinding, AnchorPosition, Point, ShapeElement, TextStyle
from .layout import (
    DEFAULT_LAYER_SPACING,
    DEFAULT_NODE_SPACING,
    choose_layout,
    is_off_trunk,
    layer_centres,
)
from .models import EdgeType, Graph, GraphEdge, LayoutResult, NodeShape
from .parsers import DiagramFormat, parse_diagram

logger = structlog.get_logger(__name__)


# Text sizing
WRAP_WIDTH = 20
CHAR_WIDTH = 12
LINE_HEIGHT = 20
TEXT_PADDING_X = 60
TEXT_PADDING_Y = 30
MAX_NODE_WIDTH = 400
FONT_FAMILY = "Arial, sans-serif"

# Outline tree scaffolding
OFF_TRUNK_X = 600
RAIL_MARGIN = 80
RAIL_OVERHANG = 100
RAIL_COLOR = "#94A3B8"
STUB_COLOR = "#CBD5E1"

# Arrows
ARROW_HEAD_SIZE = 12
ARROW_LABEL_COLOR = "#1e293b"
BEND_BASE = 2.0
PARALLEL_SPREAD = 1.5
LONE_EDGE_OFFSET = 0.2

PALETTES = {
    "colorful": ["#60A5FA", "#34D399", "#A78BFA", "#F59E0B",
                 "#FB7185", "#F97316", "#06B6D4", "#F472B6"],
    "serious": ["#2563EB", "#0F766E", "#6D28D9", "#92400E",
                "#7C2D12", "#334155", "#0F172A", "#374151"],
}

BORDER_PALETTES = {
    "colorful": ["#1E40AF", "#065F46", "#4C1D95", "#92400E",
                 "#981B1B", "#C2410C", "#075985", "#BE185D"],
    "serious": ["#0B3B8C", "#064E40", "#3B1F6B", "#6B2F0A",
                "#5C1F1A", "#1F2937", "#071833", "#111827"],
}

EDGE_COLORS = {
    EdgeType.ARROW: "#334155",
    EdgeType.DOTTED: "#6B7280",
    EdgeType.THICK: "#0F172A",
}

_CANVAS_SHAPES = {
    NodeShape.RECTANGLE: "rounded-rectangle",
    NodeShape.ROUNDED: "rounded-rectangle",
    NodeShape.CIRCLE: "circle",
    NodeShape.DIAMOND: "rectangle",
    NodeShape.PARALLELOGRAM: "rectangle",
}

@dataclass
class CompileOptions:
    """Styling knobs for compile_graph."""
    enable_bend: bool = True
    style_preset: Literal["colorful", "serious"] = "colorful"
    curve_strength: float = 0.7
    node_spacing: float = DEFAULT_NODE_SPACING
    layer_spacing: float = DEFAULT_LAYER_SPACING


def wrap_text(text: str, max_chars: int = WRAP_WIDTH) -> str:
    """
    Hard-wrap a label to ``max_chars`` per line.

    A full line breaks before the next character; a space at the break is
    dropped while commas stay at the start of the new line.
    """
    if not text or len(text) <= max_chars:
        return text

    lines: list[str] = []
    current = ""
    for char in text:
        if len(current) >= max_chars:
            lines.append(current)
            current = "" if char == " " else char
        else:
            current += char
    if current:
        lines.append(current)
    return "\n".join(lines)


def hash_string_to_index(value: str, modulo: int) -> int:
    """32-bit FNV-1a hash of ``value`` reduced modulo ``modulo``."""
    h = 2166136261
    for char in value:
        h = ((h ^ ord(char)) * 16777619) & 0xFFFFFFFF
    return h % modulo


def node_color(node_id: Optional[str], preset: str = "colorful") -> str:
    palette = PALETTES.get(preset, PALETTES["colorful"])
    return palette[hash_string_to_index(node_id, len(palette)) if node_id else 0]


def node_border_color(node_id: Optional[str], preset: str = "colorful") -> str:
    palette = BORDER_PALETTES.get(preset, BORDER_PALETTES["colorful"])
    return palette[hash_string_to_index(node_id, len(palette)) if node_id else 0]


def _hex_to_rgb(color: str) -> tuple[int, int, int]:
    value = color.lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    number = int(value[:6], 16)
    return (number >> 16) & 255, (number >> 8) & 255, number & 255


def readable_text_color(background: str) -> str:
    """Near-black on light backgrounds, white otherwise (relative luminance > 0.6)."""
    r, g, b = _hex_to_rgb(background)
    luminance = 0.2126 * (r / 255) + 0.7152 * (g / 255) + 0.0722 * (b / 255)
    return "#0f172a" if luminance > 0.6 else "#ffffff"


def edge_color(edge_type: EdgeType) -> str:
    return EDGE_COLORS.get(edge_type, EDGE_COLORS[EdgeType.ARROW])


def box_intersection(cx: float, cy: float, width: float, height: float,
                     target_x: float, target_y: float) -> tuple[float, float]:
    """
    Point where the ray from a box centre towards a target leaves the box.

    Whichever side (vertical or horizontal) is hit first wins.
    """
    tx, ty = target_x - cx, target_y - cy
    if tx == 0 and ty == 0:
        return cx, cy
    scale_x = abs((width / 2) / (tx or sys.float_info.epsilon))
    scale_y = abs((height / 2) / (ty or sys.float_info.epsilon))
    t = min(scale_x, scale_y)
    return cx + tx * t, cy + ty * t


def binding_sides(dx: float, dy: float) -> tuple[AnchorPosition, AnchorPosition]:
    """Anchor sides for an edge whose centre-to-centre vector is (dx, dy)."""
    if abs(dx) > abs(dy):
        if dx > 0:
            return AnchorPosition.RIGHT, AnchorPosition.LEFT
        return AnchorPosition.LEFT, AnchorPosition.RIGHT
    if dy > 0:
        return AnchorPosition.BOTTOM, AnchorPosition.TOP
    return AnchorPosition.TOP, AnchorPosition.BOTTOM


def parallel_curve(index: int, total: int, options: CompileOptions) -> float:
    """
    Curvature for the ``index``-th of ``total`` edges sharing a source and target.

    Siblings fan out symmetrically around the group centre; a lone edge gets
    a slight default bend. The result is clamped to [-1, 1].
    """
    base = BEND_BASE if options.enable_bend else 0.0
    centre = (total - 1) / 2
    if total > 1:
        offset = (index - centre) * PARALLEL_SPREAD
    else:
        offset = LONE_EDGE_OFFSET
    curve = offset * base * (options.curve_strength or 1)
    return max(-1.0, min(1.0, curve))


def _short_id() -> str:
    return uuid.uuid4().hex[:9]


def _node_elements(graph: Graph, layout: LayoutResult, start_x: float, start_y: float,
                   options: CompileOptions, outline: bool) -> dict[str, ShapeElement]:
    elements: dict[str, ShapeElement] = {}

    for node in graph.nodes:
        pos = layout.positions[node.id]
        label = wrap_text(node.label, WRAP_WIDTH)
        lines = label.split("\n") if label else [""]
        longest = max(len(line) for line in lines)
        width = max(pos.width, min(MAX_NODE_WIDTH, longest * CHAR_WIDTH + TEXT_PADDING_X))
        height = max(pos.height, len(lines) * LINE_HEIGHT + TEXT_PADDING_Y)

        background = node.background_color or node_color(node.id, options.style_preset)
        border = node.border_color or node_border_color(node.id, options.style_preset)
        level = node.level or 0

        x = start_x + pos.x - width / 2
        if outline and is_off_trunk(node):
            # One shared column; decisions on the same level overlap there
            x = start_x + OFF_TRUNK_X

        canvas_type = _CANVAS_SHAPES[node.shape]
        elements[node.id] = ShapeElement(
            id=f"node-{node.id}-{_short_id()}",
            type=canvas_type,
            x=x,
            y=start_y + pos.y - height / 2,
            width=width,
            height=height,
            background_color=background,
            border_color=border,
            border_width=max(2, 4 - level * 0.5),
            corner_radius=10 if canvas_type == "rounded-rectangle" else None,
            content=label,
            text_style=TextStyle(
                font_family=FONT_FAMILY,
                font_size=max(12, 16 - level),
                color=readable_text_color(background),
                bold=level == 0,
            ),
        )

    return elements


def _recentre_layers(graph: Graph, layout: LayoutResult, elements: dict[str, ShapeElement],
                     start_x: float, start_y: float, options: CompileOptions):
    """Re-run per-layer centring with the text-derived widths."""
    horizontal = graph.direction.is_horizontal
    reverse = graph.direction.is_reversed
    count = len(layout.layers)

    for layer_index, layer in enumerate(layout.layers):
        rank = count - 1 - layer_index if reverse else layer_index
        widths = [elements[node_id].width for node_id in layer]
        centres = layer_centres(widths, rank, horizontal,
                                options.node_spacing, options.layer_spacing)
        for node_id, (cx, cy) in zip(layer, centres):
            element = elements[node_id]
            elements[node_id] = element.model_copy(update={
                "x": start_x + cx - element.width / 2,
                "y": start_y + cy - element.height / 2,
            })


def _edge_element(edge: GraphEdge, source: ShapeElement, target: ShapeElement,
                  curve: float) -> ShapeElement:
    sx, sy = source.center()
    tx, ty = target.center()

    min_x, min_y = min(sx, tx), min(sy, ty)
    width = (max(sx, tx) - min_x) or 1
    height = (max(sy, ty) - min_y) or 1

    start = box_intersection(sx, sy, source.width, source.height, tx, ty)
    end = box_intersection(tx, ty, target.width, target.height, sx, sy)
    start_side, end_side = binding_sides(tx - sx, ty - sy)

    color = edge_color(edge.type)
    stroke = 3 if edge.type == EdgeType.THICK else 2
    return ShapeElement(
        id=f"arrow-{edge.source}-{edge.target}-{_short_id()}",
        type="arrow",
        x=min_x,
        y=min_y,
        width=width,
        height=height,
        background_color=color,
        border_color=color,
        border_width=stroke,
        arrow_start=Point(x=start[0] - min_x, y=start[1] - min_y),
        arrow_end=Point(x=end[0] - min_x, y=end[1] - min_y),
        arrow_head_size=ARROW_HEAD_SIZE,
        arrow_tail_width=stroke,
        arrow_curve=curve,
        content=edge.label or "",
        text_style=TextStyle(font_family=FONT_FAMILY, font_size=12,
                             color=ARROW_LABEL_COLOR) if edge.label else None,
        start_binding=ArrowBinding(element_id=source.id, position=start_side),
        end_binding=ArrowBinding(element_id=target.id, position=end_side),
    )


def _guide(element_id: str, x: float, y: float, dx: float, dy: float,
           color: str, stroke: float) -> ShapeElement:
    """A headless straight connector from (x, y) to (x + dx, y + dy)."""
    return ShapeElement(
        id=element_id,
        type="arrow",
        x=x,
        y=y,
        width=max(abs(dx), 1),
        height=max(abs(dy), 1),
        background_color=color,
        border_color=color,
        border_width=stroke,
        arrow_start=Point(x=0, y=0),
        arrow_end=Point(x=dx, y=dy),
        arrow_head_size=0,
        arrow_tail_width=stroke,
        arrow_curve=0,
    )


def _outline_scaffolding(graph: Graph, elements: dict[str, ShapeElement]
                         ) -> tuple[list[ShapeElement], list[ShapeElement]]:
    """Side rails around the trunk plus one stub per trunk node to its nearer rail."""
    trunk = [elements[n.id] for n in graph.nodes if not is_off_trunk(n)]
    if not trunk:
        return [], []

    min_x = min(e.x for e in trunk)
    max_x = max(e.x + e.width for e in trunk)
    min_y = min(e.y for e in trunk)
    max_y = max(e.y + e.height for e in trunk)
    left_rail = min_x - RAIL_MARGIN
    right_rail = max_x + RAIL_MARGIN
    rail_height = max_y - min_y + RAIL_OVERHANG
    rail_top = min_y - RAIL_OVERHANG / 2
    middle = (min_x + max_x) / 2

    rails = [
        _guide(f"guide-left-{_short_id()}", left_rail, rail_top, 0, rail_height, RAIL_COLOR, 2),
        _guide(f"guide-right-{_short_id()}", right_rail, rail_top, 0, rail_height, RAIL_COLOR, 2),
    ]

    stubs = []
    for element in trunk:
        cx, cy = element.center()
        if cx < middle:
            stubs.append(_guide(f"connector-{element.id}-left", left_rail, cy,
                                element.x - left_rail, 0, STUB_COLOR, 1))
        else:
            right_edge = element.x + element.width
            stubs.append(_guide(f"connector-{element.id}-right", right_edge, cy,
                                right_rail - right_edge, 0, STUB_COLOR, 1))
    return stubs, rails


def compile_graph(
    graph: Graph,
    layout: LayoutResult,
    start_x: float = 100,
    start_y: float = 100,
    options: Optional[CompileOptions] = None,
) -> list[ShapeElement]:
    """
    Convert a laid-out graph into canvas elements.

    Args:
        graph: Parsed graph
        layout: Positions and layers for the graph
        start_x, start_y: Canvas offset of the layout origin
        options: Styling options (defaults to CompileOptions())

    Returns:
        Node shapes, then outline stubs, edge arrows and outline rails, with
        z-indices numbered 0..n-1 in that order
    """
    options = options or CompileOptions()
    outline = graph.is_outline()

    nodes = _node_elements(graph, layout, start_x, start_y, options, outline)
    # Outline layers hold trunk nodes only, so off-trunk nodes keep their column
    _recentre_layers(graph, layout, nodes, start_x, start_y, options)

    pair_totals = Counter((e.source, e.target) for e in graph.edges)
    pair_seen: dict[tuple[str, str], int] = defaultdict(int)
    arrows: list[ShapeElement] = []

    for edge in graph.edges:
        source, target = nodes.get(edge.source), nodes.get(edge.target)
        if source is None or target is None:
            logger.warning("edge endpoint has no element", source=edge.source, target=edge.target)
            continue
        pair = (edge.source, edge.target)
        curve = parallel_curve(pair_seen[pair], pair_totals[pair], options)
        pair_seen[pair] += 1
        arrows.append(_edge_element(edge, source, target, curve))

    stubs: list[ShapeElement] = []
    rails: list[ShapeElement] = []
    if outline and len(layout.layers) > 1:
        stubs, rails = _outline_scaffolding(graph, nodes)

    ordered = [*nodes.values(), *stubs, *arrows, *rails]
    result = [element.model_copy(update={"z_index": i}) for i, element in enumerate(ordered)]
    logger.info("compiled graph", nodes=len(nodes), arrows=len(arrows),
                scaffolding=len(stubs) + len(rails))
    return result


def compile_text(
    text: str,
    fmt: DiagramFormat | str | None = None,
    start_x: float = 100,
    start_y: float = 100,
    options: Optional[CompileOptions] = None,
) -> list[ShapeElement]:
    """
    Parse, lay out and compile diagram text in one go.

    Raises:
        ParseError: the text could not be parsed; nothing is produced
    """
    options = options or CompileOptions()
    graph = parse_diagram(text, fmt)
    layout = choose_layout(graph, node_spacing=options.node_spacing,
                           layer_spacing=options.layer_spacing)
    return compile_graph(graph, layout, start_x, start_y, options)
