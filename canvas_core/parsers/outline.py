"""
Outline (nested list) parser.

Each list item ``-``, ``*``, ``+`` or ``1.`` becomes a node; indentation
(two spaces per level) gives its depth, and an edge links every item to its
nearest shallower ancestor. Items whose text looks like a question or a
decision become diamonds.
"""

import re

import structlog

from ..models import Direction, EdgeType, Graph, GraphNode, NodeShape
from .base import finalize_graph, split_lines

logger = structlog.get_logger(__name__)

GRAMMAR = "outline"

_ITEM = re.compile(r"^(\s*)([-*+]|\d+\.)\s+(.+)$")

DECISION_KEYWORDS = ("否", "是", "？", "?", "决策", "判断", "条件", "decision", "condition")

# (background, border) per depth, deeper levels reuse the last entry
LEVEL_PALETTE = [
    ("#3B82F6", "#1E40AF"),
    ("#10B981", "#047857"),
    ("#F59E0B", "#D97706"),
    ("#8B5CF6", "#6D28D9"),
    ("#EC4899", "#BE185D"),
    ("#06B6D4", "#0891B2"),
]


def is_decision_text(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in DECISION_KEYWORDS)


def shape_for_level(level: int, is_decision: bool) -> NodeShape:
    """Decisions are diamonds; otherwise root rounded, level 1 rectangle, deeper circle."""
    if is_decision:
        return NodeShape.DIAMOND
    if level == 0:
        return NodeShape.ROUNDED
    if level == 1:
        return NodeShape.RECTANGLE
    return NodeShape.CIRCLE


def parse_outline(text: str) -> Graph:
    """
    Parse an indented list into a top-down tree graph.

    Args:
        text: Outline source

    Returns:
        Graph (direction TB) whose nodes all carry a level

    Raises:
        ParseError: empty input or no list items
    """
    lines = split_lines(text, GRAMMAR)
    graph = Graph(direction=Direction.TB)
    stack: list[GraphNode] = []
    counter = 0

    for line_number, raw in enumerate(lines, start=1):
        match = _ITEM.match(raw)
        if not match:
            if raw.strip():
                logger.debug("outline line is not a list item", line=line_number)
            continue

        indent, _, content = match.groups()
        level = len(indent) // 2
        label = content.strip()
        decision = is_decision_text(label)
        background, border = LEVEL_PALETTE[min(level, len(LEVEL_PALETTE) - 1)]

        node = graph.add_node(GraphNode(
            id=f"node{counter}",
            label=label,
            shape=shape_for_level(level, decision),
            level=level,
            background_color=background,
            border_color=border,
            is_decision=decision,
        ))
        counter += 1

        while stack and stack[-1].level >= level:
            stack.pop()
        if stack:
            graph.add_edge(stack[-1].id, node.id, edge_type=EdgeType.ARROW)
        stack.append(node)

    return finalize_graph(graph, GRAMMAR, "No valid list items found")
