"""
Flowchart mini-language parser.

Supported syntax (one statement per line, ``%%`` starts a comment):

    graph TD            (or: flowchart LR; header may carry content after ';')
    A[Rectangle]  B(Rounded)  C((Circle))  D{Diamond}  E{{Diamond}}
    F[[Subroutine]]  G[/Parallelogram\\]  H[\\Parallelogram/]
    A --> B   A ==> B   A -.-> B   A -> B   A -->|label| B

Node declarations are replaced by their bare ids before edges are read, so
``A[Start]-->B(Next)`` yields two nodes and one edge.
"""

import re

import structlog

from ..models import Direction, EdgeType, Graph, GraphNode, NodeShape
from .base import finalize_graph, split_lines

logger = structlog.get_logger(__name__)

GRAMMAR = "flowchart"

# Ids may contain '-' but never end with it, otherwise "A-->B" would read as "A-" -> "B"
ID_PATTERN = r"[A-Za-z0-9_]+(?:-[A-Za-z0-9_]+)*"

# The direction is optional; a bare "graph" keeps the default TB
_HEADER = re.compile(r"^(?:graph|flowchart)(?=\s|;|$)\s*(?:([A-Za-z]{2})\b)?(.*)$", re.IGNORECASE)

# Most specific delimiters first so that [[x]] is not read as [x]
NODE_PATTERNS: list[tuple[re.Pattern, NodeShape]] = [
    (re.compile(rf"({ID_PATTERN})\[\[(.*?)\]\]"), NodeShape.RECTANGLE),
    (re.compile(rf"({ID_PATTERN})\(\((.*?)\)\)"), NodeShape.CIRCLE),
    (re.compile(rf"({ID_PATTERN})\{{\{{(.*?)\}}\}}"), NodeShape.DIAMOND),
    (re.compile(rf"({ID_PATTERN})\[\\(.*?)/\]"), NodeShape.PARALLELOGRAM),
    (re.compile(rf"({ID_PATTERN})\[/(.*?)\\\]"), NodeShape.PARALLELOGRAM),
    (re.compile(rf"({ID_PATTERN})\[(.*?)\]"), NodeShape.RECTANGLE),
    (re.compile(rf"({ID_PATTERN})\{{(.*?)\}}"), NodeShape.DIAMOND),
    (re.compile(rf"({ID_PATTERN})\((.*?)\)"), NodeShape.ROUNDED),
]

# The target id is a lookahead so chains like A-->B-->C yield both edges
EDGE_PATTERN = re.compile(
    rf"({ID_PATTERN})\s*(-->|==>|-\.->|->)\s*(?:\|([^|]+)\|\s*)?(?=({ID_PATTERN}))"
)


def edge_type_for(operator: str) -> EdgeType:
    """Classify an arrow token."""
    if operator == "==>":
        return EdgeType.THICK
    if operator == "-.->":
        return EdgeType.DOTTED
    return EdgeType.ARROW


def parse_flowchart(text: str) -> Graph:
    """
    Parse flowchart text into a Graph.

    Args:
        text: Diagram source

    Returns:
        Graph with direction, nodes and edges

    Raises:
        ParseError: empty input or no nodes found
    """
    lines = split_lines(text, GRAMMAR)
    graph = Graph()

    for line_number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("%%"):
            continue
        if not _parse_line(line, graph):
            logger.debug("flowchart line produced nothing", line=line_number, text=line)

    # Register ids only referenced by edges, after all declarations were seen
    for edge in graph.edges:
        graph.ensure_node(edge.source)
        graph.ensure_node(edge.target)

    return finalize_graph(graph, GRAMMAR, "No nodes found in flowchart")


def _parse_line(content: str, graph: Graph) -> bool:
    """Parse one statement; return True if it declared anything."""
    produced = False

    header = _HEADER.match(content)
    if header:
        direction = (header.group(1) or "").upper()
        if direction in Direction.__members__:
            graph.direction = Direction(direction)
        produced = True
        content = re.sub(r"^[;,]\s*", "", header.group(2).strip())

    if not content:
        return produced

    def register(shape: NodeShape):
        def _replace(match: re.Match) -> str:
            node_id, label = match.group(1), match.group(2).strip()
            graph.add_node(GraphNode(id=node_id, label=label, shape=shape))
            return node_id
        return _replace

    clean_line = content
    node_count = len(graph.nodes)
    for pattern, shape in NODE_PATTERNS:
        clean_line = pattern.sub(register(shape), clean_line)
    produced = produced or len(graph.nodes) > node_count or clean_line != content

    for match in EDGE_PATTERN.finditer(clean_line):
        source, operator, label, target = match.groups()
        graph.add_edge(source, target, (label or "").strip(), edge_type_for(operator))
        produced = True

    return produced
