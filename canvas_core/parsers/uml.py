"""
UML-like parser covering class, sequence and activity diagrams.

    @startuml / @enduml          ignored
    ' comment, // comment        ignored
    class User { ... }           class node, first three members in the label
    A <|-- B, A *-- B, A o-- B   inheritance / composition / aggregation
    A --> B : label, A ..> B     association / dependency
    participant A, actor B       sequence participants (actors are circles)
    A -> B : message             sequence message
    start, :step;, if (x) then   activity flow, each step chained to the last
    stop / end
"""

import re
from typing import Optional

import structlog

from ..models import Direction, EdgeType, Graph, GraphNode, NodeShape
from .base import finalize_graph, split_lines

logger = structlog.get_logger(__name__)

GRAMMAR = "uml"

MAX_CLASS_MEMBERS = 3

_CLASS = re.compile(r"^class\s+(\w+)\s*(\{)?\s*(.*)$")
_PARTICIPANT = re.compile(r'^(participant|actor)\s+(.+?)(?:\s+as\s+"([^"]+)")?$')
_ACTIVITY = re.compile(r"^:([^;:]+);$")
_IF = re.compile(r"^if\s*\(([^)]+)\)\s*then$")
_MESSAGE = re.compile(r"^(.+?)\s*(-+>|<-+|-+<>|-+<|<-+>)\s*(.+?)(?:\s*:\s*(.+))?$")

# (pattern, relation kind, reversed); checked in order, first match wins
RELATION_PATTERNS: list[tuple[re.Pattern, str, bool]] = [
    (re.compile(r"(\w+)\s*<\|-+\s*(\w+)"), "inheritance", True),
    (re.compile(r"(\w+)\s*-+\|>\s*(\w+)"), "inheritance", False),
    (re.compile(r"(\w+)\s*\*-+\s*(\w+)"), "composition", True),
    (re.compile(r"(\w+)\s*-+\*\s*(\w+)"), "composition", False),
    (re.compile(r"(\w+)\s*o-+\s*(\w+)"), "aggregation", True),
    (re.compile(r"(\w+)\s*-+o\s*(\w+)"), "aggregation", False),
    (re.compile(r"(\w+)\s*-+>\s*(\w+)(?:\s*:\s*(.+))?"), "association", False),
    (re.compile(r"(\w+)\s*<-+\s*(\w+)(?:\s*:\s*(.+))?"), "association", True),
    (re.compile(r"(\w+)\s*\.+\|?>\s*(\w+)(?:\s*:\s*(.+))?"), "dependency", False),
    (re.compile(r"(\w+)\s*-+\s*(\w+)(?:\s*:\s*(.+))?"), "association", False),
]

START_ID, START_LABEL = "start", "Start"
END_ID, END_LABEL = "end", "End"


def relation_edge_type(kind: str) -> EdgeType:
    if kind == "dependency":
        return EdgeType.DOTTED
    if kind == "inheritance":
        return EdgeType.THICK
    return EdgeType.ARROW


def class_label(name: str, members: list[str]) -> str:
    """Class name followed by up to three members, '...' when truncated."""
    label = name
    if members:
        label += "\n" + "\n".join(members[:MAX_CLASS_MEMBERS])
        if len(members) > MAX_CLASS_MEMBERS:
            label += "\n..."
    return label


class _UmlReader:
    """Line-by-line state machine for one UML document."""

    def __init__(self):
        self.graph = Graph(direction=Direction.TB)
        self.class_name: Optional[str] = None
        self.class_members: list[str] = []

    def chain(self, node_id: str, previous: Optional[str]):
        if previous is not None and previous != node_id:
            self.graph.add_edge(previous, node_id)

    def last_node_id(self) -> Optional[str]:
        return self.graph.nodes[-1].id if self.graph.nodes else None

    def close_class(self):
        self.graph.add_node(GraphNode(
            id=self.class_name,
            label=class_label(self.class_name, self.class_members),
            shape=NodeShape.RECTANGLE,
        ))
        self.class_name = None
        self.class_members = []

    def read(self, line: str) -> bool:
        """Consume one trimmed line; return True if it was understood."""
        if self.class_name is not None:
            if "}" in line:
                before = line.split("}", 1)[0].strip()
                if before:
                    self.class_members.append(before)
                self.close_class()
            else:
                self.class_members.append(line)
            return True

        match = _CLASS.match(line)
        if match:
            name, brace, rest = match.groups()
            if not brace:
                self.graph.add_node(GraphNode(id=name, label=name))
            elif "}" in rest:
                body = rest.split("}", 1)[0]
                members = [m.strip() for m in re.split(r"[;\n]", body) if m.strip()]
                self.graph.add_node(GraphNode(id=name, label=class_label(name, members)))
            else:
                self.class_name = name
                if rest:
                    self.class_members.append(rest)
            return True

        match = _PARTICIPANT.match(line)
        if match:
            kind, name, alias = match.groups()
            name = name.strip().strip('"')
            shape = NodeShape.CIRCLE if kind == "actor" else NodeShape.RECTANGLE
            self.graph.add_node(GraphNode(id=name, label=alias or name, shape=shape))
            return True

        if line in ("start", "(*)"):
            previous = self.last_node_id()
            self.graph.add_node(GraphNode(id=START_ID, label=START_LABEL, shape=NodeShape.CIRCLE))
            self.chain(START_ID, previous)
            return True

        if line in ("stop", "end"):
            previous = self.last_node_id()
            self.graph.add_node(GraphNode(id=END_ID, label=END_LABEL, shape=NodeShape.CIRCLE))
            self.chain(END_ID, previous)
            return True

        match = _ACTIVITY.match(line)
        if match:
            previous = self.last_node_id()
            node_id = f"activity_{len(self.graph.nodes)}"
            self.graph.add_node(GraphNode(id=node_id, label=match.group(1).strip(),
                                          shape=NodeShape.ROUNDED))
            self.chain(node_id, previous)
            return True

        match = _IF.match(line)
        if match:
            previous = self.last_node_id()
            node_id = f"decision_{len(self.graph.nodes)}"
            self.graph.add_node(GraphNode(id=node_id, label=match.group(1).strip(),
                                          shape=NodeShape.DIAMOND, is_decision=True))
            self.chain(node_id, previous)
            return True

        for pattern, kind, reverse in RELATION_PATTERNS:
            match = pattern.search(line)
            if match:
                source, target = match.group(1), match.group(2)
                if reverse:
                    source, target = target, source
                label = ""
                if pattern.groups >= 3 and match.group(3):
                    label = match.group(3).strip()
                self.graph.ensure_node(source)
                self.graph.ensure_node(target)
                self.graph.add_edge(source, target, label, relation_edge_type(kind))
                return True

        match = _MESSAGE.match(line)
        if match:
            source, arrow, target, label = match.groups()
            source, target = source.strip(), target.strip()
            if arrow.startswith("<") and ">" not in arrow:
                source, target = target, source
            self.graph.ensure_node(source)
            self.graph.ensure_node(target)
            self.graph.add_edge(source, target, (label or "").strip())
            return True

        return False


def parse_uml(text: str) -> Graph:
    """
    Parse UML-like text into a Graph.

    Args:
        text: Diagram source

    Returns:
        Graph (direction TB)

    Raises:
        ParseError: empty input or no nodes found
    """
    lines = split_lines(text, GRAMMAR)
    reader = _UmlReader()

    for line_number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("'") or line.startswith("//"):
            continue
        if line.startswith("@startuml") or line.startswith("@enduml"):
            continue
        if not reader.read(line):
            logger.debug("uml line not understood", line=line_number, text=line)

    if reader.class_name is not None:
        logger.warning("unterminated class block", name=reader.class_name)
        reader.close_class()

    return finalize_graph(reader.graph, GRAMMAR, "No nodes found in UML text")
