"""
Graph models shared by the diagram parsers, the layout engine and the
element compiler.

These models define the intermediate representation for imported diagrams:
- Nodes with a label, a shape and optional outline level/colours
- Edges connecting nodes (using source/target naming convention)
- A graph direction selecting how layers are laid out

Field Naming Convention:
- Edges use `source` and `target`
- For compatibility with diagram text vocabulary, `from`/`to` are accepted on
  input and converted
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class NodeShape(str, Enum):
    """Shapes a diagram node can declare."""
    RECTANGLE = "rectangle"
    ROUNDED = "rounded"
    CIRCLE = "circle"
    DIAMOND = "diamond"
    PARALLELOGRAM = "parallelogram"


class EdgeType(str, Enum):
    """Line styles for graph edges."""
    ARROW = "arrow"
    DOTTED = "dotted"
    THICK = "thick"


class Direction(str, Enum):
    """Graph flow direction."""
    TB = "TB"
    TD = "TD"
    LR = "LR"
    RL = "RL"
    BT = "BT"

    @property
    def is_horizontal(self) -> bool:
        return self in (Direction.LR, Direction.RL)

    @property
    def is_reversed(self) -> bool:
        return self in (Direction.RL, Direction.BT)


class GraphNode(BaseModel):
    """A vertex of an imported diagram."""
    id: str
    label: str
    shape: NodeShape = NodeShape.RECTANGLE
    level: Optional[int] = None  # outline depth, only set by the outline parser
    background_color: Optional[str] = None
    border_color: Optional[str] = None
    is_decision: bool = False


class GraphEdge(BaseModel):
    """
    A directed connection between two graph nodes.

    Uses `source` and `target` as canonical field names.
    Accepts `from`/`to` on input.
    """
    source: str
    target: str
    label: str = ""
    type: EdgeType = EdgeType.ARROW

    @model_validator(mode="before")
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert 'from'/'to' fields to 'source'/'target'."""
        if isinstance(data, dict):
            data = dict(data)
            if "from" in data and "source" not in data:
                data["source"] = data.pop("from")
            if "to" in data and "target" not in data:
                data["target"] = data.pop("to")
        return data


class Graph(BaseModel):
    """
    A parsed diagram: ordered nodes, ordered edges and a direction.

    Node order is insertion order and is significant: layout seeds and
    tie-breaks depend on it.
    """
    direction: Direction = Direction.TB
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        """Get a node by ID (O(n))."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def add_node(self, node: GraphNode) -> GraphNode:
        """Register a node unless its id is already taken; return the registered node."""
        existing = self.get_node(node.id)
        if existing is not None:
            return existing
        self.nodes.append(node)
        return node

    def ensure_node(self, node_id: str) -> GraphNode:
        """Auto-register an undeclared id as a plain rectangle labelled by its id."""
        return self.add_node(GraphNode(id=node_id, label=node_id))

    def add_edge(self, source: str, target: str, label: str = "",
                 edge_type: EdgeType = EdgeType.ARROW) -> GraphEdge:
        edge = GraphEdge(source=source, target=target, label=label, type=edge_type)
        self.edges.append(edge)
        return edge

    def is_outline(self) -> bool:
        """True when every node carries an outline level (tree layout path)."""
        return bool(self.nodes) and all(n.level is not None for n in self.nodes)

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return self.model_dump(mode="json")


class LayoutNode(BaseModel):
    """A positioned node: x/y are centres in abstract layout space."""
    node_id: str
    x: float
    y: float
    width: float
    height: float


class LayoutResult(BaseModel):
    """Output of the layout engine: one position per node plus the layer order."""
    positions: dict[str, LayoutNode] = Field(default_factory=dict)
    layers: list[list[str]] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        return {
            "layers": [list(layer) for layer in self.layers],
            "positions": {k: v.model_dump() for k, v in self.positions.items()},
        }
