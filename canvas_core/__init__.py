"""
Canvas Core - Diagram import, layout, elements, bindings and history.

This package provides the document logic behind the canvas: parsers turn
diagram text into graphs, the layout engine and compiler turn graphs into
canvas elements, and the element store owns the document and its history.
"""

from .errors import (
    CanvasError,
    ParseError,
    BindingResolutionFailure,
    RendererFailure,
    StorageCorruption,
)

from .models import (
    # Enums
    NodeShape,
    EdgeType,
    Direction,
    # Graph models
    GraphNode,
    GraphEdge,
    Graph,
    LayoutNode,
    LayoutResult,
)

from .elements import (
    # Enums
    ElementType,
    ImageFilter,
    AnchorPosition,
    # Element models
    Point,
    ArrowBinding,
    TextStyle,
    TextRangeStyle,
    ShapeElement,
    ImageElement,
    TextElement,
    GroupElement,
    CanvasElement,
    Viewport,
    CanvasState,
    parse_element,
    new_element,
    apply_element_updates,
)

from .validation import validate_graph, ValidationIssue, IssueSeverity
from .parsers import DiagramFormat, detect_format, parse_diagram
from .layout import layout_graph, layout_outline_tree, choose_layout
from .compiler import CompileOptions, compile_graph, compile_text
from .snap import (
    SnapPoint,
    SnapResult,
    get_element_snap_points,
    snap_arrow_point,
    get_arrows_to_update,
    merge_updates,
)
from .store import ElementStore
from .storage import save_canvas_state, load_canvas_state, clear_canvas_state

__all__ = [
    # Errors
    "CanvasError",
    "ParseError",
    "BindingResolutionFailure",
    "RendererFailure",
    "StorageCorruption",
    # Graph
    "NodeShape",
    "EdgeType",
    "Direction",
    "GraphNode",
    "GraphEdge",
    "Graph",
    "LayoutNode",
    "LayoutResult",
    # Elements
    "ElementType",
    "ImageFilter",
    "AnchorPosition",
    "Point",
    "ArrowBinding",
    "TextStyle",
    "TextRangeStyle",
    "ShapeElement",
    "ImageElement",
    "TextElement",
    "GroupElement",
    "CanvasElement",
    "Viewport",
    "CanvasState",
    "parse_element",
    "new_element",
    "apply_element_updates",
    # Validation
    "validate_graph",
    "ValidationIssue",
    "IssueSeverity",
    # Parsing
    "DiagramFormat",
    "detect_format",
    "parse_diagram",
    # Layout & compile
    "layout_graph",
    "layout_outline_tree",
    "choose_layout",
    "CompileOptions",
    "compile_graph",
    "compile_text",
    # Bindings
    "SnapPoint",
    "SnapResult",
    "get_element_snap_points",
    "snap_arrow_point",
    "get_arrows_to_update",
    "merge_updates",
    # Store
    "ElementStore",
    "save_canvas_state",
    "load_canvas_state",
    "clear_canvas_state",
]
