"""
Diagram text parsers.

Three grammars produce the same Graph model:
- flowchart: ``graph TD`` style node/edge statements
- outline: nested bullet lists, one node per item
- uml: class, sequence and activity diagrams
"""

import re
from enum import Enum

from ..errors import ParseError
from ..models import Graph
from .examples import FLOWCHART_EXAMPLE, OUTLINE_EXAMPLE, UML_EXAMPLES
from .flowchart import parse_flowchart
from .outline import parse_outline
from .uml import parse_uml


class DiagramFormat(str, Enum):
    """Input grammars accepted by the importer."""
    FLOWCHART = "flowchart"
    OUTLINE = "outline"
    UML = "uml"


_PARSERS = {
    DiagramFormat.FLOWCHART: parse_flowchart,
    DiagramFormat.OUTLINE: parse_outline,
    DiagramFormat.UML: parse_uml,
}

_UML_HINT = re.compile(r"^(?:@startuml|class\s+\w+|participant\s|actor\s|start$|:[^;]+;$)")
_OUTLINE_HINT = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+\S")


def detect_format(text: str) -> DiagramFormat:
    """
    Guess the grammar of a diagram text from its first meaningful line.

    Returns:
        DiagramFormat, flowchart when nothing else matches
    """
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line or line.startswith("%%") or line.startswith("'"):
            continue
        if re.match(r"^(?:graph|flowchart)\s", line, re.IGNORECASE):
            return DiagramFormat.FLOWCHART
        if _UML_HINT.match(line):
            return DiagramFormat.UML
        if _OUTLINE_HINT.match(raw):
            return DiagramFormat.OUTLINE
        break
    return DiagramFormat.FLOWCHART


def parse_diagram(text: str, fmt: DiagramFormat | str | None = None) -> Graph:
    """
    Parse diagram text with the given grammar (auto-detected when omitted).

    Raises:
        ParseError: malformed or empty text, or an unknown format name
    """
    if fmt is None:
        fmt = detect_format(text)
    try:
        fmt = DiagramFormat(fmt)
    except ValueError:
        raise ParseError(f"Unknown diagram format: {fmt}") from None
    return _PARSERS[fmt](text)


def example_text(fmt: DiagramFormat | str, variant: str = "class") -> str:
    """Return a sample diagram; ``variant`` picks the UML flavour."""
    fmt = DiagramFormat(fmt)
    if fmt == DiagramFormat.FLOWCHART:
        return FLOWCHART_EXAMPLE
    if fmt == DiagramFormat.OUTLINE:
        return OUTLINE_EXAMPLE
    return UML_EXAMPLES.get(variant, UML_EXAMPLES["class"])


__all__ = [
    "DiagramFormat",
    "detect_format",
    "example_text",
    "parse_diagram",
    "parse_flowchart",
    "parse_outline",
    "parse_uml",
]
