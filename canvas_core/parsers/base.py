"""
Shared plumbing for the diagram text parsers.

Every parser has the same contract: ``parse(text) -> Graph``, raising
ParseError when the text is empty or yields zero nodes. The final graph is
validated before it is returned so no dangling endpoint escapes a parser.
"""

import re

import structlog

from ..errors import ParseError
from ..models import Graph
from ..validation import IssueSeverity, validate_graph

logger = structlog.get_logger(__name__)

_LINE_SPLIT = re.compile(r"\r?\n")


def split_lines(text: str, grammar: str) -> list[str]:
    """Split diagram text into raw lines, rejecting empty input."""
    if text is None or not text.strip():
        raise ParseError("Diagram text is empty", grammar=grammar)
    return _LINE_SPLIT.split(text.strip())


def finalize_graph(graph: Graph, grammar: str, empty_message: str) -> Graph:
    """
    Check a freshly parsed graph and hand it out.

    Args:
        graph: The graph built by a parser
        grammar: Grammar name for error context
        empty_message: Message used when no node was found

    Returns:
        The same graph

    Raises:
        ParseError: no nodes, or structural errors (dangling edges, duplicate ids)
    """
    if not graph.nodes:
        logger.warning("parse produced no nodes", grammar=grammar)
        raise ParseError(empty_message, grammar=grammar)

    errors = [i for i in validate_graph(graph) if i.severity == IssueSeverity.ERROR]
    if errors:
        logger.warning("parsed graph failed validation", grammar=grammar,
                       errors=[e.message for e in errors])
        raise ParseError(errors[0].message, grammar=grammar)

    logger.debug("parsed diagram", grammar=grammar,
                 nodes=len(graph.nodes), edges=len(graph.edges))
    return graph
