"""
Graph validation - Check parsed graphs for structural issues.

Parsers run this on their output so that a graph with dangling edge
endpoints or duplicate node ids never reaches the layout engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Graph


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Invalid state, must be fixed
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a graph."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None
    edge_index: int | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        if self.edge_index is not None:
            result["edge_index"] = self.edge_index
        return result


def validate_graph(graph: "Graph") -> list[ValidationIssue]:
    """
    Validate a graph and return a list of issues.

    Checks for:
    - Empty graph - INFO
    - Duplicate node ids - ERROR
    - Dangling edge endpoints (source/target not registered) - ERROR
    - Self-referencing edges - WARNING
    - Parallel edges (same source->target) - INFO, they are drawn curved
    - Orphan nodes (no connections) - WARNING

    Args:
        graph: The graph to validate

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []

    if not graph.nodes:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Graph has no nodes"
        ))
        return issues

    node_ids: set[str] = set()
    for node in graph.nodes:
        if node.id in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Duplicate node id: {node.id}",
                node_id=node.id
            ))
        node_ids.add(node.id)

    connected: set[str] = set()
    seen_pairs: set[tuple[str, str]] = set()

    for index, edge in enumerate(graph.edges):
        connected.add(edge.source)
        connected.add(edge.target)

        if edge.source not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Edge references non-existent source node: {edge.source}",
                edge_index=index
            ))
        if edge.target not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                message=f"Edge references non-existent target node: {edge.target}",
                edge_index=index
            ))

        if edge.source == edge.target:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Self-referencing edge (node points to itself)",
                node_id=edge.source,
                edge_index=index
            ))

        pair = (edge.source, edge.target)
        if pair in seen_pairs:
            issues.append(ValidationIssue(
                severity=IssueSeverity.INFO,
                message=f"Parallel edge from {edge.source} to {edge.target}",
                edge_index=index
            ))
        seen_pairs.add(pair)

    orphans = [n.id for n in graph.nodes if n.id not in connected]
    if orphans and graph.edges:
        issues.append(ValidationIssue(
            severity=IssueSeverity.WARNING,
            message=f"Orphan nodes (no connections): {', '.join(orphans)}"
        ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    errors = len([i for i in issues if i.severity == IssueSeverity.ERROR])
    return {
        "total": len(issues),
        "errors": errors,
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": errors == 0
    }
