from canvas_core.models import Graph, GraphEdge, GraphNode
from canvas_core.validation import IssueSeverity, validate_graph, validation_summary


def graph_of(node_ids, edges):
    return Graph(
        nodes=[GraphNode(id=i, label=i) for i in node_ids],
        edges=[GraphEdge(source=s, target=t) for s, t in edges],
    )


def test_clean_graph_is_valid():
    issues = validate_graph(graph_of(["a", "b"], [("a", "b")]))
    assert issues == []
    assert validation_summary(issues)["valid"]


def test_empty_graph_is_info():
    issues = validate_graph(Graph())
    assert [i.severity for i in issues] == [IssueSeverity.INFO]


def test_dangling_endpoint_is_error():
    issues = validate_graph(graph_of(["a"], [("a", "ghost")]))
    errors = [i for i in issues if i.severity == IssueSeverity.ERROR]
    assert len(errors) == 1
    assert "ghost" in errors[0].message
    assert errors[0].to_dict()["edge_index"] == 0


def test_duplicate_ids_are_errors():
    graph = Graph(nodes=[GraphNode(id="a", label="1"), GraphNode(id="a", label="2")])
    summary = validation_summary(validate_graph(graph))
    assert summary["errors"] == 1
    assert not summary["valid"]


def test_self_loop_parallel_and_orphans():
    issues = validate_graph(graph_of(["a", "b", "c"], [("a", "a"), ("a", "b"), ("a", "b")]))
    summary = validation_summary(issues)
    assert summary["warnings"] == 2  # self loop + orphan "c"
    assert summary["info"] == 1      # parallel a->b
    assert summary["valid"]


def test_edge_accepts_from_to():
    edge = GraphEdge.model_validate({"from": "a", "to": "b"})
    assert (edge.source, edge.target) == ("a", "b")
