import pytest

from handoff.errors import AmbiguousRoutingError
from handoff.graph import GraphView
from handoff.routing import allowed_decisions, initial_edges, resolve_routes


def _graph(builder):
    return GraphView(builder.nodes.values(), builder.connections)


def test_approval_routes_by_decision(builder):
    builder.node("review", "approval")
    builder.node("done", "end")
    builder.node("fix", "role")
    builder.connect("review", "done", decision="approved")
    builder.connect("review", "fix", decision="rejected")
    graph = _graph(builder)
    review = graph.node("review")

    assert allowed_decisions(graph, review) == ["approved", "rejected"]
    routes = resolve_routes(graph, review, decision="rejected")
    assert [r.target.id for r in routes] == ["fix"]
    assert routes[0].decision == "rejected"
    with pytest.raises(AmbiguousRoutingError):
        resolve_routes(graph, review, decision="escalate")


def test_decision_read_from_edge_label_fields(builder):
    builder.node("review", "approval")
    builder.node("done", "end")
    builder.connect("review", "done", decision=None, condition_value="approved")
    graph = _graph(builder)
    assert allowed_decisions(graph, graph.node("review")) == ["approved"]


def test_duplicate_decision_is_ambiguous(builder):
    builder.node("review", "approval")
    builder.node("a", "end")
    builder.node("b", "end")
    builder.connect("review", "a", decision="approved")
    builder.connect("review", "b", decision="approved")
    graph = _graph(builder)
    with pytest.raises(AmbiguousRoutingError):
        resolve_routes(graph, graph.node("review"), decision="approved")


def test_approval_with_plain_edges_only_allows_approved(builder):
    builder.node("review", "approval")
    builder.node("done", "end")
    builder.connect("review", "done")
    graph = _graph(builder)
    review = graph.node("review")
    assert allowed_decisions(graph, review) == ["approved"]
    assert [e.to_node_id for e in initial_edges(graph, review, "approved")] == ["done"]
    with pytest.raises(AmbiguousRoutingError):
        initial_edges(graph, review, "rejected")


def test_plain_edges_fan_out(builder):
    builder.node("kickoff", "role")
    builder.node("legal", "approval")
    builder.node("finance", "approval")
    builder.connect("kickoff", "legal")
    builder.connect("kickoff", "finance")
    graph = _graph(builder)
    routes = resolve_routes(graph, graph.node("kickoff"))
    assert [r.target.id for r in routes] == ["legal", "finance"]


def test_end_node_has_no_routes_but_other_dead_ends_fail(builder):
    builder.node("done", "end")
    builder.node("stuck", "role")
    graph = _graph(builder)
    assert resolve_routes(graph, graph.node("done")) == []
    with pytest.raises(AmbiguousRoutingError):
        resolve_routes(graph, graph.node("stuck"))


def _conditional(builder):
    builder.node("intake", "form")
    builder.node("route", "conditional")
    builder.node("big", "approval")
    builder.node("small", "role")
    builder.connect("intake", "route")
    builder.connect(
        "route", "big",
        condition_type="greater_than", source_form_field_id="budget", value=1000,
    )
    builder.connect("route", "small")
    return _graph(builder)


def test_conditional_passes_through_to_matching_edge(builder):
    graph = _conditional(builder)
    routes = resolve_routes(graph, graph.node("intake"), form_data={"budget": 5000})
    assert routes[0].target.id == "big"
    assert [n.id for n in routes[0].via] == ["route"]
    assert routes[0].edge.from_node_id == "intake"


def test_conditional_falls_back_to_default_edge(builder):
    graph = _conditional(builder)
    routes = resolve_routes(graph, graph.node("intake"), form_data={"budget": 10})
    assert routes[0].target.id == "small"


def test_conditional_without_match_or_default(builder):
    builder.node("intake", "form")
    builder.node("route", "conditional")
    builder.node("big", "role")
    builder.connect("intake", "route")
    builder.connect(
        "route", "big", condition_type="equals", source_form_field_id="x", value="y"
    )
    graph = _graph(builder)
    with pytest.raises(AmbiguousRoutingError):
        resolve_routes(graph, graph.node("intake"), form_data={"x": "z"})


def test_conditional_loop_is_bounded(builder):
    builder.node("a", "role")
    builder.node("c1", "conditional")
    builder.node("c2", "conditional")
    builder.connect("a", "c1")
    builder.connect("c1", "c2")
    builder.connect("c2", "c1")
    graph = _graph(builder)
    with pytest.raises(AmbiguousRoutingError) as exc:
        resolve_routes(graph, graph.node("a"), max_hops=3)
    assert "3 hops" in exc.value.message


def test_sync_routes_by_aggregate(builder):
    builder.node("merge", "sync")
    builder.node("ship", "role")
    builder.node("rework", "role")
    builder.connect("merge", "ship", label="all_approved")
    builder.connect("merge", "rework", label="any_rejected")
    graph = _graph(builder)
    merge = graph.node("merge")
    assert [e.to_node_id for e in initial_edges(graph, merge, aggregate="all_approved")] == ["ship"]
    assert [e.to_node_id for e in initial_edges(graph, merge, aggregate="any_rejected")] == ["rework"]


def test_sync_without_labels_takes_plain_edges(builder):
    builder.node("merge", "sync")
    builder.node("ship", "role")
    builder.connect("merge", "ship")
    graph = _graph(builder)
    routes = resolve_routes(graph, graph.node("merge"), aggregate="no_approvals")
    assert [r.target.id for r in routes] == ["ship"]
