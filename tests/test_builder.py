from __future__ import annotations

import pytest

from core.builder import BuildContext, GraphAssembly, GraphBuilder
from core.catalog import DEFAULT_CATALOG
from core.errors import NodeTypeNotFound
from core.validator import validate_graph


def _edges(graph):
    return [
        (graph.resolve_name(c.source), c.output, graph.resolve_name(c.target), c.index)
        for c in graph.connections
    ]


def test_sequential_start_http_set() -> None:
    graph = GraphBuilder().build_sequential(
        ["start", "httpRequest", "set"],
        BuildContext(parameters={"url": "https://api.example.com/x"}),
    )

    assert [node.name for node in graph.nodes] == ["Start", "HTTP Request", "Set"]
    assert _edges(graph) == [
        ("Start", 0, "HTTP Request", 0),
        ("HTTP Request", 0, "Set", 0),
    ]
    assert graph.node_by_name("HTTP Request").parameters["url"] == "https://api.example.com/x"
    assert "url" not in graph.node_by_name("Set").parameters
    assert graph.active is False
    assert validate_graph(graph).valid


def test_layout_and_ids() -> None:
    graph = GraphBuilder().build_sequential(["start", "set", "set"])
    assert [node.position for node in graph.nodes] == [(250, 300), (450, 300), (650, 300)]
    assert [node.id for node in graph.nodes] == ["start_1", "set_1", "set_2"]


def test_linear_chain_has_len_minus_one_connections() -> None:
    types = ["manualTrigger", "httpRequest", "function", "set", "slack"]
    graph = GraphBuilder().build_sequential(types)
    assert graph.connection_count() == len(types) - 1


def test_unknown_types_are_skipped_in_permissive_mode() -> None:
    graph = GraphBuilder().build_sequential(["start", "bogus", "set"])
    assert [node.name for node in graph.nodes] == ["Start", "Set"]
    assert _edges(graph) == [("Start", 0, "Set", 0)]


def test_unknown_types_raise_in_strict_mode() -> None:
    with pytest.raises(NodeTypeNotFound):
        GraphBuilder(strict=True).build_sequential(["start", "bogus"])


def test_branch_node_consumes_next_two_nodes() -> None:
    graph = GraphBuilder().build_sequential(["start", "if", "slack", "email", "set"])

    branch = graph.node_by_name("IF")
    outgoing = sorted(graph.outgoing(branch.id), key=lambda c: c.output)
    assert [(c.output, graph.resolve_name(c.target), c.index) for c in outgoing] == [
        (0, "Slack", 0),
        (1, "Email", 0),
    ]
    # the walk resumes from the false branch
    assert ("Email", 0, "Set", 0) in _edges(graph)
    assert not any(edge[0] == "Slack" for edge in _edges(graph))


def test_branch_node_with_one_remaining_node() -> None:
    graph = GraphBuilder().build_sequential(["start", "if", "set"])
    branch = graph.node_by_name("IF")
    assert [(c.output, graph.resolve_name(c.target)) for c in graph.outgoing(branch.id)] == [
        (0, "Set")
    ]


def test_terminal_nodes_are_not_wired_forward() -> None:
    graph = GraphBuilder().build_sequential(["start", "stopAndError", "set"])
    assert _edges(graph) == [("Start", 0, "Stop and Error", 0)]


def test_context_overrides() -> None:
    context = BuildContext(
        name="Custom",
        description="desc",
        node_parameters={"n8n-nodes-base.httpRequest": {"method": "POST"}},
        node_names={"httpRequest": "Call API"},
        settings={"saveManualExecutions": True},
        tags=["demo"],
    )
    graph = GraphBuilder().build_sequential(["start", "httpRequest"], context)

    assert graph.name == "Custom"
    assert graph.description == "desc"
    assert graph.settings == {"saveManualExecutions": True}
    assert graph.tags == ["demo"]
    node = graph.node_by_name("Call API")
    assert node is not None
    assert node.parameters["method"] == "POST"


def test_reduced_catalog_is_honoured() -> None:
    builder = GraphBuilder(DEFAULT_CATALOG.subset(["start", "set"]))
    graph = builder.build_sequential(["start", "httpRequest", "set"])
    assert [node.name for node in graph.nodes] == ["Start", "Set"]


def test_assembly_fan_out_and_renaming_keeps_wiring() -> None:
    draft = GraphAssembly("Fan")
    source = draft.add("start")
    targets = [draft.add("slack"), draft.add("email")]
    draft.fan_out(source, targets)
    graph = draft.build()

    assert {graph.resolve_name(c.target) for c in graph.outgoing(source.id)} == {"Slack", "Email"}

    graph.replace_node(graph.node_by_name("Slack").renamed("Team Chat"))
    assert {graph.resolve_name(c.target) for c in graph.outgoing(source.id)} == {
        "Team Chat",
        "Email",
    }
