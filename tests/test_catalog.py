"""Tests for the node catalog."""
from __future__ import annotations

import pytest

from core.catalog import DEFAULT_CATALOG, NodeCatalog, NodeType, make_node_id
from core.errors import NodeTypeNotFound


def test_lookup_accepts_full_and_short_identifiers() -> None:
    assert DEFAULT_CATALOG.lookup("httpRequest") is DEFAULT_CATALOG.lookup(
        "n8n-nodes-base.httpRequest"
    )
    assert "start" in DEFAULT_CATALOG
    assert "n8n-nodes-base.if" in DEFAULT_CATALOG


def test_lookup_unknown_type_raises() -> None:
    with pytest.raises(NodeTypeNotFound) as exc_info:
        DEFAULT_CATALOG.lookup("doesNotExist")
    assert exc_info.value.node_type == "doesNotExist"
    assert DEFAULT_CATALOG.get("doesNotExist") is None
    assert DEFAULT_CATALOG.get("") is None


def test_port_arity() -> None:
    assert DEFAULT_CATALOG.lookup("if").outputs == 2
    assert DEFAULT_CATALOG.lookup("merge").inputs == 2
    assert DEFAULT_CATALOG.lookup("stopAndError").outputs == 0
    assert DEFAULT_CATALOG.lookup("start").is_trigger


def test_instantiate_merges_overrides_at_top_level() -> None:
    """Override wins per key; keys only in the defaults are kept."""
    node_type = NodeType(
        type="n8n-nodes-base.fake",
        default_name="Fake",
        category="action",
        default_parameters={"url": "", "method": "GET"},
    )
    node = NodeCatalog([node_type]).instantiate(node_type, "fake_1", (250, 300), {"method": "POST"})
    assert node.parameters == {"url": "", "method": "POST"}
    assert node.name == "Fake"
    assert node.position == (250, 300)


def test_instantiate_replaces_nested_objects_wholesale() -> None:
    http = DEFAULT_CATALOG.lookup("httpRequest")
    node = DEFAULT_CATALOG.instantiate(http, "httpRequest_1", (0, 0), {"options": {"timeout": 5}})
    assert node.parameters["options"] == {"timeout": 5}
    assert node.parameters["method"] == "GET"


def test_instantiate_does_not_share_defaults() -> None:
    set_type = DEFAULT_CATALOG.lookup("set")
    first = DEFAULT_CATALOG.instantiate(set_type, "set_1", (0, 0))
    first.parameters["values"]["string"].append({"name": "x", "value": "y"})
    second = DEFAULT_CATALOG.instantiate(set_type, "set_2", (0, 0))
    assert second.parameters["values"]["string"] == []


def test_instantiate_leaves_required_parameters_empty() -> None:
    webhook = DEFAULT_CATALOG.lookup("webhook")
    node = DEFAULT_CATALOG.instantiate(webhook, "webhook_1", (0, 0), name="Hook")
    assert node.parameters["path"] == ""
    assert node.name == "Hook"


def test_catalog_is_read_only() -> None:
    with pytest.raises(TypeError):
        DEFAULT_CATALOG._entries["n8n-nodes-base.x"] = DEFAULT_CATALOG.lookup("set")  # type: ignore[index]


def test_duplicate_types_rejected() -> None:
    start = DEFAULT_CATALOG.lookup("start")
    with pytest.raises(ValueError, match="duplicate"):
        NodeCatalog([start, start])


def test_subset_and_describe() -> None:
    reduced = DEFAULT_CATALOG.subset(["start", "set"])
    assert len(reduced) == 2
    assert "httpRequest" not in reduced

    triggers = DEFAULT_CATALOG.describe("trigger")
    assert {entry["type"] for entry in triggers} >= {
        "n8n-nodes-base.start",
        "n8n-nodes-base.scheduleTrigger",
    }
    assert all(entry["category"] == "trigger" for entry in triggers)


def test_make_node_id() -> None:
    assert make_node_id("n8n-nodes-base.httpRequest", 2) == "httpRequest_2"
    assert make_node_id("custom", 1) == "custom_1"
