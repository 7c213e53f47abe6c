"""Conversion between :class:`~core.graph.Graph` and workflow JSON documents.

Two connection layouts are understood::

    # flat (default), one list per source node
    {"main": {"Start": {"main": [{"node": "HTTP Request", "type": "main", "index": 0}]}}}

    # native, one inner list per output port
    {"Start": {"main": [[{"node": "HTTP Request", "type": "main", "index": 0}]]}}

In the flat layout an entry that leaves an output port other than 0 carries
an extra ``"output"`` key.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from core.catalog import make_node_id
from core.errors import InputError
from core.graph import Connection, Graph, NodeInstance, canonical_connections

_NODE_FIELDS = ("id", "name", "type", "typeVersion", "position", "parameters", "credentials")


def node_to_json(node: NodeInstance) -> Dict[str, Any]:
    node_json: Dict[str, Any] = {
        "parameters": node.parameters,
        "id": node.id,
        "name": node.name,
        "type": node.type,
        "typeVersion": node.typeVersion,
        "position": list(node.position),
    }
    if node.credentials:
        node_json["credentials"] = node.credentials
    return node_json


def connections_to_json(graph: Graph, native: bool = False) -> Dict[str, Any]:
    if native:
        nested: Dict[str, Dict[str, List[List[Dict[str, Any]]]]] = {}
        for conn in graph.connections:
            entry = {"node": graph.target_name(conn), "type": conn.type, "index": conn.index}
            output_list = nested.setdefault(graph.source_name(conn), {}).setdefault(conn.type, [])
            while len(output_list) <= conn.output:
                output_list.append([])
            output_list[conn.output].append(entry)
        return nested

    flat: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
    for conn in graph.connections:
        entry = {"node": graph.target_name(conn), "type": conn.type, "index": conn.index}
        if conn.output:
            entry["output"] = conn.output
        flat.setdefault(graph.source_name(conn), {}).setdefault(conn.type, []).append(entry)
    return {"main": flat}


def to_document(graph: Graph, native_connections: bool = False) -> Dict[str, Any]:
    document: Dict[str, Any] = {
        "name": graph.name,
        "nodes": [node_to_json(node) for node in graph.nodes],
        "connections": connections_to_json(graph, native=native_connections),
        "active": graph.active,
        "settings": dict(graph.settings),
        "tags": list(graph.tags),
    }
    if graph.description is not None:
        document["description"] = graph.description
    return document


def _parse_nodes(raw_nodes: Iterable[Any]) -> List[NodeInstance]:
    nodes: List[NodeInstance] = []
    seen_ids = set()
    for ordinal, raw in enumerate(raw_nodes, start=1):
        if not isinstance(raw, Mapping):
            raise InputError("workflow.nodes entries must be objects")
        fields = {key: raw[key] for key in _NODE_FIELDS if raw.get(key) is not None}
        if not fields.get("id"):
            # documents assembled by hand often omit ids
            fields["id"] = make_node_id(str(fields.get("type", "node")), ordinal)
        if fields["id"] in seen_ids:
            fields["id"] = f"{fields['id']}_{ordinal}"
        seen_ids.add(fields["id"])
        nodes.append(NodeInstance(**fields))
    return nodes


def _is_flat_layout(raw: Mapping[str, Any]) -> bool:
    wrapped = raw.get("main")
    return (
        len(raw) == 1
        and isinstance(wrapped, Mapping)
        and all(isinstance(outputs, Mapping) for outputs in wrapped.values())
    )


def _iter_entries(outputs: Mapping[str, Any]) -> Iterable[Tuple[int, Mapping[str, Any]]]:
    for entries in outputs.values():
        if not isinstance(entries, list):
            raise InputError("connection outputs must be lists")
        if entries and all(isinstance(group, list) or group is None for group in entries):
            for port, group in enumerate(entries):
                for entry in group or []:
                    yield port, entry
        else:
            for entry in entries:
                if not isinstance(entry, Mapping):
                    raise InputError("connection entries must be objects")
                yield int(entry.get("output", 0)), entry


def _parse_connections(raw: Any, name_to_id: Mapping[str, str]) -> List[Connection]:
    if raw in (None, {}):
        return []
    if not isinstance(raw, Mapping):
        raise InputError("workflow.connections must be an object")

    sources = raw["main"] if _is_flat_layout(raw) else raw
    connections: List[Connection] = []
    for source_name, outputs in sources.items():
        if not isinstance(outputs, Mapping):
            raise InputError(f"connections for {source_name} must be an object")
        for port, entry in _iter_entries(outputs):
            target_name = entry.get("node")
            if not isinstance(target_name, str):
                raise InputError(f"connection from {source_name} is missing its target node")
            connections.append(
                Connection(
                    source=name_to_id.get(source_name, source_name),
                    target=name_to_id.get(target_name, target_name),
                    source_missing=source_name not in name_to_id,
                    target_missing=target_name not in name_to_id,
                    output=port,
                    index=int(entry.get("index", 0)),
                    type=str(entry.get("type", "main")),
                )
            )
    return connections


def from_document(document: Any) -> Graph:
    """Parse a workflow document (either connection layout) into a graph.

    Names in connections are mapped back to node ids; a name that matches no
    node is kept verbatim so validation can report it.
    """
    if not isinstance(document, Mapping):
        raise InputError("workflow must be an object")
    raw_nodes = document.get("nodes") or []
    if not isinstance(raw_nodes, list):
        raise InputError("workflow.nodes must be a list")

    try:
        nodes = _parse_nodes(raw_nodes)
        name_to_id: Dict[str, str] = {}
        for node in nodes:
            name_to_id.setdefault(node.name, node.id)
        connections = _parse_connections(document.get("connections"), name_to_id)
        graph = Graph(
            name=document.get("name") or "",
            description=document.get("description"),
            nodes=nodes,
            connections=canonical_connections(nodes, connections),
            active=bool(document.get("active", False)),
            settings=dict(document.get("settings") or {}),
            tags=_parse_tags(document.get("tags")),
        )
    except (ValidationError, TypeError, ValueError) as exc:
        raise InputError(f"invalid workflow document: {exc}") from exc

    logger.debug("parsed workflow document {} with {} nodes", graph.name, len(graph.nodes))
    return graph


def _parse_tags(raw: Optional[Iterable[Any]]) -> List[str]:
    # the remote API returns tags as objects ({"id", "name"})
    tags: List[str] = []
    for tag in raw or []:
        if isinstance(tag, Mapping):
            tags.append(str(tag.get("name", "")))
        else:
            tags.append(str(tag))
    return tags
