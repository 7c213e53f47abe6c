from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NodeInstance(BaseModel):
    """A placed node. Immutable once built; use :meth:`renamed` to edit."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    type: str
    typeVersion: Union[int, float] = 1
    position: Tuple[int, int] = (0, 0)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    credentials: Optional[Dict[str, Any]] = None

    def renamed(self, name: str) -> "NodeInstance":
        return self.model_copy(update={"name": name})


class Connection(BaseModel):
    """Edge from ``source``'s output port to ``target``'s input port.

    Both ends are node ids. An end read from a document that names no node
    keeps the raw reference and is flagged missing, so the validator reports
    it even when the reference happens to equal some node id.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: str
    target: str
    output: int = 0
    index: int = 0
    type: str = "main"
    source_missing: bool = False
    target_missing: bool = False

    @field_validator("output", "index")
    @classmethod
    def validate_port(cls, value: int) -> int:
        if value < 0:
            raise ValueError("port index must be >= 0")
        return value


def canonical_connections(
    nodes: Iterable[NodeInstance], connections: Iterable[Connection]
) -> List[Connection]:
    """Order connections by source node, then output port.

    This is the order the wire codec emits and reads back, so graphs kept in
    canonical order survive a serialize/parse round trip unchanged. Sources
    that name no node sort last.
    """
    rank = {node.id: position for position, node in enumerate(nodes)}

    def key(conn: Connection) -> Tuple[int, int]:
        if conn.source_missing:
            return len(rank), conn.output
        return rank.get(conn.source, len(rank)), conn.output

    return sorted(connections, key=key)


class Graph(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    description: Optional[str] = None
    nodes: List[NodeInstance] = Field(default_factory=list)
    connections: List[Connection] = Field(default_factory=list)
    active: bool = False
    settings: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)

    def node_by_id(self, node_id: str) -> Optional[NodeInstance]:
        return next((node for node in self.nodes if node.id == node_id), None)

    def node_by_name(self, name: str) -> Optional[NodeInstance]:
        return next((node for node in self.nodes if node.name == name), None)

    def node_names(self) -> Set[str]:
        return {node.name for node in self.nodes}

    def resolve_name(self, ref: str) -> str:
        node = self.node_by_id(ref)
        return node.name if node is not None else ref

    def source_name(self, conn: Connection) -> str:
        return conn.source if conn.source_missing else self.resolve_name(conn.source)

    def target_name(self, conn: Connection) -> str:
        return conn.target if conn.target_missing else self.resolve_name(conn.target)

    def outgoing(self, node_id: str) -> Iterator[Connection]:
        return (conn for conn in self.connections if conn.source == node_id and not conn.source_missing)

    def connection_count(self) -> int:
        return len(self.connections)

    def replace_node(self, node: NodeInstance) -> None:
        """Swap in a rebuilt node with the same id; wiring is untouched."""
        for position, existing in enumerate(self.nodes):
            if existing.id == node.id:
                self.nodes[position] = node
                return
        raise KeyError(node.id)
