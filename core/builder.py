from __future__ import annotations

from collections import defaultdict
from typing import Any, DefaultDict, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from core.catalog import DEFAULT_CATALOG, NodeCatalog, NodeType, full_type_name, make_node_id
from core.graph import Connection, Graph, NodeInstance, canonical_connections

LAYOUT_ORIGIN: Tuple[int, int] = (250, 300)
LAYOUT_STEP = 200


class BuildContext(BaseModel):
    """Caller-supplied context for :meth:`GraphBuilder.build_sequential`.

    ``parameters`` are applied to every node whose type declares the key among
    its defaults (``{"url": ...}`` reaches every HTTP Request node).
    ``node_parameters`` and ``node_names`` are keyed by node type, full or
    short identifier, and win over ``parameters``.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = "Generated Workflow"
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    node_parameters: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    node_names: Dict[str, str] = Field(default_factory=dict)
    settings: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)

    def overrides_for(self, node_type: NodeType) -> Dict[str, Any]:
        overrides = {
            key: value
            for key, value in self.parameters.items()
            if key in node_type.default_parameters
        }
        overrides.update(_keyed_by_type(self.node_parameters, node_type) or {})
        return overrides

    def name_for(self, node_type: NodeType) -> Optional[str]:
        return _keyed_by_type(self.node_names, node_type)


def _keyed_by_type(table: Mapping[str, Any], node_type: NodeType) -> Any:
    for key, value in table.items():
        if full_type_name(key) == node_type.type:
            return value
    return None


class GraphAssembly:
    """Mutable draft of a graph.

    Nodes are laid out left to right from :data:`LAYOUT_ORIGIN`; ids come from
    a per-type ordinal counter so they stay unique within the draft.
    """

    def __init__(
        self,
        name: str,
        description: Optional[str] = None,
        catalog: NodeCatalog = DEFAULT_CATALOG,
        settings: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
    ) -> None:
        self.name = name
        self.description = description
        self.catalog = catalog
        self.settings = dict(settings or {})
        self.tags = list(tags or [])
        self._nodes: List[NodeInstance] = []
        self._connections: List[Connection] = []
        self._ordinals: DefaultDict[str, int] = defaultdict(int)

    @property
    def nodes(self) -> List[NodeInstance]:
        return list(self._nodes)

    def next_position(self) -> Tuple[int, int]:
        x, y = LAYOUT_ORIGIN
        return x + LAYOUT_STEP * len(self._nodes), y

    def add(
        self,
        node_type: str,
        parameters: Optional[Mapping[str, Any]] = None,
        name: Optional[str] = None,
        position: Optional[Tuple[int, int]] = None,
        credentials: Optional[Mapping[str, Any]] = None,
    ) -> NodeInstance:
        definition = self.catalog.lookup(node_type)
        self._ordinals[definition.type] += 1
        node = self.catalog.instantiate(
            definition,
            make_node_id(definition.type, self._ordinals[definition.type]),
            position or self.next_position(),
            parameters,
            name,
            credentials,
        )
        self._nodes.append(node)
        return node

    def connect(
        self,
        source: NodeInstance,
        target: NodeInstance,
        output: int = 0,
        index: int = 0,
    ) -> Connection:
        connection = Connection(source=source.id, target=target.id, output=output, index=index)
        self._connections.append(connection)
        return connection

    def fan_out(self, source: NodeInstance, targets: Sequence[NodeInstance]) -> None:
        """Feed every target from ``source``'s first output."""
        for target in targets:
            self.connect(source, target)

    def chain(self, nodes: Sequence[NodeInstance]) -> None:
        """Wire ``nodes`` in sequence.

        A node whose type declares ``k >= 2`` outputs feeds the next ``k``
        nodes, output ``p`` going to the ``p``-th of them, and the walk resumes
        from the last node it consumed. When fewer than ``k`` nodes remain the
        spare outputs stay unconnected. Nodes without outputs end their run.
        """
        position = 0
        while position < len(nodes) - 1:
            current = nodes[position]
            outputs = self.catalog.lookup(current.type).outputs
            if outputs == 0:
                position += 1
                continue

            targets = nodes[position + 1 : position + 1 + max(outputs, 1)]
            for port, target in enumerate(targets):
                self.connect(current, target, output=port)
            position += len(targets)

    def build(self, active: bool = False) -> Graph:
        return Graph(
            name=self.name,
            description=self.description,
            nodes=list(self._nodes),
            connections=canonical_connections(self._nodes, self._connections),
            active=active,
            settings=dict(self.settings),
            tags=list(self.tags),
        )


class GraphBuilder:
    """Builds linear graphs from an ordered list of node type identifiers.

    With ``strict=False`` unknown identifiers are skipped (and logged); with
    ``strict=True`` they raise :class:`~core.errors.NodeTypeNotFound`.
    """

    def __init__(self, catalog: NodeCatalog = DEFAULT_CATALOG, strict: bool = False) -> None:
        self.catalog = catalog
        self.strict = strict

    def assembly(self, context: BuildContext) -> GraphAssembly:
        return GraphAssembly(
            context.name,
            context.description,
            catalog=self.catalog,
            settings=context.settings,
            tags=context.tags,
        )

    def build_sequential(
        self,
        node_types: Sequence[str],
        context: Optional[BuildContext] = None,
    ) -> Graph:
        context = context or BuildContext()
        draft = self.assembly(context)

        placed: List[NodeInstance] = []
        for identifier in node_types:
            definition = self.catalog.get(identifier)
            if definition is None:
                if self.strict:
                    self.catalog.lookup(identifier)
                logger.warning("skipping unknown node type {}", identifier)
                continue
            placed.append(
                draft.add(
                    definition.type,
                    parameters=context.overrides_for(definition),
                    name=context.name_for(definition),
                )
            )

        draft.chain(placed)
        graph = draft.build()
        logger.debug(
            "built graph {} with {} nodes and {} connections",
            graph.name,
            len(graph.nodes),
            graph.connection_count(),
        )
        return graph
