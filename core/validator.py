from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Sequence

from loguru import logger

from core.catalog import DEFAULT_CATALOG, NodeCatalog, short_type_name
from core.graph import Graph

MIN_NAME_LENGTH = 3

RuleFunc = Callable[[Graph, NodeCatalog], List[str]]

_RULES: Dict[str, RuleFunc] = {}

RULE_GROUPS: Dict[str, Sequence[str]] = {
    "all": ("has-name", "has-nodes", "has-trigger", "unique-names", "dangling-connections"),
    "strict": (
        "has-name",
        "has-nodes",
        "has-trigger",
        "unique-names",
        "dangling-connections",
        "required-parameters",
        "known-node-types",
        "self-connections",
    ),
}


@dataclass
class ValidationResult:
    valid: bool
    issues: List[str] = field(default_factory=list)
    rule_results: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {"valid": self.valid, "issues": list(self.issues), "rules": dict(self.rule_results)}


def register_rule(name: str) -> Callable[[RuleFunc], RuleFunc]:
    def decorator(func: RuleFunc) -> RuleFunc:
        _RULES[name] = func
        return func

    return decorator


def available_rules() -> List[str]:
    return list(_RULES)


def resolve_rules(requested: Iterable[str]) -> List[str]:
    """Expand group names and drop names that match no rule."""
    resolved: List[str] = []
    for name in requested:
        for rule in RULE_GROUPS.get(name, (name,)):
            if rule in _RULES and rule not in resolved:
                resolved.append(rule)
    return resolved


def validate_graph(
    graph: Graph,
    rules: Iterable[str] = ("all",),
    catalog: NodeCatalog = DEFAULT_CATALOG,
) -> ValidationResult:
    """Run the requested rules against ``graph``.

    Every rule runs independently, so an empty graph still gets a verdict
    from each of them. Issues are prefixed with the rule name.
    """
    if isinstance(rules, str):
        rules = (rules,)

    issues: List[str] = []
    rule_results: Dict[str, List[str]] = {}
    for rule in resolve_rules(rules):
        found = _RULES[rule](graph, catalog)
        rule_results[rule] = found
        issues.extend(f"[{rule}] {message}" for message in found)

    result = ValidationResult(valid=not issues, issues=issues, rule_results=rule_results)
    logger.debug(
        "validated graph {}: {} rules, {} issues", graph.name, len(rule_results), len(issues)
    )
    return result


def _is_empty(value: object) -> bool:
    return value is None or value == "" or value == [] or value == {}


@register_rule("has-name")
def _has_name(graph: Graph, catalog: NodeCatalog) -> List[str]:
    if not graph.name or not graph.name.strip():
        return ["Workflow name is required"]
    if len(graph.name.strip()) < MIN_NAME_LENGTH:
        return [f"Workflow name must be at least {MIN_NAME_LENGTH} characters: {graph.name!r}"]
    return []


@register_rule("has-nodes")
def _has_nodes(graph: Graph, catalog: NodeCatalog) -> List[str]:
    if not graph.nodes:
        return ["Workflow must contain at least one node"]
    return []


def is_trigger_type(node_type: str, catalog: NodeCatalog) -> bool:
    definition = catalog.get(node_type)
    if definition is not None and definition.is_trigger:
        return True
    return "trigger" in node_type.lower() or short_type_name(node_type) == "start"


@register_rule("has-trigger")
def _has_trigger(graph: Graph, catalog: NodeCatalog) -> List[str]:
    if any(is_trigger_type(node.type, catalog) for node in graph.nodes):
        return []
    return ["Workflow must have at least one trigger node"]


@register_rule("unique-names")
def _unique_names(graph: Graph, catalog: NodeCatalog) -> List[str]:
    seen: Counter = Counter()
    issues: List[str] = []
    for node in graph.nodes:
        if seen[node.name]:
            issues.append(f"Duplicate node name: {node.name}")
        seen[node.name] += 1
    return issues


@register_rule("dangling-connections")
def _dangling_connections(graph: Graph, catalog: NodeCatalog) -> List[str]:
    known = {node.id for node in graph.nodes}
    issues: List[str] = []
    for conn in graph.connections:
        if conn.source_missing or conn.source not in known:
            issues.append(f"Connection source node does not exist: {conn.source}")
        if conn.target_missing or conn.target not in known:
            issues.append(
                f"Connection from {graph.source_name(conn)} targets missing node: {conn.target}"
            )
    return issues


@register_rule("required-parameters")
def _required_parameters(graph: Graph, catalog: NodeCatalog) -> List[str]:
    issues: List[str] = []
    for node in graph.nodes:
        definition = catalog.get(node.type)
        if definition is None:
            continue
        for parameter in definition.required_parameters:
            if _is_empty(node.parameters.get(parameter)):
                issues.append(f"Node {node.name} is missing required parameter: {parameter}")
    return issues


@register_rule("known-node-types")
def _known_node_types(graph: Graph, catalog: NodeCatalog) -> List[str]:
    return [
        f"Node {node.name} has unknown type: {node.type}"
        for node in graph.nodes
        if node.type not in catalog
    ]


@register_rule("self-connections")
def _self_connections(graph: Graph, catalog: NodeCatalog) -> List[str]:
    return [
        f"Node {graph.resolve_name(conn.source)} is connected to itself"
        for conn in graph.connections
        if conn.source == conn.target and not (conn.source_missing or conn.target_missing)
    ]


# Advisory checks; only run when requested by name.


@register_rule("error-handling")
def _error_handling(graph: Graph, catalog: NodeCatalog) -> List[str]:
    if graph.settings.get("errorWorkflow"):
        return []
    if any(short_type_name(node.type) in ("stopAndError", "errorTrigger") for node in graph.nodes):
        return []
    return ["Workflow lacks error handling mechanisms"]


@register_rule("generic-names")
def _generic_names(graph: Graph, catalog: NodeCatalog) -> List[str]:
    return [
        f"Generic node name detected: {node.name}"
        for node in graph.nodes
        if node.name == node.type or "Node" in node.name
    ]


@register_rule("credentials")
def _credentials(graph: Graph, catalog: NodeCatalog) -> List[str]:
    if any(node.credentials for node in graph.nodes):
        return ["Workflow uses credentials that should be verified"]
    return []
