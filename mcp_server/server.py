from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from pydantic import ValidationError

from client.n8n_client import N8nClient
from core.builder import BuildContext, GraphBuilder
from core.catalog import DEFAULT_CATALOG
from core.config import Settings
from core.errors import CollaboratorFailure, InputError, NotFoundError, ToolError, WorkflowNotFound
from core.generator import WorkflowGenerator
from core.graph import Graph
from core.logging import audit_log, configure_logging
from core.serialization import from_document, to_document
from core.templates import TemplateExpander, canonical_template_id
from core.validator import validate_graph
from mcp_server.utils import (
    error_payload,
    filter_workflows,
    get_workflow_by_identifier,
    optional_dict,
    optional_str,
    optional_str_list,
    require_str,
    summarize_workflow,
    workflow_id_or_raise,
)


server = Server("n8n-workflow-toolkit")
_settings = Settings.load_from_env()
configure_logging(_settings.log_level, _settings.audit_log_path)
_catalog = DEFAULT_CATALOG
_builder = GraphBuilder(_catalog, strict=_settings.strict_node_types)
_expander = TemplateExpander(_catalog)
_generator = WorkflowGenerator(
    _catalog, _expander, _builder, rules=_settings.default_validation_rules
)

COMPLEXITY_LEVELS = ("simple", "medium", "complex")


@asynccontextmanager
async def _client() -> AsyncIterator[N8nClient]:
    client = N8nClient(_settings)
    try:
        yield client
    finally:
        await client.close()


async def _health_check(settings: Settings) -> Dict[str, Any]:
    async with _client() as client:
        info = await client.health()
        server_version = info.get("version") or info.get("data", {}).get("version")
        payload: Dict[str, Any] = {"ok": True, "server_version": server_version}
        if settings.n8n_version and server_version and settings.n8n_version != server_version:
            payload["warning"] = {
                "type": "version_mismatch",
                "configured": settings.n8n_version,
                "server": server_version,
            }
        return payload


def _document(graph: Graph) -> Dict[str, Any]:
    return to_document(graph, native_connections=_settings.native_connections)


def _checked(graph: Graph, rules: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Validate ``graph`` before it is sent anywhere; raise with the issues if it fails."""
    validation = validate_graph(graph, rules or _settings.default_validation_rules, _catalog)
    if not validation.valid:
        raise InputError("workflow failed validation", issues=validation.issues)
    return validation.to_dict()


async def _persist(graph: Graph, dry_run: bool = False) -> Dict[str, Any]:
    validation = _checked(graph)
    document = _document(graph)
    if dry_run:
        return {"dry_run": True, "workflow": document, "validation": validation}
    async with _client() as client:
        created = await client.create_workflow(document)
    return {"workflow": created, "validation": validation}


# Workflow management actions
async def list_workflows_action(filter_text: Optional[str] = None) -> Dict[str, Any]:
    async with _client() as client:
        workflows = await client.list_workflows()
    selected = [summarize_workflow(wf) for wf in filter_workflows(workflows, filter_text)]
    return {"workflows": selected, "count": len(selected), "totalCount": len(workflows)}


async def get_workflow_action(identifier: str) -> Dict[str, Any]:
    async with _client() as client:
        workflow = await get_workflow_by_identifier(client, identifier)
        full = await client.get_workflow(workflow_id_or_raise(workflow))
        return {"workflow": full}


async def create_workflow_action(
    name: str, description: Optional[str] = None, activate: bool = False
) -> Dict[str, Any]:
    graph = _builder.build_sequential(
        ["start"], BuildContext(name=name, description=description)
    )
    result = await _persist(graph)
    created = result["workflow"]
    if activate:
        async with _client() as client:
            created = await client.set_activation(workflow_id_or_raise(created), True)
    return {"workflow": created, "message": f'Workflow "{name}" created successfully'}


async def activate_workflow_action(identifier: str, active: bool = True) -> Dict[str, Any]:
    async with _client() as client:
        workflow = await get_workflow_by_identifier(client, identifier)
        response = await client.set_activation(workflow_id_or_raise(workflow), active)
    state = "activated" if active else "deactivated"
    return {
        "workflow": response,
        "message": f'Workflow "{workflow.get("name")}" {state} successfully',
    }


async def delete_workflow_action(identifier: str) -> Dict[str, Any]:
    name = "Workflow"
    workflow_id: Any = identifier
    async with _client() as client:
        # the lookup only improves the message
        try:
            workflow = await get_workflow_by_identifier(client, identifier)
            name = str(workflow.get("name") or name)
            workflow_id = workflow_id_or_raise(workflow)
        except (WorkflowNotFound, CollaboratorFailure) as exc:
            logger.warning("could not look up workflow {} before deletion: {}", identifier, exc)
        await client.delete_workflow(workflow_id)
    return {"id": workflow_id, "message": f'Workflow "{name}" deleted successfully'}


async def run_workflow_action(
    identifier: str, data: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    async with _client() as client:
        workflow = await get_workflow_by_identifier(client, identifier)
        workflow_id = workflow_id_or_raise(workflow)
        execution = await client.execute_workflow(workflow_id, data or {})
    return {
        "workflowId": workflow_id,
        "execution": execution,
        "message": f'Workflow "{workflow.get("name")}" started',
    }


async def get_execution_logs_action(
    identifier: str, execution_id: Optional[str] = None, limit: int = 10
) -> Dict[str, Any]:
    async with _client() as client:
        workflow = await get_workflow_by_identifier(client, identifier)
        workflow_id = workflow_id_or_raise(workflow)
        if execution_id:
            execution = await client.get_execution(execution_id)
            return {"workflowId": workflow_id, "execution": execution}
        executions = await client.list_executions(workflow_id, limit)
    return {"workflowId": workflow_id, "executions": executions, "count": len(executions)}


# Template and generation actions
async def list_templates_action(category: Optional[str] = None) -> Dict[str, Any]:
    templates = [info.to_dict() for info in _expander.list_templates(category)]
    return {"templates": templates, "count": len(templates)}


async def apply_template_action(
    template_id: str,
    name: str,
    parameters: Optional[Dict[str, Any]] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    graph = _expander.expand(template_id, name, parameters=parameters)
    result = await _persist(graph, dry_run=dry_run)
    result["template_id"] = canonical_template_id(template_id)
    result["message"] = f'Workflow "{name}" created from template "{template_id}"'
    return result


async def create_social_post_workflow_action(
    name: str,
    platforms: List[str],
    content_source: str = "manual",
    dry_run: bool = False,
) -> Dict[str, Any]:
    if not platforms:
        raise InputError("At least one social media platform is required", field="platforms")
    joined = ", ".join(platforms)
    graph = _expander.expand(
        "multi-platform-post",
        name,
        description=f"Social media posting workflow for {joined}",
        parameters={"platforms": platforms, "contentSource": content_source},
    )
    result = await _persist(graph, dry_run=dry_run)
    result["message"] = f"Social media posting workflow for {joined} created successfully"
    return result


async def generate_workflow_action(
    description: str,
    required_nodes: Optional[List[str]] = None,
    complexity: Optional[str] = None,
    include_credentials: bool = False,
) -> Dict[str, Any]:
    generated = _generator.generate(
        description,
        required_nodes=required_nodes,
        complexity=complexity,  # type: ignore[arg-type]
        include_credentials=include_credentials,
    )
    return {
        "workflow": _document(generated.graph),
        "explanations": generated.explanations,
        "setupInstructions": generated.setup_instructions,
        "validation": generated.validation.to_dict(),
        "template_id": generated.requirements.template_id,
        "complexity": generated.requirements.complexity,
    }


async def build_workflow_action(
    node_types: List[str],
    context: BuildContext,
    strict: Optional[bool] = None,
    rules: Optional[List[str]] = None,
) -> Dict[str, Any]:
    builder = _builder if strict is None else GraphBuilder(_catalog, strict=strict)
    graph = builder.build_sequential(node_types, context)
    validation = validate_graph(graph, rules or _settings.default_validation_rules, _catalog)
    return {"workflow": _document(graph), "validation": validation.to_dict()}


async def validate_workflow_action(
    workflow: Optional[Dict[str, Any]] = None,
    identifier: Optional[str] = None,
    rules: Optional[List[str]] = None,
) -> Dict[str, Any]:
    if workflow is None:
        if not identifier:
            raise InputError("either workflow or workflow_id is required")
        async with _client() as client:
            summary = await get_workflow_by_identifier(client, identifier)
            workflow = await client.get_workflow(workflow_id_or_raise(summary))
    graph = from_document(workflow)
    validation = validate_graph(graph, rules or _settings.default_validation_rules, _catalog)
    result = validation.to_dict()
    result["workflowName"] = graph.name
    return result


async def list_node_types_action(category: Optional[str] = None) -> Dict[str, Any]:
    node_types = _catalog.describe(category)
    return {"nodeTypes": node_types, "count": len(node_types)}


# Tool registry
ToolHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]
_tool_registry: Dict[str, Tuple[ToolHandler, Dict[str, Any], str, bool]] = {}


def register_tool(
    name: str, description: str, input_schema: Dict[str, Any], mutating: bool = False
) -> Callable[[ToolHandler], ToolHandler]:
    def decorator(func: ToolHandler) -> ToolHandler:
        _tool_registry[name] = (func, input_schema, description, mutating)
        return func

    return decorator


def _text_payload(payload: Dict[str, Any]) -> List[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, default=str))]


def list_tool_specs() -> List[Dict[str, Any]]:
    return [
        {"name": name, "description": desc, "inputSchema": schema}
        for name, (_, schema, desc, _) in _tool_registry.items()
    ]


async def dispatch(name: str, arguments: Optional[Dict[str, Any]], actor: str = "mcp") -> Dict[str, Any]:
    """Run tool ``name``; the result is ``{"data": ...}`` or ``{"error": {...}}``."""
    if name not in _tool_registry:
        return error_payload(NotFoundError(f"Unknown tool: {name}", tool=name))
    handler, _, _, mutating = _tool_registry[name]
    arguments = arguments or {}
    try:
        result = await handler(arguments)
    except ToolError as exc:
        logger.warning("tool {} failed: {}", name, exc.message)
        if mutating:
            audit_log(name, actor=actor, details={"arguments": arguments, "error": exc.message}, status="error")
        return error_payload(exc)

    if mutating and not result["data"].get("dry_run"):
        workflow = result["data"].get("workflow") or {}
        audit_log(
            name,
            actor=actor,
            details={"arguments": arguments, "id": workflow.get("id") or result["data"].get("id")},
        )
    return result


def _flag(arguments: Dict[str, Any], key: str, default: bool = False) -> bool:
    value = arguments.get(key, default)
    if not isinstance(value, bool):
        raise InputError(f"{key} must be a boolean", field=key)
    return value


@register_tool(
    "list_workflows",
    "List workflows. filter: 'active', 'inactive', 'tag:<name>' or a name substring.",
    {"type": "object", "properties": {"filter": {"type": "string"}}},
)
async def list_workflows_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {"data": await list_workflows_action(optional_str(arguments, "filter"))}


@register_tool(
    "get_workflow",
    "Get a workflow by id or name.",
    {
        "type": "object",
        "properties": {"workflow_id": {"type": "string"}},
        "required": ["workflow_id"],
    },
)
async def get_workflow_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    identifier = require_str(arguments, "workflow_id", "Workflow ID")
    return {"data": await get_workflow_action(identifier)}


@register_tool(
    "create_workflow",
    "Create an empty workflow containing only a Start node.",
    {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "description": {"type": "string"},
            "activate": {"type": "boolean"},
        },
        "required": ["name"],
    },
    mutating=True,
)
async def create_workflow_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    name = require_str(arguments, "name", "Workflow name")
    description = optional_str(arguments, "description")
    return {
        "data": await create_workflow_action(name, description, _flag(arguments, "activate"))
    }


@register_tool(
    "activate_workflow",
    "Activate or deactivate a workflow by id or name.",
    {
        "type": "object",
        "properties": {
            "workflow_id": {"type": "string"},
            "active": {"type": "boolean"},
        },
        "required": ["workflow_id"],
    },
    mutating=True,
)
async def activate_workflow_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    identifier = require_str(arguments, "workflow_id", "Workflow ID")
    active = _flag(arguments, "active", default=True)
    return {"data": await activate_workflow_action(identifier, active)}


@register_tool(
    "delete_workflow",
    "Delete a workflow by id or name.",
    {
        "type": "object",
        "properties": {"workflow_id": {"type": "string"}},
        "required": ["workflow_id"],
    },
    mutating=True,
)
async def delete_workflow_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    identifier = require_str(arguments, "workflow_id", "Workflow ID")
    return {"data": await delete_workflow_action(identifier)}


@register_tool(
    "run_workflow",
    "Execute a workflow with optional input data.",
    {
        "type": "object",
        "properties": {
            "workflow_id": {"type": "string"},
            "data": {"type": "object"},
        },
        "required": ["workflow_id"],
    },
    mutating=True,
)
async def run_workflow_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    identifier = require_str(arguments, "workflow_id", "Workflow ID")
    return {"data": await run_workflow_action(identifier, optional_dict(arguments, "data"))}


@register_tool(
    "get_execution_logs",
    "Get recent executions of a workflow, or one execution by id.",
    {
        "type": "object",
        "properties": {
            "workflow_id": {"type": "string"},
            "execution_id": {"type": "string"},
            "limit": {"type": "integer", "minimum": 1, "default": 10},
        },
        "required": ["workflow_id"],
    },
)
async def get_execution_logs_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    identifier = require_str(arguments, "workflow_id", "Workflow ID")
    execution_id = optional_str(arguments, "execution_id")
    limit = arguments.get("limit", 10)
    if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
        raise InputError("limit must be a positive integer", field="limit")
    return {"data": await get_execution_logs_action(identifier, execution_id, limit)}


@register_tool(
    "list_templates",
    "List the workflow templates, optionally by category.",
    {"type": "object", "properties": {"category": {"type": "string"}}},
)
async def list_templates_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {"data": await list_templates_action(optional_str(arguments, "category"))}


@register_tool(
    "apply_template",
    "Create a workflow from a template. Set dry_run to get the document without creating it.",
    {
        "type": "object",
        "properties": {
            "template_id": {"type": "string"},
            "name": {"type": "string"},
            "parameters": {"type": "object"},
            "dry_run": {"type": "boolean"},
        },
        "required": ["template_id", "name"],
    },
    mutating=True,
)
async def apply_template_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    template_id = require_str(arguments, "template_id", "Template ID")
    name = require_str(arguments, "name", "Workflow name")
    return {
        "data": await apply_template_action(
            template_id,
            name,
            optional_dict(arguments, "parameters"),
            _flag(arguments, "dry_run"),
        )
    }


@register_tool(
    "create_social_post_workflow",
    "Create a workflow that posts one piece of content to several social platforms.",
    {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "platforms": {"type": "array", "items": {"type": "string"}},
            "content_source": {"type": "string", "enum": ["manual", "rss"]},
            "dry_run": {"type": "boolean"},
        },
        "required": ["name", "platforms"],
    },
    mutating=True,
)
async def create_social_post_workflow_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    name = require_str(arguments, "name", "Workflow name")
    platforms = optional_str_list(arguments, "platforms") or []
    content_source = optional_str(arguments, "content_source") or "manual"
    return {
        "data": await create_social_post_workflow_action(
            name, platforms, content_source, _flag(arguments, "dry_run")
        )
    }


@register_tool(
    "generate_workflow",
    "Generate a workflow document from a natural-language description.",
    {
        "type": "object",
        "properties": {
            "description": {"type": "string"},
            "required_nodes": {"type": "array", "items": {"type": "string"}},
            "complexity": {"type": "string", "enum": list(COMPLEXITY_LEVELS)},
            "include_credentials": {"type": "boolean"},
        },
        "required": ["description"],
    },
)
async def generate_workflow_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    description = require_str(arguments, "description", "Workflow description")
    complexity = optional_str(arguments, "complexity")
    if complexity is not None and complexity not in COMPLEXITY_LEVELS:
        raise InputError(f"complexity must be one of {', '.join(COMPLEXITY_LEVELS)}", field="complexity")
    return {
        "data": await generate_workflow_action(
            description,
            optional_str_list(arguments, "required_nodes"),
            complexity,
            _flag(arguments, "include_credentials"),
        )
    }


@register_tool(
    "build_workflow",
    "Build a linear workflow from an ordered list of node types and validate it.",
    {
        "type": "object",
        "properties": {
            "node_types": {"type": "array", "items": {"type": "string"}},
            "name": {"type": "string"},
            "description": {"type": "string"},
            "parameters": {"type": "object"},
            "node_parameters": {"type": "object"},
            "node_names": {"type": "object"},
            "strict": {"type": "boolean"},
            "rules": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["node_types"],
    },
)
async def build_workflow_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    node_types = optional_str_list(arguments, "node_types")
    if not node_types:
        raise InputError("node_types must be a non-empty list", field="node_types")
    strict = arguments.get("strict")
    if strict is not None and not isinstance(strict, bool):
        raise InputError("strict must be a boolean", field="strict")
    try:
        context = BuildContext(
            name=optional_str(arguments, "name") or "Generated Workflow",
            description=optional_str(arguments, "description"),
            parameters=optional_dict(arguments, "parameters"),
            node_parameters=optional_dict(arguments, "node_parameters"),
            node_names=optional_dict(arguments, "node_names"),
        )
    except ValidationError as exc:
        raise InputError(f"invalid build context: {exc}") from exc
    rules = optional_str_list(arguments, "rules")
    return {"data": await build_workflow_action(node_types, context, strict, rules)}


@register_tool(
    "validate_workflow",
    "Validate a workflow document, or a stored workflow by id, against named rules.",
    {
        "type": "object",
        "properties": {
            "workflow": {"type": "object"},
            "workflow_id": {"type": "string"},
            "rules": {"type": "array", "items": {"type": "string"}},
        },
    },
)
async def validate_workflow_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    workflow = arguments.get("workflow")
    if workflow is not None and not isinstance(workflow, dict):
        raise InputError("workflow must be an object", field="workflow")
    return {
        "data": await validate_workflow_action(
            workflow,
            optional_str(arguments, "workflow_id"),
            optional_str_list(arguments, "rules"),
        )
    }


@register_tool(
    "list_node_types",
    "List the node types the builder can place, optionally by category.",
    {"type": "object", "properties": {"category": {"type": "string"}}},
)
async def list_node_types_tool(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {"data": await list_node_types_action(optional_str(arguments, "category"))}


# mypy struggles with dynamic decorator types exposed by the MCP library.
@server.list_tools()  # type: ignore[misc,no-untyped-call]
async def _list_tools() -> List[Tool]:
    return [
        Tool(name=spec["name"], description=spec["description"], inputSchema=spec["inputSchema"])
        for spec in list_tool_specs()
    ]


@server.call_tool()  # type: ignore[misc,no-untyped-call]
async def _call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
    return _text_payload(await dispatch(name, arguments, actor="mcp"))


def main() -> None:
    async def runner() -> None:
        try:
            health = await _health_check(_settings)
        except CollaboratorFailure as e:
            raise SystemExit(f"n8n health check failed: {e}")
        if "warning" in health:
            logger.warning("n8n version mismatch: {}", health["warning"])

        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )

    asyncio.run(runner())


if __name__ == "__main__":
    main()
