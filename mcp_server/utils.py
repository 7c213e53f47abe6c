"""Shared utilities for the tool servers."""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Union

from client.n8n_client import N8nClient
from core.errors import InputError, ToolError, WorkflowNotFound

# HTTP status used by the FastAPI facade for each error kind
ERROR_STATUS = {
    "input_error": 400,
    "not_found": 404,
    "template_not_found": 404,
    "node_type_not_found": 404,
    "workflow_not_found": 404,
    "collaborator_failure": 502,
}


def workflow_id_or_raise(
    workflow: Dict[str, Any],
    raise_fn: Callable[[str], Exception] = ValueError,
) -> Union[str, int]:
    """Extract workflow ID from workflow dict with configurable error handling.

    Args:
        workflow: Workflow dict from the remote API
        raise_fn: Function to create exception with error message

    Returns:
        Workflow ID as string or int

    Raises:
        Exception created by raise_fn if ID is missing or invalid
    """
    identifier = workflow.get("id")
    if isinstance(identifier, (str, int)):
        return identifier
    raise raise_fn("workflow response missing id")


async def get_workflow_by_identifier(client: N8nClient, identifier: str) -> Dict[str, Any]:
    """Find workflow by ID or name.

    Raises:
        WorkflowNotFound: no workflow has that id or name
    """
    workflows = await client.list_workflows()
    workflow = next(
        (
            wf
            for wf in workflows
            if str(wf.get("id")) == identifier or wf.get("name") == identifier
        ),
        None,
    )
    if not workflow:
        raise WorkflowNotFound(identifier)
    return workflow


def _tag_names(workflow: Dict[str, Any]) -> List[str]:
    return [
        tag.get("name", "") if isinstance(tag, dict) else str(tag)
        for tag in workflow.get("tags") or []
    ]


def filter_workflows(
    workflows: List[Dict[str, Any]], filter_text: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Apply a list filter: ``active``, ``inactive``, ``tag:<text>`` or a name substring."""
    if not filter_text:
        return list(workflows)
    lowered = filter_text.lower()
    if lowered == "active":
        return [wf for wf in workflows if wf.get("active")]
    if lowered == "inactive":
        return [wf for wf in workflows if not wf.get("active")]
    if lowered.startswith("tag:"):
        tag = lowered[4:]
        return [
            wf for wf in workflows if any(tag in name.lower() for name in _tag_names(wf))
        ]
    return [wf for wf in workflows if lowered in str(wf.get("name", "")).lower()]


def summarize_workflow(workflow: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": workflow.get("id"),
        "name": workflow.get("name"),
        "active": bool(workflow.get("active")),
        "tags": _tag_names(workflow),
        "createdAt": workflow.get("createdAt"),
        "updatedAt": workflow.get("updatedAt"),
        "nodeCount": len(workflow.get("nodes") or []),
    }


def require_str(arguments: Dict[str, Any], key: str, label: Optional[str] = None) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InputError(f"{label or key} is required", field=key)
    return value


def optional_str(arguments: Dict[str, Any], key: str) -> Optional[str]:
    value = arguments.get(key)
    if value is not None and not isinstance(value, str):
        raise InputError(f"{key} must be a string if provided", field=key)
    return value


def optional_dict(arguments: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = arguments.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InputError(f"{key} must be an object", field=key)
    return value


def optional_str_list(arguments: Dict[str, Any], key: str) -> Optional[List[str]]:
    value = arguments.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InputError(f"{key} must be a list of strings", field=key)
    return value


def error_payload(exc: ToolError) -> Dict[str, Any]:
    return {"error": exc.to_payload()}


def status_for(payload: Dict[str, Any]) -> int:
    """HTTP status for a tool result; 200 unless it carries an error."""
    error = payload.get("error")
    if not error:
        return 200
    return ERROR_STATUS.get(error.get("type", ""), 500)
