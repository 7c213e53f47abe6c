"""Error taxonomy shared by the graph core and the tool surfaces."""
from __future__ import annotations

from typing import Any, Dict, Optional


class ToolError(Exception):
    """Base class for errors that are reported back to a tool caller."""

    kind = "error"

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message, "type": self.kind}
        if self.context:
            payload["details"] = self.context
        return payload


class InputError(ToolError):
    """A required input is missing, empty or of the wrong shape."""

    kind = "input_error"


class NotFoundError(ToolError):
    kind = "not_found"


class TemplateNotFound(NotFoundError):
    kind = "template_not_found"

    def __init__(self, template_id: str) -> None:
        super().__init__(f'Template with ID "{template_id}" not found', template_id=template_id)
        self.template_id = template_id


class NodeTypeNotFound(NotFoundError):
    kind = "node_type_not_found"

    def __init__(self, node_type: str) -> None:
        super().__init__(f"Unknown node type: {node_type}", node_type=node_type)
        self.node_type = node_type


class WorkflowNotFound(NotFoundError):
    kind = "workflow_not_found"

    def __init__(self, identifier: str) -> None:
        super().__init__(f"workflow {identifier} not found", identifier=identifier)
        self.identifier = identifier


class CollaboratorFailure(ToolError):
    """The remote workflow API failed; the message names the operation."""

    kind = "collaborator_failure"

    def __init__(self, operation: str, cause: Any, status_code: Optional[int] = None) -> None:
        context: Dict[str, Any] = {"operation": operation}
        if status_code is not None:
            context["status_code"] = status_code
        super().__init__(f"Failed to {operation}: {cause}", **context)
        self.operation = operation
        self.status_code = status_code
