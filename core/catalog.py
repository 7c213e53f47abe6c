"""Static registry of the node types the builder knows how to place.

The catalog is an immutable mapping built once at import time. Builders,
validators and template expanders receive it as a constructor argument, so a
reduced catalog can be swapped in wherever a smaller registry is wanted.
"""
from __future__ import annotations

import copy
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from core.errors import NodeTypeNotFound
from core.graph import NodeInstance

NODE_TYPE_PREFIX = "n8n-nodes-base."

NodeCategory = Literal[
    "trigger",
    "action",
    "data",
    "flow",
    "helper",
    "communication",
    "services",
]


class NodeType(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str
    type_version: int = 1
    default_name: str
    description: str = ""
    category: NodeCategory
    default_parameters: Dict[str, Any] = Field(default_factory=dict)
    inputs: int = Field(default=1, ge=0)
    outputs: int = Field(default=1, ge=0, le=2)
    required_parameters: Tuple[str, ...] = ()
    parameter_descriptions: Dict[str, str] = Field(default_factory=dict)

    @property
    def short_name(self) -> str:
        return short_type_name(self.type)

    @property
    def is_trigger(self) -> bool:
        return self.category == "trigger"


def short_type_name(node_type: str) -> str:
    if node_type.startswith(NODE_TYPE_PREFIX):
        return node_type[len(NODE_TYPE_PREFIX):]
    return node_type


def full_type_name(identifier: str) -> str:
    """Expand a short identifier such as ``httpRequest`` to its full type."""
    if "." in identifier:
        return identifier
    return f"{NODE_TYPE_PREFIX}{identifier}"


def make_node_id(node_type: str, ordinal: int) -> str:
    return f"{short_type_name(node_type)}_{ordinal}"


class NodeCatalog:
    """Read-only lookup of :class:`NodeType` entries by identifier."""

    def __init__(self, node_types: Iterable[NodeType]) -> None:
        entries: Dict[str, NodeType] = {}
        for node_type in node_types:
            if node_type.type in entries:
                raise ValueError(f"duplicate node type in catalog: {node_type.type}")
            entries[node_type.type] = node_type
        self._entries: Mapping[str, NodeType] = MappingProxyType(entries)

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, str) and self.get(identifier) is not None

    def __iter__(self) -> Iterator[NodeType]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, identifier: str) -> Optional[NodeType]:
        if not identifier:
            return None
        return self._entries.get(full_type_name(identifier))

    def lookup(self, identifier: str) -> NodeType:
        node_type = self.get(identifier)
        if node_type is None:
            raise NodeTypeNotFound(identifier)
        return node_type

    def instantiate(
        self,
        node_type: NodeType,
        node_id: str,
        position: Tuple[int, int],
        parameters: Optional[Mapping[str, Any]] = None,
        name: Optional[str] = None,
        credentials: Optional[Mapping[str, Any]] = None,
    ) -> NodeInstance:
        """Create a node of ``node_type``.

        ``parameters`` are merged over the type's defaults at the top level
        only: an override replaces the whole value stored under its key.
        Required parameters are not checked here; that is a validator rule.
        """
        resolved = copy.deepcopy(dict(node_type.default_parameters))
        for key, value in (parameters or {}).items():
            resolved[key] = copy.deepcopy(value)

        return NodeInstance(
            id=node_id,
            name=name or node_type.default_name,
            type=node_type.type,
            typeVersion=node_type.type_version,
            position=position,
            parameters=resolved,
            credentials=dict(credentials) if credentials else None,
        )

    def subset(self, identifiers: Iterable[str]) -> "NodeCatalog":
        return NodeCatalog(self.lookup(identifier) for identifier in identifiers)

    def describe(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            {
                "type": node_type.type,
                "name": node_type.default_name,
                "description": node_type.description,
                "category": node_type.category,
                "inputs": node_type.inputs,
                "outputs": node_type.outputs,
                "requiredParameters": list(node_type.required_parameters),
                "parameters": node_type.parameter_descriptions,
            }
            for node_type in self
            if category is None or node_type.category == category
        ]


_OPTIONS_DESCRIPTION = "Additional options"

_NODE_TYPES = (
    # Triggers
    NodeType(
        type="n8n-nodes-base.start",
        default_name="Start",
        description="Start node that triggers a workflow execution",
        category="trigger",
        inputs=0,
    ),
    NodeType(
        type="n8n-nodes-base.manualTrigger",
        default_name="Manual Trigger",
        description="Trigger for manually starting a workflow",
        category="trigger",
        inputs=0,
    ),
    NodeType(
        type="n8n-nodes-base.scheduleTrigger",
        default_name="Schedule Trigger",
        description="Trigger workflows at specific times or intervals",
        category="trigger",
        inputs=0,
        default_parameters={
            "interval": [{"field": "cronExpression", "expression": "0 0 * * *"}],
        },
        required_parameters=("interval",),
        parameter_descriptions={"interval": "Schedule interval using CRON expression"},
    ),
    NodeType(
        type="n8n-nodes-base.webhook",
        default_name="Webhook",
        description="Receives data via webhook HTTP endpoint",
        category="trigger",
        inputs=0,
        default_parameters={"path": "", "httpMethod": "POST", "responseMode": "onReceived"},
        required_parameters=("path", "httpMethod"),
        parameter_descriptions={
            "path": "Webhook path appended to the instance webhook URL",
            "httpMethod": "HTTP method the webhook listens for",
        },
    ),
    # Actions and helpers
    NodeType(
        type="n8n-nodes-base.httpRequest",
        default_name="HTTP Request",
        description="Make HTTP requests to any API endpoint",
        category="action",
        default_parameters={"url": "", "method": "GET", "authentication": "none", "options": {}},
        required_parameters=("url", "method"),
        parameter_descriptions={
            "url": "The URL to make the request to",
            "method": "HTTP method to use (GET, POST, PUT, etc.)",
            "authentication": "Authentication method",
            "options": "Additional HTTP options (headers, query params, etc.)",
        },
    ),
    NodeType(
        type="n8n-nodes-base.set",
        default_name="Set",
        description="Set/add values to items and create new ones",
        category="data",
        default_parameters={"values": {"string": []}, "options": {}},
        parameter_descriptions={"values": "The values to set", "options": _OPTIONS_DESCRIPTION},
    ),
    NodeType(
        type="n8n-nodes-base.function",
        default_name="Function",
        description="Run custom JavaScript code",
        category="helper",
        default_parameters={"functionCode": "return items;"},
        required_parameters=("functionCode",),
        parameter_descriptions={"functionCode": "JavaScript code to execute for each item"},
    ),
    NodeType(
        type="n8n-nodes-base.if",
        default_name="IF",
        description="Split a workflow conditionally",
        category="flow",
        outputs=2,
        default_parameters={
            "conditions": {"string": [{"value1": "", "operation": "equal", "value2": ""}]},
        },
        required_parameters=("conditions",),
        parameter_descriptions={"conditions": "Conditions to evaluate"},
    ),
    NodeType(
        type="n8n-nodes-base.merge",
        type_version=2,
        default_name="Merge",
        description="Merge data of multiple streams",
        category="flow",
        inputs=2,
        default_parameters={"mode": "append"},
        parameter_descriptions={"mode": "How to merge the data (append, keepKeyMatches, etc.)"},
    ),
    NodeType(
        type="n8n-nodes-base.stopAndError",
        default_name="Stop and Error",
        description="Stop the execution and raise an error",
        category="flow",
        outputs=0,
        default_parameters={"errorMessage": ""},
        required_parameters=("errorMessage",),
        parameter_descriptions={"errorMessage": "Message of the raised error"},
    ),
    # Communication
    NodeType(
        type="n8n-nodes-base.email",
        default_name="Email",
        description="Send emails",
        category="communication",
        default_parameters={"fromEmail": "", "toEmail": "", "subject": "", "text": "", "options": {}},
        required_parameters=("fromEmail", "toEmail", "subject"),
        parameter_descriptions={
            "fromEmail": "Sender email address",
            "toEmail": "Recipient email address",
            "subject": "Email subject",
            "text": "Email body text",
            "options": "Additional email options",
        },
    ),
    NodeType(
        type="n8n-nodes-base.slack",
        default_name="Slack",
        description="Send messages to Slack",
        category="communication",
        default_parameters={"operation": "sendMessage", "channel": "", "text": "", "options": {}},
        required_parameters=("operation", "channel", "text"),
        parameter_descriptions={
            "operation": "Operation to perform (sendMessage, etc.)",
            "channel": "Channel to send message to",
            "text": "Message text",
            "options": _OPTIONS_DESCRIPTION,
        },
    ),
    # Services
    NodeType(
        type="n8n-nodes-base.googleSheets",
        default_name="Google Sheets",
        description="Read/write data to Google Sheets",
        category="services",
        default_parameters={"operation": "read", "sheetId": "", "range": "", "options": {}},
        required_parameters=("operation", "sheetId"),
        parameter_descriptions={
            "operation": "Operation to perform (read/write)",
            "sheetId": "ID of the Google Sheet",
            "range": "Cell range to read/write",
            "options": _OPTIONS_DESCRIPTION,
        },
    ),
    NodeType(
        type="n8n-nodes-base.twitter",
        default_name="Twitter",
        description="Post tweets, search tweets, etc.",
        category="services",
        default_parameters={"operation": "search", "searchText": "", "options": {}},
        required_parameters=("operation",),
        parameter_descriptions={
            "operation": "Operation to perform (search, post, etc.)",
            "searchText": "Text to search for",
            "options": _OPTIONS_DESCRIPTION,
        },
    ),
    NodeType(
        type="n8n-nodes-base.reddit",
        default_name="Reddit",
        description="Get data from Reddit",
        category="services",
        default_parameters={"operation": "search", "subreddit": "", "options": {}},
        required_parameters=("operation", "subreddit"),
        parameter_descriptions={
            "operation": "Operation to perform (search, get posts, etc.)",
            "subreddit": "Subreddit to search in",
            "options": _OPTIONS_DESCRIPTION,
        },
    ),
    NodeType(
        type="n8n-nodes-base.linkedIn",
        default_name="LinkedIn",
        description="Create posts on LinkedIn",
        category="services",
        default_parameters={"operation": "create", "text": ""},
        required_parameters=("operation", "text"),
        parameter_descriptions={"text": "Post text"},
    ),
    NodeType(
        type="n8n-nodes-base.facebookGraphApi",
        default_name="Facebook Graph API",
        description="Interact with the Facebook Graph API",
        category="services",
        default_parameters={"operation": "create", "message": ""},
        required_parameters=("operation", "message"),
        parameter_descriptions={"message": "Message to publish"},
    ),
    NodeType(
        type="n8n-nodes-base.rssFeedRead",
        default_name="RSS Read",
        description="Read items from an RSS feed",
        category="data",
        default_parameters={"url": ""},
        required_parameters=("url",),
        parameter_descriptions={"url": "URL of the RSS feed"},
    ),
)

DEFAULT_CATALOG = NodeCatalog(_NODE_TYPES)
