"""Keyword-driven workflow generation from a free-text description.

The generator infers a small set of operations from the description, picks a
template when one fits, and otherwise lays the implied node types out with
:class:`~core.builder.GraphBuilder`.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from loguru import logger

from core.builder import BuildContext, GraphBuilder
from core.catalog import DEFAULT_CATALOG, NodeCatalog, full_type_name, short_type_name
from core.errors import InputError
from core.graph import Graph, NodeInstance
from core.templates import TemplateExpander
from core.validator import ValidationResult, is_trigger_type, validate_graph

Complexity = Literal["simple", "medium", "complex"]

_OPERATION_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("fetch", ("fetch", "get", "retrieve", "download", "api")),
    ("notify", ("send", "email", "message", "notification")),
    ("process", ("filter", "process", "transform", "clean")),
    ("schedule", ("schedule", "recurring", "every day", "every hour", "weekly", "monthly")),
    ("condition", ("if", "condition", "when", "case")),
    ("store", ("store", "save", "database", "google sheets")),
)

_DATA_TYPE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("json", ("json", "api response")),
    ("tabular", ("csv", "excel", "spreadsheet")),
    ("text", ("text", "string")),
    ("image", ("image", "photo", "picture")),
    ("email", ("email",)),
)

_CRON_BY_SCHEDULE = {
    "hourly": "0 * * * *",
    "daily": "0 9 * * *",
    "weekly": "0 9 * * 1",
    "monthly": "0 9 1 * *",
}

_NAME_PATTERN = re.compile(r"workflow (?:to|that|which) ([\w\s]+)", re.IGNORECASE)
_API_URL_PATTERN = re.compile(r"api:?\s+([^\s,]+)", re.IGNORECASE)
_KEYWORDS_PATTERN = re.compile(r"keywords?:?\s+([^.]+)", re.IGNORECASE)

_PROCESS_CODE = """// Process the data from the previous node
return items.map(item => ({
  json: { ...item.json, processed: true, timestamp: new Date().toISOString() },
}));"""


@dataclass
class WorkflowRequirements:
    name: str
    description: str
    operations: List[str] = field(default_factory=list)
    data_types: List[str] = field(default_factory=list)
    conditional_logic: bool = False
    scheduling: Optional[str] = None
    template_id: Optional[str] = None
    complexity: Complexity = "simple"


@dataclass
class GeneratedWorkflow:
    graph: Graph
    validation: ValidationResult
    explanations: Dict[str, str]
    requirements: WorkflowRequirements
    setup_instructions: Optional[str] = None


def _mentions(text: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", text) is not None


def _matches_any(text: str, keywords: Iterable[str]) -> bool:
    return any(_mentions(text, keyword) for keyword in keywords)


def _schedule_of(text: str) -> str:
    if "every hour" in text or "hourly" in text:
        return "hourly"
    if "weekly" in text:
        return "weekly"
    if "monthly" in text:
        return "monthly"
    return "daily"


def parse_requirements(description: str) -> WorkflowRequirements:
    """Infer operations, data types, template and complexity from ``description``."""
    text = description.lower()
    requirements = WorkflowRequirements(name="Generated Workflow", description=description)

    match = _NAME_PATTERN.search(description)
    if match:
        phrase = match.group(1).strip()
        if phrase:
            requirements.name = phrase[:1].upper() + phrase[1:]

    for operation, keywords in _OPERATION_KEYWORDS:
        if _matches_any(text, keywords):
            requirements.operations.append(operation)
    if "schedule" in requirements.operations:
        requirements.scheduling = _schedule_of(text)
    requirements.conditional_logic = "condition" in requirements.operations

    requirements.data_types = [
        data_type for data_type, keywords in _DATA_TYPE_KEYWORDS if _matches_any(text, keywords)
    ]

    operations = requirements.operations
    if _mentions(text, "api") and "fetch" in operations:
        requirements.template_id = "http-fetch"
    elif "social media" in text or _mentions(text, "twitter") or _mentions(text, "reddit"):
        requirements.template_id = "social-monitoring"
    elif "notify" in operations:
        requirements.template_id = "scheduled-notification"
    elif "process" in operations or ("fetch" in operations and "store" in operations):
        requirements.template_id = "data-pipeline"

    if len(operations) >= 4 or (requirements.conditional_logic and len(operations) >= 3):
        requirements.complexity = "complex"
    elif len(operations) >= 2 or requirements.conditional_logic:
        requirements.complexity = "medium"
    return requirements


def determine_node_types(
    requirements: WorkflowRequirements, explicit: Sequence[str] = ()
) -> List[str]:
    text = requirements.description.lower()
    operations = requirements.operations
    node_types = [full_type_name("scheduleTrigger" if "schedule" in operations else "start")]

    if "fetch" in operations:
        node_types.append(full_type_name("httpRequest"))
    if "process" in operations:
        node_types.extend([full_type_name("function"), full_type_name("set")])
    if "notify" in operations:
        if "email" in text:
            node_types.append(full_type_name("email"))
        if "slack" in text:
            node_types.append(full_type_name("slack"))
    if requirements.conditional_logic:
        node_types.append(full_type_name("if"))
    if "store" in operations and "google sheet" in text:
        node_types.append(full_type_name("googleSheets"))

    for node_type in explicit:
        resolved = full_type_name(node_type)
        if resolved not in node_types:
            node_types.append(resolved)
    return node_types


def _api_request(description: str) -> Dict[str, str]:
    match = _API_URL_PATTERN.search(description)
    return {
        "url": match.group(1) if match else "https://api.example.com/data",
        "method": "POST" if _mentions(description.lower(), "post") else "GET",
    }


def _template_parameters(requirements: WorkflowRequirements) -> Dict[str, Any]:
    text = requirements.description.lower()
    template_id = requirements.template_id

    if template_id == "social-monitoring":
        match = _KEYWORDS_PATTERN.search(requirements.description)
        keywords = [k.strip() for k in match.group(1).split(",") if k.strip()] if match else []
        return {
            "platforms": [p for p in ("twitter", "reddit") if p in text],
            "keywords": keywords or ["automation", "workflow"],
        }
    if template_id == "http-fetch":
        request = _api_request(requirements.description)
        return {"apiUrl": request["url"], "method": request["method"]}
    if template_id == "scheduled-notification":
        params: Dict[str, Any] = {
            "trigger": "schedule" if "schedule" in requirements.operations else "manual",
            "notificationChannels": [c for c in ("email", "slack") if c in text],
        }
        if requirements.scheduling:
            params["triggerConfig"] = {"schedule": _CRON_BY_SCHEDULE[requirements.scheduling]}
        return params
    return {}


def explain_node(node: NodeInstance) -> str:
    kind = short_type_name(node.type)
    params = node.parameters
    prefix = f'Node "{node.name}" ({kind}): '

    if kind == "start":
        return prefix + "Starts the workflow execution manually."
    if kind == "scheduleTrigger":
        interval = params.get("interval") or [{}]
        return prefix + f"Triggers the workflow on schedule ({interval[0].get('expression', '0 * * * *')})."
    if kind == "httpRequest":
        return prefix + f"Makes a {params.get('method')} request to {params.get('url')}."
    if kind == "function":
        return prefix + "Processes data using custom JavaScript code."
    if kind == "if":
        return prefix + "Splits the workflow based on conditions."
    if kind == "set":
        return prefix + "Sets or modifies data values."
    if kind == "email":
        return prefix + f"Sends email to {params.get('toEmail')}."
    if kind == "slack":
        return prefix + f"Sends message to Slack channel {params.get('channel')}."
    if kind == "googleSheets":
        verb = "Reads data from" if params.get("operation") == "read" else "Writes data to"
        return prefix + f"{verb} Google Sheets."
    if kind == "twitter":
        return prefix + ("Searches for tweets." if params.get("operation") == "search" else "Posts to Twitter.")
    if kind == "reddit":
        return prefix + ("Searches Reddit." if params.get("operation") == "search" else "Interacts with Reddit.")
    return prefix + "Performs node-specific operations."


_CREDENTIAL_LABELS = {
    "email": "Email (SMTP)",
    "googleSheets": "Google Sheets",
    "slack": "Slack",
    "twitter": "Twitter",
    "reddit": "Reddit",
    "linkedIn": "LinkedIn",
    "facebookGraphApi": "Facebook",
}


def setup_instructions(graph: Graph, catalog: NodeCatalog = DEFAULT_CATALOG) -> str:
    lines = [f'## Setup Instructions for "{graph.name}"', ""]

    credentials: List[str] = []
    for node in graph.nodes:
        kind = short_type_name(node.type)
        if kind == "httpRequest" and node.parameters.get("authentication", "none") != "none":
            label = "HTTP Authentication"
        else:
            label = _CREDENTIAL_LABELS.get(kind, "")
        if label and label not in credentials:
            credentials.append(label)
    if credentials:
        lines += ["### Required Credentials", ""]
        lines += [f"- {label}" for label in credentials]
        lines += ["", "Please set up the above credentials in n8n before running the workflow.", ""]

    lines += ["### Usage Instructions", ""]
    trigger = next((node for node in graph.nodes if is_trigger_type(node.type, catalog)), None)
    if trigger is not None:
        kind = short_type_name(trigger.type)
        if kind == "scheduleTrigger":
            lines.append("1. This workflow will run automatically based on the configured schedule.")
            lines.append("2. You must activate the workflow to enable the schedule.")
        elif kind == "webhook":
            lines.append("1. This workflow runs when its webhook URL receives a request.")
            lines.append("2. You must activate the workflow to register the webhook.")
        else:
            lines.append("1. This workflow needs to be started manually from the n8n editor.")

    request = next((node for node in graph.nodes if short_type_name(node.type) == "httpRequest"), None)
    if request is not None:
        lines += ["", "### API Configuration", ""]
        lines.append(
            f"The workflow is configured to make {request.parameters.get('method')} requests to: "
            f"{request.parameters.get('url')}"
        )
        lines.append(
            "You may need to update this URL or add authentication depending on your API requirements."
        )
    return "\n".join(lines) + "\n"


class WorkflowGenerator:
    def __init__(
        self,
        catalog: NodeCatalog = DEFAULT_CATALOG,
        expander: Optional[TemplateExpander] = None,
        builder: Optional[GraphBuilder] = None,
        rules: Sequence[str] = ("all",),
    ) -> None:
        self.catalog = catalog
        self.expander = expander or TemplateExpander(catalog)
        self.builder = builder or GraphBuilder(catalog)
        self.rules = tuple(rules)

    def _build_context(self, requirements: WorkflowRequirements) -> BuildContext:
        cron = _CRON_BY_SCHEDULE.get(requirements.scheduling or "daily", "0 9 * * *")
        return BuildContext(
            name=requirements.name,
            description=requirements.description,
            node_parameters={
                "scheduleTrigger": {"interval": [{"field": "cronExpression", "expression": cron}]},
                "httpRequest": _api_request(requirements.description),
                "function": {"functionCode": _PROCESS_CODE},
            },
            node_names={
                "scheduleTrigger": "Schedule Trigger",
                "httpRequest": "API Request",
                "function": "Process Data",
            },
            settings={
                "executionOrder": "v1",
                "saveExecutionProgress": True,
                "saveManualExecutions": True,
            },
        )

    def generate(
        self,
        description: str,
        required_nodes: Optional[Sequence[str]] = None,
        complexity: Optional[Complexity] = None,
        include_credentials: bool = False,
    ) -> GeneratedWorkflow:
        if not description or not description.strip():
            raise InputError("Workflow description is required")

        requirements = parse_requirements(description)
        if complexity:
            requirements.complexity = complexity

        if requirements.template_id and not required_nodes:
            graph = self.expander.expand(
                requirements.template_id,
                requirements.name,
                requirements.description,
                _template_parameters(requirements),
            )
        else:
            node_types = determine_node_types(requirements, required_nodes or ())
            graph = self.builder.build_sequential(node_types, self._build_context(requirements))

        validation = validate_graph(graph, self.rules, self.catalog)
        logger.info(
            "generated workflow {} ({} nodes, template={}, valid={})",
            graph.name,
            len(graph.nodes),
            requirements.template_id,
            validation.valid,
        )
        return GeneratedWorkflow(
            graph=graph,
            validation=validation,
            explanations={node.name: explain_node(node) for node in graph.nodes},
            requirements=requirements,
            setup_instructions=setup_instructions(graph, self.catalog) if include_credentials else None,
        )
