"""Parametrized recipes that expand into complete workflow graphs.

Each template composes :class:`~core.builder.GraphAssembly` primitives. Every
parameter a template reads has a hard-coded fallback, so ``expand`` with an
empty parameter mapping always produces a complete graph. Templates do not
validate what they build.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from core.builder import LAYOUT_ORIGIN, LAYOUT_STEP, GraphAssembly
from core.catalog import DEFAULT_CATALOG, NodeCatalog
from core.errors import InputError, TemplateNotFound
from core.graph import Graph

FAN_OUT_STEP = 150

DEFAULT_SETTINGS = {"saveExecutionProgress": True, "saveManualExecutions": True}

TemplateFunc = Callable[[GraphAssembly, Mapping[str, Any]], None]


@dataclass(frozen=True)
class TemplateInfo:
    id: str
    name: str
    description: str
    categories: Tuple[str, ...]
    aliases: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    parameters: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "categories": list(self.categories),
            "aliases": list(self.aliases),
            "parameters": dict(self.parameters),
        }


_TEMPLATES: Dict[str, Tuple[TemplateInfo, TemplateFunc]] = {}
_ALIASES: Dict[str, str] = {}


def _template(info: TemplateInfo) -> Callable[[TemplateFunc], TemplateFunc]:
    def decorator(func: TemplateFunc) -> TemplateFunc:
        _TEMPLATES[info.id] = (info, func)
        for alias in info.aliases:
            _ALIASES[alias] = info.id
        return func

    return decorator


def canonical_template_id(template_id: str) -> str:
    """Map an alias to its canonical id; raise for unknown ids."""
    resolved = _ALIASES.get(template_id, template_id)
    if resolved not in _TEMPLATES:
        raise TemplateNotFound(template_id)
    return resolved


def _mapping(params: Mapping[str, Any], key: str, label: Optional[str] = None) -> Mapping[str, Any]:
    value = params.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InputError(f"{label or key} must be an object", field=label or key)
    return value


def _text(params: Mapping[str, Any], key: str, default: str, label: Optional[str] = None) -> str:
    value = params.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise InputError(f"{label or key} must be a string", field=label or key)
    return value


def _str_list(params: Mapping[str, Any], key: str, default: Sequence[str]) -> List[str]:
    """Read a list of strings; a missing or empty list means ``default``."""
    value = params.get(key)
    if value is None or (isinstance(value, list) and not value):
        return list(default)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InputError(f"{key} must be a list of strings", field=key)
    return value


def _column(x_offset: int) -> int:
    return LAYOUT_ORIGIN[0] + LAYOUT_STEP * x_offset


def _fan_out_positions(column: int, count: int) -> List[Tuple[int, int]]:
    y = LAYOUT_ORIGIN[1]
    return [(column, y + FAN_OUT_STEP * offset) for offset in range(count)]


@_template(
    TemplateInfo(
        id="http-fetch",
        name="API Request Workflow",
        description="Fetch data from an API and process the results",
        categories=("api", "data"),
        aliases=("api-request",),
        tags=("api", "template"),
        parameters={"apiUrl": "URL to request", "method": "HTTP method (default GET)"},
    )
)
def _http_fetch(draft: GraphAssembly, params: Mapping[str, Any]) -> None:
    start = draft.add("start")
    request = draft.add(
        "httpRequest",
        {
            "url": _text(params, "apiUrl", "https://api.example.com/data"),
            "method": _text(params, "method", "GET"),
        },
        name="API Request",
    )
    process = draft.add(
        "set",
        {"values": {"string": [{"name": "processedData", "value": "={{ $json }}"}]}},
        name="Process Data",
    )
    draft.chain([start, request, process])


@_template(
    TemplateInfo(
        id="scheduled-notification",
        name="Notification Workflow",
        description="Send notifications when specific events occur",
        categories=("notification", "alerts"),
        aliases=("notification",),
        tags=("notification", "template"),
        parameters={
            "trigger": "schedule or manual",
            "triggerConfig": "{schedule: CRON expression}",
            "notificationChannels": "list of email/slack",
            "notificationConfig": "per-channel settings ({email: {...}, slack: {...}})",
        },
    )
)
def _scheduled_notification(draft: GraphAssembly, params: Mapping[str, Any]) -> None:
    trigger_config = _mapping(params, "triggerConfig")
    config = _mapping(params, "notificationConfig")
    email_config = _mapping(config, "email", "notificationConfig.email")
    slack_config = _mapping(config, "slack", "notificationConfig.slack")

    if _text(params, "trigger", "schedule") == "manual":
        trigger = draft.add("manualTrigger")
    else:
        trigger = draft.add(
            "scheduleTrigger",
            {
                "interval": [
                    {
                        "field": "cronExpression",
                        "expression": _text(
                            trigger_config, "schedule", "0 9 * * *", "triggerConfig.schedule"
                        ),
                    }
                ]
            },
        )

    prepare = draft.add(
        "set",
        {
            "values": {
                "string": [
                    {"name": "notificationTitle", "value": _text(email_config, "subject", "Notification", "notificationConfig.email.subject")},
                    {
                        "name": "notificationBody",
                        "value": _text(
                            email_config,
                            "body",
                            "This is an automated notification from n8n.",
                            "notificationConfig.email.body",
                        ),
                    },
                    {"name": "timestamp", "value": "={{ $now }}"},
                ]
            }
        },
        name="Prepare Notification",
    )
    draft.connect(trigger, prepare)

    channels = [
        channel
        for channel in _str_list(params, "notificationChannels", ["email"])
        if channel in ("email", "slack")
    ]
    positions = _fan_out_positions(_column(2), len(channels))
    targets = []
    for channel, position in zip(channels, positions):
        if channel == "email":
            targets.append(
                draft.add(
                    "email",
                    {
                        "fromEmail": _text(
                            email_config, "from", "notifications@example.com", "notificationConfig.email.from"
                        ),
                        "toEmail": _text(email_config, "to", "user@example.com", "notificationConfig.email.to"),
                        "subject": "={{ $json.notificationTitle }}",
                        "text": "={{ $json.notificationBody }}",
                    },
                    name="Send Email",
                    position=position,
                )
            )
        else:
            targets.append(
                draft.add(
                    "slack",
                    {
                        "operation": "sendMessage",
                        "channel": _text(slack_config, "channel", "general", "notificationConfig.slack.channel"),
                        "text": '={{ $json.notificationTitle + "\\n\\n" + $json.notificationBody }}',
                    },
                    name="Send Slack Message",
                    position=position,
                )
            )
    draft.fan_out(prepare, targets)


_PLATFORM_NODES: Dict[str, Tuple[str, Dict[str, Any]]] = {
    "twitter": ("twitter", {"operation": "create", "text": "={{ $json.postContent }}"}),
    "x": ("twitter", {"operation": "create", "text": "={{ $json.postContent }}"}),
    "linkedin": ("linkedIn", {"operation": "create", "text": "={{ $json.postContent }}"}),
    "facebook": ("facebookGraphApi", {"operation": "create", "message": "={{ $json.postContent }}"}),
}


def platform_node(platform: str) -> Tuple[str, Dict[str, Any]]:
    """Node type and parameters used to post to ``platform``.

    Platforms without a dedicated node are reached through a generic HTTP
    request.
    """
    known = _PLATFORM_NODES.get(platform.lower())
    if known is not None:
        node_type, parameters = known
        return node_type, dict(parameters)
    return "httpRequest", {
        "url": f"https://api.example.com/{platform}/post",
        "method": "POST",
        "body": {"content": "={{ $json.postContent }}", "title": "={{ $json.postTitle }}"},
        "bodyContentType": "json",
    }


@_template(
    TemplateInfo(
        id="multi-platform-post",
        name="Social Media Posting",
        description="Post the same content to several social platforms in parallel",
        categories=("social-media", "publishing"),
        aliases=("social-media", "social-post"),
        tags=("social",),
        parameters={
            "platforms": "list of platforms (twitter, x, linkedin, facebook, other)",
            "contentSource": "manual or rss",
            "feedUrl": "RSS feed URL when contentSource is rss",
        },
    )
)
def _multi_platform_post(draft: GraphAssembly, params: Mapping[str, Any]) -> None:
    platforms = _str_list(params, "platforms", ["twitter"])
    start = draft.add("start")

    if _text(params, "contentSource", "manual") == "rss":
        source = draft.add(
            "rssFeedRead",
            {"url": _text(params, "feedUrl", "https://example.com/feed.xml")},
            name="Content Source",
        )
    else:
        source = draft.add(
            "set",
            {
                "values": {
                    "string": [
                        {"name": "postContent", "value": ""},
                        {"name": "postTitle", "value": ""},
                        {"name": "postImage", "value": ""},
                    ]
                }
            },
            name="Content Source",
        )
    draft.connect(start, source)

    positions = _fan_out_positions(_column(2), len(platforms))
    posts = []
    for platform, position in zip(platforms, positions):
        node_type, parameters = platform_node(platform)
        posts.append(
            draft.add(
                node_type,
                parameters,
                name=f"Post to {platform[:1].upper()}{platform[1:]}",
                position=position,
            )
        )
    draft.fan_out(source, posts)
    draft.tags.extend(platform for platform in platforms if platform not in draft.tags)


_FILTER_CODE = """// Keep only active items
return items.filter(item => item.json.status === 'active');"""

_MERGE_CODE = """// Stamp each item after combining
return items.map(item => ({
  json: { ...item.json, merged: true, timestamp: new Date().toISOString() },
}));"""


@_template(
    TemplateInfo(
        id="data-pipeline",
        name="Data Processing Pipeline",
        description="Multi-step data processing workflow with transformations",
        categories=("data", "processing"),
        aliases=("data-processing",),
        tags=("data", "template"),
        parameters={
            "sourceType": "http or googleSheets",
            "sourceConfig": "{url, method} or {sheetId, range}",
            "transformations": "ordered list of filter/format/merge",
        },
    )
)
def _data_pipeline(draft: GraphAssembly, params: Mapping[str, Any]) -> None:
    source_config = _mapping(params, "sourceConfig")
    nodes = [draft.add("start")]

    if _text(params, "sourceType", "http") == "googleSheets":
        nodes.append(
            draft.add(
                "googleSheets",
                {
                    "operation": "read",
                    "sheetId": _text(source_config, "sheetId", "", "sourceConfig.sheetId"),
                    "range": _text(source_config, "range", "A:Z", "sourceConfig.range"),
                },
                name="Google Sheets Source",
            )
        )
    else:
        nodes.append(
            draft.add(
                "httpRequest",
                {
                    "url": _text(source_config, "url", "https://api.example.com/data", "sourceConfig.url"),
                    "method": _text(source_config, "method", "GET", "sourceConfig.method"),
                },
                name="Data Source",
            )
        )

    for transformation in _str_list(params, "transformations", ["filter", "format"]):
        if transformation == "filter":
            nodes.append(draft.add("function", {"functionCode": _FILTER_CODE}, name="Filter Data"))
        elif transformation == "format":
            nodes.append(
                draft.add(
                    "set",
                    {"values": {"string": [{"name": "formattedData", "value": "={{ $json }}"}]}},
                    name="Format Data",
                )
            )
        elif transformation == "merge":
            nodes.append(draft.add("function", {"functionCode": _MERGE_CODE}, name="Transform Data"))
        else:
            logger.warning("data-pipeline: ignoring unknown transformation {}", transformation)
    draft.chain(nodes)


# KEYWORDS is replaced with a JSON array of the search keywords
_SOCIAL_DATA_CODE = """// Deduplicate and normalise results from all searches
const keywords = KEYWORDS;
const seen = new Set();
const results = [];

for (const item of items) {
  let id, content, source, url, date;
  if (item.json.id_str) {
    id = item.json.id_str;
    content = item.json.text || item.json.full_text || '';
    source = 'Twitter';
    url = `https://twitter.com/user/status/${id}`;
    date = item.json.created_at;
  } else if (item.json.id) {
    id = item.json.id;
    content = item.json.title || item.json.selftext || '';
    source = 'Reddit';
    url = item.json.url;
    date = new Date(item.json.created_utc * 1000).toISOString();
  }
  if (!id || seen.has(id)) continue;
  seen.add(id);
  results.push({
    id,
    content,
    source,
    url,
    date,
    keywords: keywords.filter(k => content.toLowerCase().includes(k.toLowerCase())),
  });
}

return results.map(r => ({ json: r }));"""


def social_data_code(keywords: Sequence[str]) -> str:
    return _SOCIAL_DATA_CODE.replace("KEYWORDS", json.dumps(list(keywords)), 1)



@_template(
    TemplateInfo(
        id="social-monitoring",
        name="Social Media Monitoring",
        description="Monitor social media platforms for keywords or topics",
        categories=("social-media", "monitoring"),
        aliases=("social-media-monitoring",),
        tags=("social", "monitoring"),
        parameters={
            "platforms": "list of twitter/reddit",
            "keywords": "keywords to search for",
            "schedule": "CRON expression (default every 2 hours)",
        },
    )
)
def _social_monitoring(draft: GraphAssembly, params: Mapping[str, Any]) -> None:
    keywords = _str_list(params, "keywords", ["n8n", "workflow automation"])
    query = " OR ".join(keywords)
    nodes = [
        draft.add(
            "scheduleTrigger",
            {
                "interval": [
                    {"field": "cronExpression", "expression": _text(params, "schedule", "0 */2 * * *")}
                ]
            },
        )
    ]

    for platform in _str_list(params, "platforms", ["twitter"]):
        if platform.lower() == "twitter":
            nodes.append(
                draft.add(
                    "twitter",
                    {
                        "operation": "search",
                        "searchText": query,
                        "options": {"limit": 10, "includeReplies": False},
                    },
                    name="Twitter Search",
                )
            )
        elif platform.lower() == "reddit":
            nodes.append(
                draft.add(
                    "reddit",
                    {
                        "operation": "search",
                        "subreddit": "all",
                        "options": {"limit": 10, "query": query},
                    },
                    name="Reddit Search",
                )
            )
        else:
            logger.warning("social-monitoring: no search node for platform {}", platform)

    nodes.append(
        draft.add(
            "function", {"functionCode": social_data_code(keywords)}, name="Process Social Data"
        )
    )
    draft.chain(nodes)


class TemplateExpander:
    """Expands template ids into graphs over an injected catalog."""

    def __init__(self, catalog: NodeCatalog = DEFAULT_CATALOG) -> None:
        self.catalog = catalog

    def list_templates(self, category: Optional[str] = None) -> List[TemplateInfo]:
        return [
            info
            for info, _ in _TEMPLATES.values()
            if category is None or category in info.categories
        ]

    def get(self, template_id: str) -> TemplateInfo:
        return _TEMPLATES[canonical_template_id(template_id)][0]

    def expand(
        self,
        template_id: str,
        name: str,
        description: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> Graph:
        """Build the graph for ``template_id``.

        Args:
            template_id: Canonical template id or one of its aliases
            name: Display name of the resulting graph
            description: Graph description; falls back to ``parameters["description"]``
                and then to the template's own description
            parameters: Template parameters, plus the general ``description``
                and ``tags`` keys

        Raises:
            TemplateNotFound: ``template_id`` names no template
            InputError: ``name`` is empty
        """
        info, build = _TEMPLATES[canonical_template_id(template_id)]
        if not name or not name.strip():
            raise InputError("Workflow name is required")
        params = dict(parameters or {})

        draft = GraphAssembly(
            name,
            description or _text(params, "description", info.description),
            catalog=self.catalog,
            settings=DEFAULT_SETTINGS,
            tags=_str_list(params, "tags", info.tags),
        )
        build(draft, params)
        graph = draft.build()
        logger.debug("expanded template {} into {} nodes", info.id, len(graph.nodes))
        return graph
