from __future__ import annotations

import pytest

from core.errors import InputError, TemplateNotFound
from core.templates import TemplateExpander, canonical_template_id
from core.validator import validate_graph

expander = TemplateExpander()


def _targets(graph, source_name):
    source = graph.node_by_name(source_name)
    return [graph.resolve_name(c.target) for c in graph.outgoing(source.id)]


def test_unknown_template_raises() -> None:
    with pytest.raises(TemplateNotFound) as exc_info:
        expander.expand("unknown-template-id", "X", "d", {})
    assert str(exc_info.value) == 'Template with ID "unknown-template-id" not found'
    assert exc_info.value.to_payload()["type"] == "template_not_found"


def test_empty_name_is_an_input_error() -> None:
    with pytest.raises(InputError):
        expander.expand("http-fetch", "  ")


@pytest.mark.parametrize("info", expander.list_templates(), ids=lambda info: info.id)
def test_templates_pass_strict_validation_with_defaults(info) -> None:
    graph = expander.expand(info.id, "Template check")
    result = validate_graph(graph, ["strict"])
    assert result.issues == []


@pytest.mark.parametrize(
    "alias, canonical",
    [
        ("api-request", "http-fetch"),
        ("notification", "scheduled-notification"),
        ("social-media", "multi-platform-post"),
        ("social-post", "multi-platform-post"),
        ("data-processing", "data-pipeline"),
        ("social-media-monitoring", "social-monitoring"),
        ("http-fetch", "http-fetch"),
    ],
)
def test_aliases(alias: str, canonical: str) -> None:
    assert canonical_template_id(alias) == canonical


def test_http_fetch() -> None:
    graph = expander.expand(
        "http-fetch", "Users", parameters={"apiUrl": "https://api.example.com/users", "method": "POST"}
    )
    assert [node.name for node in graph.nodes] == ["Start", "API Request", "Process Data"]
    assert [node.position for node in graph.nodes] == [(250, 300), (450, 300), (650, 300)]
    request = graph.node_by_name("API Request").parameters
    assert request["url"] == "https://api.example.com/users"
    assert request["method"] == "POST"
    assert _targets(graph, "Start") == ["API Request"]
    assert _targets(graph, "API Request") == ["Process Data"]
    assert graph.settings["saveExecutionProgress"] is True
    assert graph.active is False


def test_scheduled_notification_fans_out() -> None:
    graph = expander.expand(
        "scheduled-notification",
        "Daily digest",
        parameters={
            "triggerConfig": {"schedule": "0 7 * * *"},
            "notificationChannels": ["email", "slack"],
            "notificationConfig": {"slack": {"channel": "#digest"}},
        },
    )
    trigger = graph.node_by_name("Schedule Trigger")
    assert trigger.parameters["interval"][0]["expression"] == "0 7 * * *"
    assert _targets(graph, "Prepare Notification") == ["Send Email", "Send Slack Message"]
    assert graph.node_by_name("Send Email").position == (650, 300)
    assert graph.node_by_name("Send Slack Message").position == (650, 450)
    assert graph.node_by_name("Send Slack Message").parameters["channel"] == "#digest"


def test_scheduled_notification_manual_trigger() -> None:
    graph = expander.expand("notification", "Manual ping", parameters={"trigger": "manual"})
    assert graph.nodes[0].type == "n8n-nodes-base.manualTrigger"
    assert _targets(graph, "Prepare Notification") == ["Send Email"]


def test_multi_platform_post() -> None:
    graph = expander.expand(
        "multi-platform-post",
        "Launch",
        parameters={"platforms": ["twitter", "linkedin", "facebook", "mastodon"]},
    )
    assert _targets(graph, "Start") == ["Content Source"]
    assert _targets(graph, "Content Source") == [
        "Post to Twitter",
        "Post to Linkedin",
        "Post to Facebook",
        "Post to Mastodon",
    ]
    assert graph.node_by_name("Post to Linkedin").type == "n8n-nodes-base.linkedIn"
    assert graph.node_by_name("Post to Facebook").type == "n8n-nodes-base.facebookGraphApi"
    mastodon = graph.node_by_name("Post to Mastodon")
    assert mastodon.type == "n8n-nodes-base.httpRequest"
    assert mastodon.parameters["url"] == "https://api.example.com/mastodon/post"
    assert graph.tags == ["social", "twitter", "linkedin", "facebook", "mastodon"]


def test_multi_platform_post_from_rss() -> None:
    graph = expander.expand("social-post", "Feed", parameters={"contentSource": "rss", "platforms": ["x"]})
    assert graph.node_by_name("Content Source").type == "n8n-nodes-base.rssFeedRead"
    assert graph.node_by_name("Post to X").type == "n8n-nodes-base.twitter"


def test_data_pipeline_chains_transformations() -> None:
    graph = expander.expand(
        "data-pipeline",
        "Pipeline",
        parameters={
            "sourceType": "googleSheets",
            "sourceConfig": {"sheetId": "abc"},
            "transformations": ["filter", "format", "merge", "unknown"],
        },
    )
    assert [node.name for node in graph.nodes] == [
        "Start",
        "Google Sheets Source",
        "Filter Data",
        "Format Data",
        "Transform Data",
    ]
    assert graph.connection_count() == 4
    assert graph.node_by_name("Google Sheets Source").parameters["range"] == "A:Z"


def test_social_monitoring() -> None:
    graph = expander.expand(
        "social-monitoring",
        "Mentions",
        parameters={"platforms": ["twitter", "reddit"], "keywords": ["n8n", "mcp"]},
    )
    assert [node.name for node in graph.nodes] == [
        "Schedule Trigger",
        "Twitter Search",
        "Reddit Search",
        "Process Social Data",
    ]
    assert graph.node_by_name("Twitter Search").parameters["searchText"] == "n8n OR mcp"
    assert graph.nodes[0].parameters["interval"][0]["expression"] == "0 */2 * * *"


def test_general_parameters() -> None:
    graph = expander.expand("http-fetch", "Tagged", parameters={"description": "custom", "tags": ["x"]})
    assert graph.description == "custom"
    assert graph.tags == ["x"]

    explicit = expander.expand("http-fetch", "Explicit", "from argument", {"description": "ignored"})
    assert explicit.description == "from argument"


def test_list_templates_by_category() -> None:
    ids = {info.id for info in expander.list_templates("data")}
    assert ids == {"http-fetch", "data-pipeline"}
    assert len(expander.list_templates()) == 5


@pytest.mark.parametrize(
    "template_id, parameters, field",
    [
        ("multi-platform-post", {"platforms": [1]}, "platforms"),
        ("multi-platform-post", {"platforms": "twitter"}, "platforms"),
        ("scheduled-notification", {"notificationConfig": "x"}, "notificationConfig"),
        ("scheduled-notification", {"notificationConfig": {"email": "x"}}, "notificationConfig.email"),
        ("scheduled-notification", {"triggerConfig": {"schedule": 5}}, "triggerConfig.schedule"),
        ("data-pipeline", {"sourceConfig": "x"}, "sourceConfig"),
        ("data-pipeline", {"transformations": "filter"}, "transformations"),
        ("social-monitoring", {"keywords": "n8n"}, "keywords"),
        ("http-fetch", {"apiUrl": 42}, "apiUrl"),
        ("http-fetch", {"tags": "api"}, "tags"),
    ],
)
def test_badly_typed_parameters_are_input_errors(template_id, parameters, field) -> None:
    with pytest.raises(InputError) as exc_info:
        expander.expand(template_id, "Typed", parameters=parameters)
    assert exc_info.value.context["field"] == field


def test_social_monitoring_tags_results_with_keywords() -> None:
    graph = expander.expand("social-monitoring", "Mentions", parameters={"keywords": ["n8n", "mcp"]})
    code = graph.node_by_name("Process Social Data").parameters["functionCode"]
    assert 'const keywords = ["n8n", "mcp"];' in code
    assert "source = 'Reddit';" in code
