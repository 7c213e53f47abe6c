from __future__ import annotations

import pytest

from core.builder import GraphBuilder
from core.errors import InputError, NodeTypeNotFound
from core.generator import (
    WorkflowGenerator,
    determine_node_types,
    explain_node,
    parse_requirements,
    setup_instructions,
)


def test_parse_requirements_extracts_name_and_operations() -> None:
    requirements = parse_requirements("A workflow to fetch orders from the api and email a summary")
    assert requirements.name == "Fetch orders from the api and email a summary"
    assert requirements.operations[:2] == ["fetch", "notify"]
    assert requirements.template_id == "http-fetch"
    assert "email" in requirements.data_types


def test_keywords_match_whole_words() -> None:
    requirements = parse_requirements("notify the team")
    assert "condition" not in requirements.operations
    assert requirements.conditional_logic is False


def test_scheduling_and_complexity() -> None:
    requirements = parse_requirements("Every hour, if the price changed, process it and store it in a database")
    assert requirements.scheduling == "hourly"
    assert requirements.conditional_logic is True
    assert requirements.complexity == "complex"


def test_determine_node_types() -> None:
    requirements = parse_requirements("save data weekly to google sheets when a condition holds")
    node_types = determine_node_types(requirements, ["slack", "n8n-nodes-base.if"])
    assert node_types == [
        "n8n-nodes-base.scheduleTrigger",
        "n8n-nodes-base.if",
        "n8n-nodes-base.googleSheets",
        "n8n-nodes-base.slack",
    ]


def test_generate_uses_template_when_inferred() -> None:
    generated = WorkflowGenerator().generate("Workflow to get data from api: https://x.test/items")
    graph = generated.graph
    assert generated.requirements.template_id == "http-fetch"
    assert graph.node_by_name("API Request").parameters["url"] == "https://x.test/items"
    assert generated.validation.valid
    assert set(generated.explanations) == {node.name for node in graph.nodes}
    assert generated.setup_instructions is None


def test_generate_builds_sequentially_with_required_nodes() -> None:
    generated = WorkflowGenerator().generate(
        "every day check if the stock is low",
        required_nodes=["slack"],
        complexity="simple",
        include_credentials=True,
    )
    graph = generated.graph
    assert [node.type.split(".")[-1] for node in graph.nodes] == ["scheduleTrigger", "if", "slack"]
    assert graph.nodes[0].parameters["interval"][0]["expression"] == "0 9 * * *"
    assert generated.requirements.complexity == "simple"
    assert "- Slack" in generated.setup_instructions
    assert "activate the workflow" in generated.setup_instructions


def test_generate_with_strict_builder_rejects_unknown_required_nodes() -> None:
    generator = WorkflowGenerator(builder=GraphBuilder(strict=True))
    with pytest.raises(NodeTypeNotFound) as exc_info:
        generator.generate("do something", required_nodes=["notARealNode"])
    assert "notARealNode" in str(exc_info.value)


def test_generate_requires_description() -> None:
    with pytest.raises(InputError):
        WorkflowGenerator().generate("   ")


def test_explanations_and_setup_text() -> None:
    graph = GraphBuilder().build_sequential(["start", "httpRequest", "email"])
    request = graph.node_by_name("HTTP Request")
    assert explain_node(request) == 'Node "HTTP Request" (httpRequest): Makes a GET request to .'

    text = setup_instructions(graph)
    assert text.startswith('## Setup Instructions for "Generated Workflow"')
    assert "- Email (SMTP)" in text
    assert "started manually" in text
    assert "### API Configuration" in text
