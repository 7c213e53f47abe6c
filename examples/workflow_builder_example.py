"""Example usage of the graph builder, templates and validator.

Nothing here talks to a remote instance; every example builds a graph in
memory, validates it and prints the resulting workflow document.
"""

import json

from core.builder import BuildContext, GraphAssembly, GraphBuilder
from core.errors import TemplateNotFound
from core.generator import WorkflowGenerator
from core.serialization import to_document
from core.templates import TemplateExpander
from core.validator import validate_graph


def example_sequential_workflow():
    """Start → HTTP Request → Set, with the URL supplied as context."""
    builder = GraphBuilder()
    graph = builder.build_sequential(
        ["start", "httpRequest", "set"],
        BuildContext(name="Fetch Users", parameters={"url": "https://api.example.com/users"}),
    )

    result = validate_graph(graph)
    print(f"Built workflow: {graph.name}")
    print(f"Nodes: {[node.name for node in graph.nodes]}")
    print(f"Connections: {graph.connection_count()}")
    print(f"Valid: {result.valid}")
    return graph


def example_branching_workflow():
    """An IF node consumes the next two nodes as its true and false branches."""
    builder = GraphBuilder()
    graph = builder.build_sequential(
        ["webhook", "if", "slack", "email"],
        BuildContext(
            name="Priority Alert Router",
            node_parameters={
                "webhook": {"path": "alert"},
                "slack": {"channel": "#urgent", "text": "={{$json.message}}"},
            },
            node_names={"slack": "Urgent Channel", "email": "Normal Mail"},
        ),
    )

    for conn in graph.connections:
        print(f"{graph.resolve_name(conn.source)} [{conn.output}] -> {graph.resolve_name(conn.target)}")
    return graph


def example_manual_assembly():
    """Fan one source out to two parallel targets by hand."""
    draft = GraphAssembly("Broadcast", description="One message, two channels")
    trigger = draft.add("manualTrigger")
    message = draft.add("set", {"values": {"string": [{"name": "text", "value": "hello"}]}}, name="Message")
    slack = draft.add("slack", {"channel": "#general", "text": "={{$json.text}}"}, position=(650, 300))
    email = draft.add("email", {"toEmail": "team@example.com"}, position=(650, 450))
    draft.connect(trigger, message)
    draft.fan_out(message, [slack, email])

    graph = draft.build()
    print(json.dumps(to_document(graph)["connections"], indent=2))
    return graph


def example_templates():
    """Expand a template, then show that unknown ids fail loudly."""
    expander = TemplateExpander()
    for info in expander.list_templates():
        print(f"{info.id:24} {info.description}")

    graph = expander.expand(
        "multi-platform-post",
        "Launch Announcement",
        parameters={"platforms": ["twitter", "linkedin", "mastodon"]},
    )
    print(f"Expanded {graph.name} with {len(graph.nodes)} nodes, tags={graph.tags}")

    try:
        expander.expand("unknown-template-id", "X", "d", {})
    except TemplateNotFound as e:
        print(f"Expected failure: {e}")
    return graph


def example_generated_workflow():
    """Generate a workflow from a plain-language description."""
    generated = WorkflowGenerator().generate(
        "Create a workflow to fetch data every day, filter it and save to google sheets",
        include_credentials=True,
    )
    for explanation in generated.explanations.values():
        print(explanation)
    print(generated.setup_instructions)
    return generated


if __name__ == "__main__":
    print("=" * 60)
    print("Workflow Builder Examples")
    print("=" * 60)
    print()

    print("Example 1: Sequential Workflow")
    print("-" * 60)
    example_sequential_workflow()
    print()

    print("Example 2: Branching Workflow")
    print("-" * 60)
    example_branching_workflow()
    print()

    print("Example 3: Manual Assembly")
    print("-" * 60)
    example_manual_assembly()
    print()

    print("Example 4: Templates")
    print("-" * 60)
    example_templates()
    print()

    print("Example 5: Generated Workflow")
    print("-" * 60)
    example_generated_workflow()
