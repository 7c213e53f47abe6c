from __future__ import annotations

import json
import os
from typing import Any, Dict

import gradio as gr

from client.n8n_client import N8nClient
from core.config import Settings
from core.errors import ToolError
from core.logging import audit_log
from core.serialization import from_document, to_document
from core.templates import TemplateExpander
from core.validator import validate_graph

expander = TemplateExpander()


def _parse_params(params_json: str) -> Dict[str, Any]:
	params = json.loads(params_json or "{}")
	if not isinstance(params, dict):
		raise ValueError("template params must be a JSON object")
	return params


def render_preview(template_id: str, name: str, params_json: str) -> str:
	"""Expand ``template_id`` and return the workflow document as JSON text."""
	try:
		graph = expander.expand(template_id, name or template_id, parameters=_parse_params(params_json))
	except (ToolError, ValueError) as e:
		return json.dumps({"error": str(e)}, indent=2)
	return json.dumps(to_document(graph), indent=2)


def validate_preview(preview_json: str, rules: str = "strict") -> str:
	try:
		graph = from_document(json.loads(preview_json))
	except (ToolError, ValueError) as e:
		return f"Cannot validate: {e}"
	result = validate_graph(graph, [rule.strip() for rule in rules.split(",") if rule.strip()])
	return "No issues" if result.valid else "\n".join(result.issues)


async def _deploy(preview_json: str, activate: bool) -> str:
	settings = Settings.load_from_env()
	client = N8nClient(settings)
	try:
		graph = from_document(json.loads(preview_json))
		resp = await client.create_workflow(to_document(graph, native_connections=settings.native_connections))
		if activate:
			await client.set_activation(resp.get("id"), True)
		audit_log("deploy_workflow", actor="ui", details={"id": resp.get("id"), "name": graph.name})
		return json.dumps({"status": "ok", "id": resp.get("id"), "name": resp.get("name")})
	finally:
		await client.close()


def ui() -> gr.Blocks:
	template_ids = [info.id for info in expander.list_templates()]
	with gr.Blocks(title="n8n Workflow Toolkit") as demo:
		with gr.Row():
			with gr.Column():
				template = gr.Dropdown(template_ids, value=template_ids[0], label="Template")
				name = gr.Textbox(label="Workflow name", value="My Workflow")
				params = gr.Textbox(label="Template Params (JSON)", value="{}")
				rules = gr.Textbox(label="Validation rules", value="strict")
				activate = gr.Checkbox(label="Activate after deploy", value=False)
				validate_btn = gr.Button("Validate")
				deploy_btn = gr.Button("Deploy")
			with gr.Column():
				preview = gr.Code(label="Workflow JSON Preview", language="json")
				status = gr.Markdown("Ready")

			async def do_deploy(preview_json: str, activate_flag: bool) -> str:
				try:
					return await _deploy(preview_json, activate_flag)
				except (ToolError, ValueError, RuntimeError) as e:
					return json.dumps({"status": "error", "message": str(e)})

			for control in (template, name, params):
				control.change(render_preview, inputs=[template, name, params], outputs=[preview])
			validate_btn.click(validate_preview, inputs=[preview, rules], outputs=[status])
			deploy_btn.click(do_deploy, inputs=[preview, activate], outputs=[status])

	return demo


if __name__ == "__main__":
	demo = ui()
	demo.launch(server_name="0.0.0.0", server_port=int(os.getenv("PORT", "7860")))
