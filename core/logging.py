from __future__ import annotations

import copy
import json
import sys
import time
from typing import Any, Dict, Optional

from loguru import logger


# Keys whose values never reach a log sink; compared case-insensitively
# with "_" and "-" ignored, so "api_key", "apiKey" and "X-N8N-API-KEY" all match.
SENSITIVE_FIELDS = {
	"password",
	"api_key",
	"apiKey",
	"x-n8n-api-key",
	"secret",
	"token",
	"accessToken",
	"refreshToken",
	"privateKey",
	"clientSecret",
	"authorization",
}

MAX_REDACT_DEPTH = 10


def _normalize(key: str) -> str:
	return key.replace("_", "").replace("-", "").lower()


_SENSITIVE_KEYS = {_normalize(name) for name in SENSITIVE_FIELDS}


def is_sensitive(key: Any) -> bool:
	if not isinstance(key, str):
		return False
	normalized = _normalize(key)
	return normalized in _SENSITIVE_KEYS or normalized.endswith("apikey")


def redact(obj: Any, depth: int = 0) -> Any:
	"""
	Return a copy of ``obj`` with sensitive values replaced by ``[REDACTED]``.

	Args:
		obj: A dict, list or primitive; containers are walked recursively
		depth: Current recursion depth

	Returns:
		The redacted copy; anything nested deeper than MAX_REDACT_DEPTH
		becomes ``[MAX_DEPTH_EXCEEDED]``
	"""
	if depth > MAX_REDACT_DEPTH:
		return "[MAX_DEPTH_EXCEEDED]"

	if isinstance(obj, dict):
		return {
			key: "[REDACTED]" if is_sensitive(key) else redact(value, depth + 1)
			for key, value in obj.items()
		}
	elif isinstance(obj, (list, tuple)):
		return [redact(item, depth + 1) for item in obj]
	else:
		return obj


def configure_logging(
	level: str = "info",
	audit_log_path: Optional[str] = None,
	serialize: bool = True,
) -> None:
	logger.remove()
	# stdout is reserved for the MCP stdio transport
	logger.add(sys.stderr, level=level.upper(), serialize=serialize, enqueue=True)
	if audit_log_path:
		logger.add(
			audit_log_path,
			level="INFO",
			serialize=True,
			enqueue=True,
			filter=lambda record: record["extra"].get("audit", False),
		)


def audit_log(event: str, actor: str, details: Dict[str, Any], status: str = "ok") -> None:
	"""
	Log an audit event with sensitive data redacted.

	Args:
		event: The tool or operation name (e.g., "create_workflow")
		actor: Which surface performed it ("mcp", "http", "ui")
		details: Event details, redacted before logging
		status: "ok" or "error"
	"""
	logger.bind(audit=True).info(
		json.dumps(
			{
				"event": event,
				"actor": actor,
				"status": status,
				"details": redact(copy.deepcopy(details)),
				"timestamp": int(time.time() * 1000),
			},
			default=str,
		)
	)
