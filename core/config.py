from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv


def _env_flag(name: str, default: bool = False) -> bool:
	value = os.getenv(name)
	if value is None:
		return default
	return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
	value = os.getenv(name)
	if not value:
		return default
	return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
	"""Environment-driven configuration for the tool servers."""

	# remote workflow API
	n8n_api_url: str
	n8n_api_key: str
	n8n_version: Optional[str] = None
	http_timeout: float = 30.0

	# graph building
	strict_node_types: bool = False
	native_connections: bool = False
	default_validation_rules: Tuple[str, ...] = field(default=("all",))

	# ops
	log_level: str = "info"
	audit_log_path: Optional[str] = None

	@property
	def api_base_url(self) -> str:
		return f"{self.n8n_api_url}/api/v1"

	@staticmethod
	def load_from_env(dotenv_path: Optional[str] = None) -> "Settings":
		# values already in the environment win over the .env file
		load_dotenv(dotenv_path, override=False)

		n8n_api_url = os.getenv("N8N_API_URL", "").rstrip("/")
		n8n_api_key = os.getenv("N8N_API_KEY", "")
		if not n8n_api_url or not n8n_api_key:
			raise RuntimeError("N8N_API_URL and N8N_API_KEY must be set in environment")

		try:
			http_timeout = float(os.getenv("HTTP_TIMEOUT", "30"))
		except ValueError as exc:
			raise RuntimeError(f"HTTP_TIMEOUT must be a number: {exc}") from exc

		return Settings(
			n8n_api_url=n8n_api_url,
			n8n_api_key=n8n_api_key,
			n8n_version=os.getenv("N8N_VERSION"),
			http_timeout=http_timeout,
			strict_node_types=_env_flag("STRICT_NODE_TYPES"),
			native_connections=_env_flag("NATIVE_CONNECTIONS"),
			default_validation_rules=_env_list("DEFAULT_VALIDATION_RULES", ("all",)),
			log_level=os.getenv("LOG_LEVEL", "info"),
			audit_log_path=os.getenv("AUDIT_LOG_PATH"),
		)
