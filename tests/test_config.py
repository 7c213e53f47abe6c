from __future__ import annotations

import pytest
from pytest import MonkeyPatch

from core.config import Settings

_VARS = (
    "N8N_API_URL",
    "N8N_API_KEY",
    "N8N_VERSION",
    "HTTP_TIMEOUT",
    "STRICT_NODE_TYPES",
    "NATIVE_CONNECTIONS",
    "DEFAULT_VALIDATION_RULES",
    "LOG_LEVEL",
    "AUDIT_LOG_PATH",
)


@pytest.fixture
def env(monkeypatch: MonkeyPatch, tmp_path):
    for name in _VARS:
        # setenv first so teardown also drops values load_dotenv adds
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    # keep a stray .env in the working directory out of the picture
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_missing_credentials_raise(env: MonkeyPatch, tmp_path) -> None:
    with pytest.raises(RuntimeError, match="N8N_API_URL and N8N_API_KEY"):
        Settings.load_from_env(str(tmp_path / "absent.env"))


def test_defaults(env: MonkeyPatch, tmp_path) -> None:
    env.setenv("N8N_API_URL", "https://n8n.example.com/")
    env.setenv("N8N_API_KEY", "k")

    settings = Settings.load_from_env(str(tmp_path / "absent.env"))

    assert settings.api_base_url == "https://n8n.example.com/api/v1"
    assert settings.http_timeout == 30.0
    assert settings.strict_node_types is False
    assert settings.native_connections is False
    assert settings.default_validation_rules == ("all",)
    assert settings.audit_log_path is None


def test_overrides(env: MonkeyPatch, tmp_path) -> None:
    env.setenv("N8N_API_URL", "https://n8n.example.com")
    env.setenv("N8N_API_KEY", "k")
    env.setenv("HTTP_TIMEOUT", "5")
    env.setenv("STRICT_NODE_TYPES", "yes")
    env.setenv("NATIVE_CONNECTIONS", "1")
    env.setenv("DEFAULT_VALIDATION_RULES", "strict, error-handling")

    settings = Settings.load_from_env(str(tmp_path / "absent.env"))

    assert settings.http_timeout == 5.0
    assert settings.strict_node_types is True
    assert settings.native_connections is True
    assert settings.default_validation_rules == ("strict", "error-handling")


def test_invalid_timeout(env: MonkeyPatch, tmp_path) -> None:
    env.setenv("N8N_API_URL", "https://n8n.example.com")
    env.setenv("N8N_API_KEY", "k")
    env.setenv("HTTP_TIMEOUT", "soon")

    with pytest.raises(RuntimeError, match="HTTP_TIMEOUT must be a number"):
        Settings.load_from_env(str(tmp_path / "absent.env"))


def test_dotenv_file_is_read(env: MonkeyPatch, tmp_path) -> None:
    dotenv = tmp_path / "custom.env"
    dotenv.write_text("N8N_API_URL=https://from-file.test\nN8N_API_KEY=file-key\n")
    env.setenv("N8N_API_KEY", "env-key")

    settings = Settings.load_from_env(str(dotenv))

    assert settings.n8n_api_url == "https://from-file.test"
    assert settings.n8n_api_key == "env-key"
