"""Tests for the FastAPI facade and its client lifecycle management."""
from __future__ import annotations

from importlib import reload
from typing import Any, Dict
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from pytest import MonkeyPatch

from core.errors import CollaboratorFailure


@pytest.fixture
def app_module(monkeypatch: MonkeyPatch):
    monkeypatch.setenv("N8N_API_URL", "https://example.com")
    monkeypatch.setenv("N8N_API_KEY", "dummy")
    from mcp_server import app as module

    return reload(module)


class TestN8nClientManager:
    """Test FastAPI dependency for N8nClient lifecycle."""

    @pytest.mark.asyncio
    async def test_client_lifecycle(self, app_module) -> None:
        """Test that client is properly created and closed."""
        mock_client = AsyncMock()

        with patch.object(app_module, "_client", return_value=mock_client):
            async with app_module.n8n_client_manager() as client:
                assert client is mock_client
                mock_client.close.assert_not_called()

            mock_client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_client_closed_on_exception(self, app_module) -> None:
        """Test that client is closed even if exception occurs."""
        mock_client = AsyncMock()

        with patch.object(app_module, "_client", return_value=mock_client):
            with pytest.raises(ValueError, match="test error"):
                async with app_module.n8n_client_manager() as client:
                    assert client is mock_client
                    raise ValueError("test error")

            mock_client.close.assert_called_once()


class TestRoutes:
    def test_health_ok(self, app_module) -> None:
        mock_client = AsyncMock()
        mock_client.health.return_value = {"status": "ok"}

        with patch.object(app_module, "_client", return_value=mock_client):
            response = TestClient(app_module.app).get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "info": {"status": "ok"}}

    def test_health_failure_is_bad_gateway(self, app_module) -> None:
        mock_client = AsyncMock()
        mock_client.health.side_effect = CollaboratorFailure("check health", "connection refused")

        with patch.object(app_module, "_client", return_value=mock_client):
            response = TestClient(app_module.app).get("/health")

        assert response.status_code == 502
        assert response.json()["detail"] == "Failed to check health: connection refused"

    def test_templates_and_tools(self, app_module) -> None:
        client = TestClient(app_module.app)

        templates = client.get("/templates", params={"category": "social-media"}).json()["data"]
        assert {t["id"] for t in templates["templates"]} == {"multi-platform-post", "social-monitoring"}

        tools = client.get("/tools").json()
        assert "apply_template" in {tool["name"] for tool in tools}

    def test_tool_call_status_codes(self, app_module) -> None:
        client = TestClient(app_module.app)

        ok = client.post(
            "/tools/apply_template",
            json={"template_id": "http-fetch", "name": "Users", "dry_run": True},
        )
        assert ok.status_code == 200
        assert ok.json()["data"]["dry_run"] is True

        missing: Dict[str, Any] = client.post("/tools/apply_template", json={"name": "X", "template_id": "nope"}).json()
        assert missing["error"]["type"] == "template_not_found"

        assert client.post("/tools/apply_template", json={"name": "X", "template_id": "nope"}).status_code == 404
        assert client.post("/tools/get_workflow", json={}).status_code == 400
        assert client.post("/tools/no_such_tool").status_code == 404
