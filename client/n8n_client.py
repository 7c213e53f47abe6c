from __future__ import annotations

import httpx
from typing import Any, Dict, List, Optional, Union, cast

from loguru import logger

from core.config import Settings
from core.errors import CollaboratorFailure


def _unwrap(payload: Any) -> Any:
    # the public API wraps single objects and pages alike in {"data": ...}
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class N8nClient:
    """Async client for the remote workflow REST API.

    Every transport or HTTP status failure is raised as
    :class:`~core.errors.CollaboratorFailure` naming the operation.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = settings.api_base_url
        self._headers = {"X-N8N-API-KEY": settings.n8n_api_key}
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=settings.http_timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "N8nClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("{} failed with HTTP {}", operation, exc.response.status_code)
            raise CollaboratorFailure(
                operation, _error_message(exc.response), status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("{} failed: {}", operation, exc)
            raise CollaboratorFailure(operation, str(exc) or type(exc).__name__) from exc

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise CollaboratorFailure(operation, "response is not valid JSON") from exc

    # Health
    async def health(self) -> Dict[str, Any]:
        payload = await self._request("check health", "GET", "/health")
        return cast(Dict[str, Any], payload or {"status": "ok"})

    # Workflows
    async def list_workflows(self) -> List[Dict[str, Any]]:
        raw = _unwrap(await self._request("list workflows", "GET", "/workflows"))
        return [cast(Dict[str, Any], item) for item in raw or []]

    async def get_workflow(self, workflow_id: Union[str, int]) -> Dict[str, Any]:
        payload = await self._request("get workflow", "GET", f"/workflows/{workflow_id}")
        return cast(Dict[str, Any], _unwrap(payload))

    async def create_workflow(self, workflow_json: Dict[str, Any]) -> Dict[str, Any]:
        payload = await self._request("create workflow", "POST", "/workflows", json=workflow_json)
        return cast(Dict[str, Any], _unwrap(payload))

    async def update_workflow(
        self, workflow_id: Union[str, int], patch: Dict[str, Any]
    ) -> Dict[str, Any]:
        payload = await self._request(
            "update workflow", "PATCH", f"/workflows/{workflow_id}", json=patch
        )
        return cast(Dict[str, Any], _unwrap(payload))

    async def delete_workflow(self, workflow_id: Union[str, int]) -> Dict[str, Any]:
        await self._request("delete workflow", "DELETE", f"/workflows/{workflow_id}")
        return {"status": "deleted", "id": workflow_id}

    async def set_activation(
        self, workflow_id: Union[str, int], active: bool
    ) -> Dict[str, Any]:
        endpoint = "activate" if active else "deactivate"
        payload = await self._request(
            f"{endpoint} workflow", "POST", f"/workflows/{workflow_id}/{endpoint}"
        )
        return cast(Dict[str, Any], _unwrap(payload))

    async def execute_workflow(
        self, workflow_id: Union[str, int], payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        result = await self._request(
            "run workflow", "POST", f"/workflows/{workflow_id}/run", json=payload or {}
        )
        return cast(Dict[str, Any], _unwrap(result))

    # Executions
    async def list_executions(
        self, workflow_id: Optional[Union[str, int]] = None, limit: int = 10
    ) -> List[Dict[str, Any]]:
        """List executions, newest first, optionally for one workflow."""
        params: Dict[str, Any] = {"limit": limit}
        if workflow_id:
            params["workflowId"] = str(workflow_id)
        raw = _unwrap(await self._request("get executions", "GET", "/executions", params=params))
        return [cast(Dict[str, Any], item) for item in raw or []]

    async def get_execution(self, execution_id: Union[str, int]) -> Dict[str, Any]:
        payload = await self._request(
            "get execution", "GET", f"/executions/{execution_id}", params={"includeData": "true"}
        )
        return cast(Dict[str, Any], _unwrap(payload))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()
