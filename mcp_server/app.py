from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from client.n8n_client import N8nClient
from core.config import Settings
from core.errors import CollaboratorFailure
from mcp_server.server import dispatch, list_templates_action, list_tool_specs
from mcp_server.utils import status_for


app = FastAPI(title="n8n-workflow-toolkit")
_settings = Settings.load_from_env()


def _client() -> N8nClient:
    return N8nClient(_settings)


@asynccontextmanager
async def n8n_client_manager() -> AsyncIterator[N8nClient]:
    """FastAPI dependency for managing N8nClient lifecycle."""
    client = _client()
    try:
        yield client
    finally:
        await client.close()


async def _client_dependency() -> AsyncIterator[N8nClient]:
    async with n8n_client_manager() as client:
        yield client


@app.get("/health")
async def health(client: N8nClient = Depends(_client_dependency)) -> Dict[str, Any]:
    try:
        info = await client.health()
    except CollaboratorFailure as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc
    return {"status": "ok", "info": info}


@app.get("/templates")
async def templates(category: Optional[str] = None) -> Dict[str, Any]:
    return {"data": await list_templates_action(category)}


@app.get("/tools")
async def tools() -> List[Dict[str, Any]]:
    return list_tool_specs()


@app.post("/tools/{name}")
async def call_tool(
    name: str, arguments: Optional[Dict[str, Any]] = Body(default=None)
) -> JSONResponse:
    payload = await dispatch(name, arguments, actor="http")
    return JSONResponse(content=payload, status_code=status_for(payload))
