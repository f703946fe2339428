"""
Backend API client.

One method per remote endpoint. Listing methods parse the payload into
definition models; invocation methods hand back the raw decoded body.
Every method returns a RemoteResponse, shape mismatches included, so
callers never see an exception from the remote side.

Usage:
    transport = HttpTransport("http://localhost:3002/mcp", api_key)
    backend = BackendClient(transport, tool_timeout=30)

    servers = await backend.list_servers("srv1")
    if not servers.is_error:
        for server in servers.result:
            ...
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from pydantic import TypeAdapter, ValidationError

from mcp_relay.models import PromptDefinition, ResourceDefinition, ServerDefinition
from mcp_relay.transport import (
    CallFailure,
    FailureKind,
    RemoteRequest,
    RemoteResponse,
    Transport,
)

logger = logging.getLogger(__name__)

TARGET_SERVER_HEADER = "X-Target-Server-Id"

_servers_adapter = TypeAdapter(list[ServerDefinition])
_resources_adapter = TypeAdapter(list[ResourceDefinition])
_prompts_adapter = TypeAdapter(list[PromptDefinition])


class BackendClient:
    """Typed access to the remote backend's server/tool/resource/prompt endpoints."""

    def __init__(self, transport: Transport, tool_timeout: float = 30.0):
        self.transport = transport
        self.tool_timeout = tool_timeout

    # ── Discovery ─────────────────────────────────────────

    async def list_servers(self, server_id: str | None = None) -> RemoteResponse:
        """GET /servers, optionally scoped to one server id."""
        params = {"serverId": server_id} if server_id else {}
        response = await self.transport.send(RemoteRequest("GET", "/servers", params=params))
        if response.is_error:
            return response
        return _parse(response.result or [], _servers_adapter, "server definitions")

    async def list_resources(self, server_id: str) -> RemoteResponse:
        """GET /resources/list for one server."""
        response = await self.transport.send(
            RemoteRequest("GET", "/resources/list", params={"serverId": server_id})
        )
        if response.is_error:
            return response
        return _parse(_field(response.result, "resources"), _resources_adapter, "resource list")

    async def list_prompts(self, server_id: str) -> RemoteResponse:
        """POST /prompts/list for one server."""
        response = await self.transport.send(
            RemoteRequest("POST", "/prompts/list", params={"serverId": server_id}, json={})
        )
        if response.is_error:
            return response
        return _parse(_field(response.result, "prompts"), _prompts_adapter, "prompt list")

    # ── Invocation ────────────────────────────────────────

    async def execute_tool(
        self,
        server_id: str,
        tool_slug: str,
        arguments: dict[str, Any],
    ) -> RemoteResponse:
        """POST the raw argument map to a tool's execute endpoint (bounded by tool_timeout)."""
        path = f"/servers/{quote(server_id, safe='')}/tools/{quote(tool_slug, safe='')}/execute"
        return await self.transport.send(RemoteRequest(
            "POST",
            path,
            json=arguments,
            headers={"Content-Type": "application/json"},
            timeout=self.tool_timeout,
        ))

    async def read_resource(self, server_id: str, uri: str) -> RemoteResponse:
        """GET /resources/read; the owning server travels in a header for backend scoping."""
        return await self.transport.send(RemoteRequest(
            "GET",
            "/resources/read",
            params={"uri": uri},
            headers={TARGET_SERVER_HEADER: server_id},
        ))

    async def get_prompt(
        self,
        server_id: str,
        name: str,
        arguments: dict[str, Any],
    ) -> RemoteResponse:
        """POST /prompts/get with the {params: {name, arguments}} body."""
        return await self.transport.send(RemoteRequest(
            "POST",
            "/prompts/get",
            params={"serverId": server_id},
            json={"params": {"name": name, "arguments": arguments}},
            headers={"Content-Type": "application/json"},
        ))

    async def close(self) -> None:
        await self.transport.close()


def _field(body: Any, key: str) -> Any:
    if isinstance(body, dict):
        return body.get(key) or []
    if body is None:
        return []
    return body


def _parse(data: Any, adapter: TypeAdapter, what: str) -> RemoteResponse:
    try:
        return RemoteResponse(result=adapter.validate_python(data))
    except ValidationError as e:
        logger.error(f"Malformed {what} from backend: {e.error_count()} validation error(s)")
        return RemoteResponse(failure=CallFailure(
            FailureKind.MALFORMED_RESPONSE,
            f"Malformed {what}: {e}",
            body=data,
        ))
