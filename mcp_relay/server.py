"""
Local MCP server backed by a capability table.

The relay serves exactly one client over stdio. Protocol framing and
session handling belong to the `mcp` library; this module only supplies
capability descriptors and routes invocations to `dispatch`.

A capability category is advertised (and its handlers installed) only when
the table holds at least one member of it.

    table = build_capability_table(discovery)
    relay = RelayServer(table, backend)
    await relay.run()          # blocks until the client disconnects
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from pydantic import AnyUrl, ValidationError

from mcp_relay.client import BackendClient
from mcp_relay.dispatch import dispatch
from mcp_relay.errors import PromptRetrievalFailure, ResourceReadFailure
from mcp_relay.registrar import Capability, CapabilityKind, CapabilityTable
from mcp_relay.schema import validate_arguments

logger = logging.getLogger(__name__)

SERVER_VERSION = "1.0.0"


def advertised_capabilities(table: CapabilityTable) -> types.ServerCapabilities:
    """Declare only the categories that have members."""
    return types.ServerCapabilities(
        tools=types.ToolsCapability(listChanged=False) if table.has(CapabilityKind.TOOL) else None,
        resources=(
            types.ResourcesCapability(subscribe=False, listChanged=False)
            if table.has(CapabilityKind.RESOURCE) else None
        ),
        prompts=types.PromptsCapability(listChanged=False) if table.has(CapabilityKind.PROMPT) else None,
    )


def tool_descriptor(capability: Capability) -> types.Tool:
    return types.Tool(
        name=capability.local_id,
        description=capability.description,
        inputSchema=capability.input_schema,
    )


def resource_descriptor(capability: Capability) -> types.Resource:
    return types.Resource(
        name=capability.display_name,
        uri=capability.remote_key,
        description=capability.description or None,
        mimeType=capability.mime_type,
    )


def prompt_descriptor(capability: Capability) -> types.Prompt:
    return types.Prompt(
        name=capability.local_id,
        description=capability.description or None,
        arguments=[
            types.PromptArgument(name=arg.name, description=arg.description, required=arg.required)
            for arg in capability.arguments
        ],
    )


class RelayServer:
    """
    Binds a CapabilityTable to an `mcp` low-level Server.

    Protocol surface (per advertised category):
    - tools/list, tools/call
    - resources/list, resources/read
    - prompts/list, prompts/get
    """

    def __init__(
        self,
        table: CapabilityTable,
        backend: BackendClient,
        version: str = SERVER_VERSION,
    ):
        self.table = table
        self.backend = backend
        self.version = version
        self.server: Server = Server(table.server_name)
        self._register_handlers()

    def _register_handlers(self) -> None:
        if self.table.has(CapabilityKind.TOOL):
            self.server.list_tools()(self.list_tools)
            self.server.call_tool()(self.call_tool)

        if self.table.has(CapabilityKind.RESOURCE):
            self.server.list_resources()(self.list_resources)

            async def handle_read(request: types.ReadResourceRequest) -> types.ServerResult:
                return types.ServerResult(await self.read_resource(str(request.params.uri)))

            self.server.request_handlers[types.ReadResourceRequest] = handle_read

        if self.table.has(CapabilityKind.PROMPT):
            self.server.list_prompts()(self.list_prompts)
            self.server.get_prompt()(self.get_prompt)

        logger.info(
            f"Server '{self.table.server_name}' advertising: "
            f"{advertised_capabilities(self.table).model_dump(exclude_none=True)}"
        )

    def initialization_options(self) -> InitializationOptions:
        return InitializationOptions(
            server_name=self.table.server_name,
            server_version=self.version,
            capabilities=advertised_capabilities(self.table),
        )

    # ── Tools ─────────────────────────────────────────────

    async def list_tools(self) -> list[types.Tool]:
        return [tool_descriptor(c) for c in self.table.tools]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> types.CallToolResult:
        capability = self.table.get(CapabilityKind.TOOL, name)
        if capability is None:
            raise ValueError(f"Unknown tool: '{name}'")
        if capability.schema is not None:
            validate_arguments(capability.schema, arguments)
        return await dispatch(capability, arguments or {}, self.backend)

    # ── Resources ─────────────────────────────────────────

    async def list_resources(self) -> list[types.Resource]:
        resources = []
        for capability in self.table.resources:
            try:
                resources.append(resource_descriptor(capability))
            except ValidationError:
                logger.warning(f"Not listing resource with invalid URI: {capability.remote_key!r}")
        return resources

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        capability = self._resource_for(uri)
        if capability is None:
            raise ResourceReadFailure(f"Unknown resource: {uri}")
        return await dispatch(capability, uri, self.backend)

    def _resource_for(self, uri: str) -> Capability | None:
        capability = self.table.get(CapabilityKind.RESOURCE, uri)
        if capability is not None:
            return capability
        # URIs come back from the client in normalized form
        for candidate in self.table.resources:
            try:
                if str(AnyUrl(candidate.remote_key)) == uri:
                    return candidate
            except ValidationError:
                continue
        return None

    # ── Prompts ───────────────────────────────────────────

    async def list_prompts(self) -> list[types.Prompt]:
        return [prompt_descriptor(c) for c in self.table.prompts]

    async def get_prompt(self, name: str, arguments: Any) -> types.GetPromptResult:
        capability = self.table.get(CapabilityKind.PROMPT, name)
        if capability is None:
            raise PromptRetrievalFailure(f"Unknown prompt: '{name}'")
        return await dispatch(capability, arguments, self.backend)

    # ── Transport ─────────────────────────────────────────

    async def run(self) -> None:
        """Serve the single stdio client until it disconnects."""
        logger.info(f"Serving {len(self.table)} capabilities over stdio")
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(read_stream, write_stream, self.initialization_options())
        logger.info("Client disconnected")
