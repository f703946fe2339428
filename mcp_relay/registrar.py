"""
Capability Registrar: turns fetched definitions into the capability table.

The table is the only thing the local server and the forwarding code share.
It is built once at startup and never mutated afterwards.

Usage:
    registrar = CapabilityRegistrar(scoped=False)
    for server in servers:
        registrar.add_server(server)
    registrar.add_resources("srv1", resources)
    registrar.add_prompts("srv1", prompts)

    table = registrar.build(server_name="MCP Kit Relay")
    capability = table.get(CapabilityKind.TOOL, "srv1_ping")
    # capability.server_id == "srv1", capability.remote_key == "ping"
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

from pydantic import BaseModel

from mcp_relay.models import (
    PromptArgumentDefinition,
    PromptDefinition,
    ResourceDefinition,
    ServerDefinition,
    ToolDefinition,
)
from mcp_relay.naming import namespaced_identifier, sanitize, scoped_identifier, tool_identifier
from mcp_relay.schema import input_schema, translate

if TYPE_CHECKING:
    from mcp_relay.fetcher import Discovery

logger = logging.getLogger(__name__)

DEFAULT_SERVER_NAME = "MCP Kit Relay"


class CapabilityKind(str, enum.Enum):
    TOOL = "tool"
    RESOURCE = "resource"
    PROMPT = "prompt"


@dataclass(frozen=True)
class Capability:
    """
    One registered capability and everything needed to forward a call.

    remote_key is the tool slug, the resource URI or the prompt name.
    """
    kind: CapabilityKind
    local_id: str
    server_id: str
    remote_key: str
    description: str = ""
    display_name: str = ""
    schema: type[BaseModel] | None = None
    arguments: tuple[PromptArgumentDefinition, ...] = ()
    mime_type: str | None = None

    @property
    def input_schema(self) -> dict[str, Any]:
        if self.schema is None:
            return {"type": "object", "properties": {}}
        return input_schema(self.schema)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "localIdentifier": self.local_id,
            "remoteServerId": self.server_id,
            "remoteKey": self.remote_key,
            "description": self.description,
        }
        if self.kind is CapabilityKind.TOOL:
            data["inputSchema"] = self.input_schema
        elif self.kind is CapabilityKind.RESOURCE:
            data["name"] = self.display_name
        elif self.kind is CapabilityKind.PROMPT:
            data["arguments"] = [a.model_dump(exclude_none=True) for a in self.arguments]
        return data


@dataclass(frozen=True)
class CapabilityTable:
    """Immutable, ordered capability table keyed by (kind, local identifier)."""
    server_name: str
    scoped: bool
    tools: tuple[Capability, ...] = ()
    resources: tuple[Capability, ...] = ()
    prompts: tuple[Capability, ...] = ()
    _index: Mapping[tuple[CapabilityKind, str], Capability] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        index = {(c.kind, c.local_id): c for c in self}
        object.__setattr__(self, "_index", MappingProxyType(index))

    def get(self, kind: CapabilityKind, local_id: str) -> Capability | None:
        return self._index.get((kind, local_id))

    def has(self, kind: CapabilityKind) -> bool:
        """True when at least one capability of this kind is registered."""
        return bool(self.of_kind(kind))

    def of_kind(self, kind: CapabilityKind) -> tuple[Capability, ...]:
        return {
            CapabilityKind.TOOL: self.tools,
            CapabilityKind.RESOURCE: self.resources,
            CapabilityKind.PROMPT: self.prompts,
        }[kind]

    def __iter__(self) -> Iterator[Capability]:
        yield from self.tools
        yield from self.resources
        yield from self.prompts

    def __len__(self) -> int:
        return len(self.tools) + len(self.resources) + len(self.prompts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "serverName": self.server_name,
            "scoped": self.scoped,
            "tools": [c.to_dict() for c in self.tools],
            "resources": [c.to_dict() for c in self.resources],
            "prompts": [c.to_dict() for c in self.prompts],
        }


class CapabilityRegistrar:
    """
    Builder for a CapabilityTable.

    Responsibilities:
    - Derive local identifiers (scoped: display name, unscoped: server id + key)
    - Translate tool parameter lists into argument models
    - Skip entries whose identifier is empty or already taken (logged)
    - Keep the order definitions arrived in
    """

    def __init__(self, scoped: bool):
        self.scoped = scoped
        self._entries: dict[CapabilityKind, dict[str, Capability]] = {
            kind: {} for kind in CapabilityKind
        }

    def add_server(self, server: ServerDefinition) -> list[str]:
        """
        Register every tool of a server, plus any resources/prompts embedded
        in its definition.

        Returns:
            Local identifiers of the tools that were registered.
        """
        registered = []
        for tool in server.tools:
            capability = self.add_tool(server.id, tool)
            if capability:
                registered.append(capability.local_id)
        self.add_resources(server.id, server.resources)
        self.add_prompts(server.id, server.prompts)
        logger.info(f"Registered {len(registered)}/{len(server.tools)} tools from server {server.id}")
        return registered

    def add_tool(self, server_id: str, tool: ToolDefinition) -> Capability | None:
        local_id = tool_identifier(server_id, tool.name, tool.slug, self.scoped)
        if not local_id:
            logger.warning(f"Skipping tool {tool.name!r} (slug {tool.slug!r}): empty identifier after sanitizing")
            return None

        capability = Capability(
            kind=CapabilityKind.TOOL,
            local_id=local_id,
            server_id=server_id,
            remote_key=tool.slug,
            description=tool.description or "",
            display_name=tool.name,
            schema=translate(tool.parameters, model_name=f"{local_id}_arguments"),
        )
        return self._add(capability)

    def add_resources(self, server_id: str, resources: Iterable[ResourceDefinition]) -> None:
        for resource in resources:
            self.add_resource(server_id, resource)

    def add_resource(self, server_id: str, resource: ResourceDefinition) -> Capability | None:
        if not resource.uri:
            logger.warning(f"Skipping resource {resource.name!r}: no URI")
            return None
        capability = Capability(
            kind=CapabilityKind.RESOURCE,
            local_id=resource.uri,
            server_id=server_id,
            remote_key=resource.uri,
            description=resource.description or "",
            display_name=sanitize(resource.name) or resource.uri,
            mime_type=resource.mime_type,
        )
        return self._add(capability)

    def add_prompts(self, server_id: str, prompts: Iterable[PromptDefinition]) -> None:
        for prompt in prompts:
            self.add_prompt(server_id, prompt)

    def add_prompt(self, server_id: str, prompt: PromptDefinition) -> Capability | None:
        if self.scoped:
            local_id = scoped_identifier(prompt.name)
        else:
            local_id = namespaced_identifier(server_id, prompt.name)
        if not local_id:
            logger.warning(f"Skipping prompt {prompt.name!r}: empty identifier after sanitizing")
            return None

        capability = Capability(
            kind=CapabilityKind.PROMPT,
            local_id=local_id,
            server_id=server_id,
            remote_key=prompt.name,
            description=prompt.description or "",
            display_name=prompt.name,
            arguments=tuple(prompt.arguments),
        )
        return self._add(capability)

    def build(self, server_name: str = DEFAULT_SERVER_NAME) -> CapabilityTable:
        table = CapabilityTable(
            server_name=server_name,
            scoped=self.scoped,
            tools=tuple(self._entries[CapabilityKind.TOOL].values()),
            resources=tuple(self._entries[CapabilityKind.RESOURCE].values()),
            prompts=tuple(self._entries[CapabilityKind.PROMPT].values()),
        )
        logger.info(
            f"Capability table for '{server_name}': {len(table.tools)} tools, "
            f"{len(table.resources)} resources, {len(table.prompts)} prompts"
        )
        return table

    def _add(self, capability: Capability) -> Capability | None:
        entries = self._entries[capability.kind]
        existing = entries.get(capability.local_id)
        if existing is not None:
            logger.warning(
                f"Skipping {capability.kind.value} '{capability.remote_key}' from server "
                f"{capability.server_id}: identifier '{capability.local_id}' already used by "
                f"'{existing.remote_key}' from server {existing.server_id}"
            )
            return None
        entries[capability.local_id] = capability
        logger.debug(f"Registered {capability.kind.value}: {capability.local_id} -> "
                     f"({capability.server_id}, {capability.remote_key})")
        return capability


def server_display_name(discovery: "Discovery") -> str:
    """Scoped mode shows the target's name; unscoped mode a fixed relay name."""
    if not discovery.scoped:
        return DEFAULT_SERVER_NAME
    server = discovery.servers[0] if discovery.servers else None
    if server and server.name:
        return server.name
    return f"Relay for {(discovery.target_server_id or '')[:8]}..."


def build_capability_table(discovery: "Discovery") -> CapabilityTable:
    """Register everything a discovery pass returned, in the order it was returned."""
    registrar = CapabilityRegistrar(scoped=discovery.scoped)
    for server in discovery.servers:
        registrar.add_server(server)
        registrar.add_resources(server.id, discovery.resources.get(server.id, []))
        registrar.add_prompts(server.id, discovery.prompts.get(server.id, []))
    return registrar.build(server_name=server_display_name(discovery))
