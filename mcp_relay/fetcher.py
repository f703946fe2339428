"""
Definition Fetcher: startup discovery against the backend.

The chain is strictly sequential: server definitions, then resources, then
prompts for each server. Failing to fetch server definitions is fatal;
failing to fetch resources or prompts only leaves that category empty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from mcp_relay.client import BackendClient
from mcp_relay.errors import FetchFailure, TargetNotFound
from mcp_relay.models import PromptDefinition, ResourceDefinition, ServerDefinition
from mcp_relay.transport import RemoteResponse

logger = logging.getLogger(__name__)


@dataclass
class Discovery:
    """Everything fetched at startup. Read-only once returned."""
    servers: list[ServerDefinition]
    scoped: bool
    target_server_id: str | None = None
    resources: dict[str, list[ResourceDefinition]] = field(default_factory=dict)
    prompts: dict[str, list[PromptDefinition]] = field(default_factory=dict)


class DefinitionFetcher:
    """Reads server, resource and prompt definitions through a BackendClient."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def fetch_target(self, server_id: str) -> ServerDefinition:
        """
        Fetch the definition of one server.

        Raises:
            TargetNotFound: the call failed or no definition came back
        """
        logger.info(f"Fetching server definition for server ID: {server_id}")
        response = await self.backend.list_servers(server_id)
        if response.is_error:
            raise TargetNotFound(server_id, response.failure.describe())

        servers: list[ServerDefinition] = response.result
        if not servers:
            raise TargetNotFound(server_id, "backend returned no server definitions")

        server = next((s for s in servers if s.id == server_id), None)
        if server is None:
            returned = [s.id for s in servers]
            raise TargetNotFound(server_id, f"not in backend response (got {returned})")
        logger.info(f"Found server: {server.name} ({len(server.tools)} tools)")
        return server

    async def fetch_all(self) -> list[ServerDefinition]:
        """
        Fetch every server the API key can access.

        Raises:
            FetchFailure: network/auth/format error
        """
        logger.info("Fetching all accessible server definitions")
        response = await self.backend.list_servers()
        if response.is_error:
            raise _fetch_failure("server definitions", response)
        servers: list[ServerDefinition] = response.result
        logger.info(f"Found {len(servers)} servers: {[s.id for s in servers]}")
        return servers

    async def fetch_resources(self, server_id: str) -> list[ResourceDefinition]:
        response = await self.backend.list_resources(server_id)
        if response.is_error:
            logger.error(
                f"Failed to fetch resource list for server {server_id}: "
                f"{response.failure.describe()}"
            )
            return []
        return response.result

    async def fetch_prompts(self, server_id: str) -> list[PromptDefinition]:
        response = await self.backend.list_prompts(server_id)
        if response.is_error:
            logger.error(
                f"Failed to fetch prompt list for server {server_id}: "
                f"{response.failure.describe()}"
            )
            return []
        return response.result

    async def discover(self, target_server_id: str | None = None) -> Discovery:
        """
        Run the full discovery chain.

        With a target id, only that server is exposed (scoped mode). If the
        target cannot be found, discovery falls back to every accessible
        server (unscoped mode).
        """
        servers: list[ServerDefinition] | None = None
        scoped = False

        if target_server_id:
            try:
                servers = [await self.fetch_target(target_server_id)]
                scoped = True
            except TargetNotFound as e:
                logger.warning(f"{e}. Falling back to all accessible servers.")

        if servers is None:
            servers = await self.fetch_all()

        discovery = Discovery(
            servers=servers,
            scoped=scoped,
            target_server_id=target_server_id if scoped else None,
        )
        for server in servers:
            discovery.resources[server.id] = await self.fetch_resources(server.id)
            discovery.prompts[server.id] = await self.fetch_prompts(server.id)
            logger.info(
                f"Server {server.id}: {len(discovery.resources[server.id])} resources, "
                f"{len(discovery.prompts[server.id])} prompts"
            )
        return discovery


def _fetch_failure(what: str, response: RemoteResponse) -> FetchFailure:
    failure = response.failure
    return FetchFailure(
        f"Failed to fetch {what}: {failure.describe()}",
        status=failure.status,
        body=failure.body,
    )
