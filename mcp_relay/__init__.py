"""
MCP Relay: stdio MCP front end for a remote MCP kit backend.

Architecture:
    ┌──────────────┐     stdio      ┌──────────────┐     HTTPS     ┌──────────────┐
    │  MCP client  │ ──────────── │    Relay     │ ──────────── │   Backend    │
    │ (desktop app)│   JSON-RPC   │ (this proc)  │  bearer key  │  (servers)   │
    └──────────────┘               └──────────────┘               └──────────────┘

At startup the relay fetches server definitions (tools, resources,
prompts) from the backend, maps them to protocol-legal identifiers and
typed argument schemas, and builds an immutable capability table.
Each invocation is then forwarded as one HTTP call.

The DefinitionFetcher handles discovery, the CapabilityRegistrar builds
the table, `dispatch` forwards calls, and RelayServer serves the table
over stdio. The LangChain bridge exposes the same tools to agents.
"""

from mcp_relay.client import BackendClient
from mcp_relay.dispatch import dispatch
from mcp_relay.fetcher import DefinitionFetcher, Discovery
from mcp_relay.naming import sanitize
from mcp_relay.registrar import (
    Capability,
    CapabilityKind,
    CapabilityRegistrar,
    CapabilityTable,
    build_capability_table,
)
from mcp_relay.schema import translate
from mcp_relay.server import RelayServer
from mcp_relay.transport import HttpTransport

__version__ = "0.1.0"


# Bridge requires langchain, imported lazily
def to_langchain_tools(*args, **kwargs):
    from mcp_relay.bridge import to_langchain_tools as _impl
    return _impl(*args, **kwargs)


def register_relay_tools(*args, **kwargs):
    from mcp_relay.bridge import register_relay_tools as _impl
    return _impl(*args, **kwargs)


__all__ = [
    "BackendClient",
    "Capability",
    "CapabilityKind",
    "CapabilityRegistrar",
    "CapabilityTable",
    "DefinitionFetcher",
    "Discovery",
    "HttpTransport",
    "RelayServer",
    "build_capability_table",
    "dispatch",
    "register_relay_tools",
    "sanitize",
    "to_langchain_tools",
    "translate",
]
