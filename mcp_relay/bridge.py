"""
Bridge between the relay's capability table and LangChain.

Every relayed tool can also be handed to a LangChain agent directly, without
going through the stdio server. Calls take the same forwarding path, so the
agent sees the same envelope text a protocol client would.

Usage:
    from mcp_relay.bridge import to_langchain_tools, register_relay_tools

    # All tools as StructuredTools
    tools = to_langchain_tools(table, backend)

    # Into any registry exposing register_langchain_tool(...)
    register_relay_tools(table, backend, tool_registry)
"""

from __future__ import annotations

from typing import Any

from langchain_core.tools import StructuredTool

from mcp_relay.client import BackendClient
from mcp_relay.dispatch import dispatch
from mcp_relay.registrar import Capability, CapabilityKind, CapabilityTable
from mcp_relay.schema import validate_arguments


def to_langchain_tool(
    capability: Capability,
    backend: BackendClient,
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that forwards to the backend.

    Args:
        capability: A tool capability from the table
        backend: Client used for the remote call
        description_override: Optional override for the tool description

    Returns:
        A StructuredTool whose coroutine returns the envelope text.
    """
    if capability.kind is not CapabilityKind.TOOL:
        raise ValueError(f"{capability.local_id} is a {capability.kind.value}, not a tool")

    description = description_override or capability.description or f"Relayed tool: {capability.local_id}"

    async def _call_relay(**kwargs: Any) -> str:
        """Proxy call to the backend tool."""
        try:
            if capability.schema is not None:
                validate_arguments(capability.schema, kwargs)
            result = await dispatch(capability, kwargs, backend)
        except ValueError as e:
            return f"Error calling {capability.local_id}: {e}"
        text = "\n".join(item.text for item in result.content if item.type == "text")
        if result.isError:
            return f"Error calling {capability.local_id}: {text}"
        return text

    return StructuredTool.from_function(
        coroutine=_call_relay,
        name=capability.local_id,
        description=description,
        args_schema=capability.input_schema,
        infer_schema=False,
    )


def to_langchain_tools(table: CapabilityTable, backend: BackendClient) -> list[StructuredTool]:
    """Wrap every tool in the table."""
    return [to_langchain_tool(c, backend) for c in table.tools]


def register_relay_tools(
    table: CapabilityTable,
    backend: BackendClient,
    tool_registry: Any,
    domain_tags: dict[str, list[str]] | None = None,
    prompt_instructions: dict[str, str] | None = None,
) -> list[str]:
    """
    Register every relayed tool in an agent tool registry.

    Args:
        table: Capability table built at startup
        backend: Client used for the remote calls
        tool_registry: Any object with register_langchain_tool(tool_id, tool,
                       prompt_instructions, domain_tags)
        domain_tags: Optional {local_id: [tags]} for categorization
        prompt_instructions: Optional {local_id: instructions} overrides

    Returns:
        List of registered tool IDs.
    """
    domain_tags = domain_tags or {}
    prompt_instructions = prompt_instructions or {}
    registered = []

    for capability in table.tools:
        lc_tool = to_langchain_tool(capability, backend)

        instructions = prompt_instructions.get(capability.local_id)
        if not instructions:
            instructions = _auto_prompt_instructions(capability)

        tool_registry.register_langchain_tool(
            tool_id=capability.local_id,
            tool=lc_tool,
            prompt_instructions=instructions,
            domain_tags=domain_tags.get(capability.local_id, [capability.server_id]),
        )
        registered.append(capability.local_id)

    return registered


def _auto_prompt_instructions(capability: Capability) -> str:
    """Generate prompt instructions from a tool's input schema."""
    schema = capability.input_schema
    params = schema.get("properties", {})
    required = set(schema.get("required", []))

    lines = [f"## Tool: {capability.local_id}", capability.description, ""]
    if params:
        lines.append("Parameters:")
        for pname, pinfo in params.items():
            ptype = pinfo.get("type", "any")
            pdesc = pinfo.get("description", "")
            flag = "" if pname in required else ", optional"
            lines.append(f"  - {pname} ({ptype}{flag}): {pdesc}")

    return "\n".join(lines)
