"""
Forwarding: turn a local invocation into a backend call and back.

    dispatch(capability, payload, backend)
        tool      → forward_tool_call      → CallToolResult     (errors become isError content)
        resource  → forward_resource_read  → ReadResourceResult (errors raise ResourceReadFailure)
        prompt    → forward_prompt_get     → GetPromptResult    (errors raise PromptRetrievalFailure)

Each call is independent: the only shared state is the read-only capability
record and the backend client. No retries; one failed call yields exactly
one translated error.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

import mcp.types as types
from pydantic import ValidationError

from mcp_relay.client import BackendClient
from mcp_relay.errors import PromptRetrievalFailure, ResourceReadFailure, ToolExecutionFailure
from mcp_relay.registrar import Capability, CapabilityKind
from mcp_relay.transport import CallFailure, FailureKind

logger = logging.getLogger(__name__)

MAX_ERROR_TEXT = 1000
INVALID_TOOL_RESPONSE = "Error: Invalid response format from tool execution server."


# ── Tools ─────────────────────────────────────────────────

def tool_error_message(tool_slug: str, failure: CallFailure) -> str:
    """Deterministic, bounded diagnostic for a failed tool call."""
    if failure.kind is FailureKind.HTTP_STATUS:
        message = f"Error executing tool '{tool_slug}' (Status: {failure.status}). Server Error: {failure.detail}"
    elif failure.kind in (FailureKind.TIMEOUT, FailureKind.NETWORK_ERROR):
        message = f"Error executing tool '{tool_slug}'. {failure.detail}"
    else:
        message = f"Error executing tool '{tool_slug}'. {INVALID_TOOL_RESPONSE} {failure.detail}"
    return message[:MAX_ERROR_TEXT]


def tool_envelope(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


async def forward_tool_call(
    capability: Capability,
    arguments: dict[str, Any] | None,
    backend: BackendClient,
) -> types.CallToolResult:
    """
    Execute a tool remotely.

    Never raises for remote problems: failures come back as a normal
    envelope with isError=True so the client session carries on.
    """
    try:
        body = await _execute_tool(capability, arguments or {}, backend)
    except ToolExecutionFailure as e:
        logger.error(f"Tool {capability.local_id} on server {capability.server_id} failed: {e}")
        return tool_envelope(str(e), is_error=True)

    return tool_envelope(body["result"], is_error=bool(body.get("isError") or False))


async def _execute_tool(
    capability: Capability,
    arguments: dict[str, Any],
    backend: BackendClient,
) -> dict[str, Any]:
    logger.debug(f"Forwarding tool {capability.local_id} -> ({capability.server_id}, {capability.remote_key})")
    response = await backend.execute_tool(capability.server_id, capability.remote_key, arguments)
    if response.is_error:
        raise ToolExecutionFailure(
            tool_error_message(capability.remote_key, response.failure),
            response.failure,
        )

    body = response.result
    if not isinstance(body, dict) or not isinstance(body.get("result"), str):
        raise ToolExecutionFailure(
            INVALID_TOOL_RESPONSE,
            CallFailure(FailureKind.MALFORMED_RESPONSE, "missing string 'result'", body=body),
        )
    return body


# ── Resources ─────────────────────────────────────────────

async def forward_resource_read(
    capability: Capability,
    payload: Any,
    backend: BackendClient,
) -> types.ReadResourceResult:
    """Read a resource by its registered URI. Failures raise ResourceReadFailure."""
    uri = capability.remote_key
    response = await backend.read_resource(capability.server_id, uri)
    if response.is_error:
        failure = response.failure
        logger.error(f"Error proxying read for {uri}: {failure.describe()}")
        if failure.kind is FailureKind.HTTP_STATUS:
            raise ResourceReadFailure(f"Upstream server error: {failure.status}", failure)
        raise ResourceReadFailure(f"Failed to read resource {uri}: {failure.detail}", failure)

    body = response.result
    contents = body.get("contents") if isinstance(body, dict) else body
    items = []
    for item in contents or []:
        if isinstance(item, dict) and "uri" not in item:
            item = {**item, "uri": uri}
        items.append(item)

    try:
        return types.ReadResourceResult.model_validate({"contents": items})
    except ValidationError as e:
        failure = CallFailure(FailureKind.MALFORMED_RESPONSE, str(e), body=body)
        raise ResourceReadFailure(f"Failed to read resource {uri}: malformed contents", failure) from e


# ── Prompts ───────────────────────────────────────────────

def normalize_prompt_arguments(raw: Any) -> Any:
    """
    Undo client quirks in prompt arguments.

    JSON-encoded strings are decoded and a {"params": {"arguments": ...}}
    wrapper is unwrapped. None becomes an empty map.
    """
    args = _maybe_json(raw)
    if isinstance(args, dict) and isinstance(args.get("params"), dict):
        logger.debug("Unwrapping nested params.arguments in prompt arguments")
        args = _maybe_json(args["params"].get("arguments") or {})
    if args is None:
        return {}
    if not isinstance(args, dict):
        logger.warning(f"Prompt arguments are not an object after normalizing: {type(args).__name__}")
    return args


def _maybe_json(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        logger.debug("Prompt argument string is not valid JSON; forwarding as-is")
        return value


def normalize_prompt_response(body: Any, default_description: str | None = None) -> dict[str, Any]:
    """
    Coerce a prompt response into {description, messages}.

    A body with a messages list passes through; a bare list is the message
    list; anything else yields no messages. The response's own description
    wins over the definition's.
    """
    description = default_description or None
    messages: list[Any] = []

    if isinstance(body, dict):
        if isinstance(body.get("messages"), list):
            messages = body["messages"]
        else:
            logger.warning("Unexpected prompt response format; no messages list found")
        if body.get("description"):
            description = body["description"]
    elif isinstance(body, list):
        messages = body
    else:
        logger.warning(f"Unexpected prompt response type {type(body).__name__}; using empty messages")

    return {"description": description, "messages": messages}


async def forward_prompt_get(
    capability: Capability,
    arguments: Any,
    backend: BackendClient,
) -> types.GetPromptResult:
    """Fetch a rendered prompt. Failures raise PromptRetrievalFailure."""
    name = capability.remote_key
    args = normalize_prompt_arguments(arguments)
    response = await backend.get_prompt(capability.server_id, name, args)
    if response.is_error:
        failure = response.failure
        logger.error(f"Error in prompt request for {name!r}: {failure.describe()}")
        if failure.kind is FailureKind.HTTP_STATUS:
            raise PromptRetrievalFailure(f"Upstream server error: {failure.status}", failure)
        raise PromptRetrievalFailure(f"Failed to get prompt {name!r}: {failure.detail}", failure)

    if response.result is None:
        failure = CallFailure(FailureKind.MALFORMED_RESPONSE, "empty response")
        raise PromptRetrievalFailure(f"Invalid response from server for prompt {name!r}", failure)

    normalized = normalize_prompt_response(response.result, capability.description)
    try:
        return types.GetPromptResult.model_validate(normalized)
    except ValidationError as e:
        failure = CallFailure(FailureKind.MALFORMED_RESPONSE, str(e), body=response.result)
        raise PromptRetrievalFailure(f"Invalid messages from server for prompt {name!r}", failure) from e


# ── Dispatch ──────────────────────────────────────────────

Forwarder = Callable[[Capability, Any, BackendClient], Awaitable[Any]]

FORWARDERS: dict[CapabilityKind, Forwarder] = {
    CapabilityKind.TOOL: forward_tool_call,
    CapabilityKind.RESOURCE: forward_resource_read,
    CapabilityKind.PROMPT: forward_prompt_get,
}


async def dispatch(capability: Capability, payload: Any, backend: BackendClient) -> Any:
    """Forward one invocation according to the capability's kind."""
    return await FORWARDERS[capability.kind](capability, payload, backend)
