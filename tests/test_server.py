from importlib.metadata import version

import httpx
import mcp.types as types
import pytest

from mcp_relay.errors import PromptRetrievalFailure, ResourceReadFailure
from mcp_relay.models import (
    PromptArgumentDefinition,
    PromptDefinition,
    ResourceDefinition,
    ServerDefinition,
)
from mcp_relay.registrar import CapabilityRegistrar
from mcp_relay.server import SERVER_VERSION, RelayServer, advertised_capabilities
from tests.fake_backend import FakeBackend, weather_server


@pytest.fixture
def fake() -> FakeBackend:
    return FakeBackend()


def tools_only_table():
    registrar = CapabilityRegistrar(scoped=True)
    registrar.add_server(ServerDefinition.model_validate(weather_server()))
    return registrar.build(server_name="Weather")


def full_table():
    registrar = CapabilityRegistrar(scoped=True)
    registrar.add_server(ServerDefinition.model_validate(weather_server()))
    registrar.add_resources("srv1", [
        ResourceDefinition(name="read me", uri="file:///readme.md", mime_type="text/markdown"),
        ResourceDefinition(name="broken", uri="not a uri"),
    ])
    registrar.add_prompts("srv1", [
        PromptDefinition(
            name="summarize",
            description="Summarize text",
            arguments=[PromptArgumentDefinition(name="topic", required=True)],
        ),
    ])
    return registrar.build(server_name="Weather")


def test_only_populated_categories_are_advertised():
    # When
    capabilities = advertised_capabilities(tools_only_table())

    # Then
    assert capabilities.tools is not None
    assert capabilities.resources is None
    assert capabilities.prompts is None


def test_all_categories_advertised_when_populated():
    capabilities = advertised_capabilities(full_table())

    assert capabilities.tools is not None
    assert capabilities.resources is not None
    assert capabilities.prompts is not None


def test_handlers_installed_only_for_populated_categories(fake):
    relay = RelayServer(tools_only_table(), fake.backend_client())

    assert types.ListToolsRequest in relay.server.request_handlers
    assert types.CallToolRequest in relay.server.request_handlers
    assert types.ListResourcesRequest not in relay.server.request_handlers
    assert types.ReadResourceRequest not in relay.server.request_handlers
    assert types.GetPromptRequest not in relay.server.request_handlers


def test_initialization_options_carry_name_and_version(fake):
    options = RelayServer(full_table(), fake.backend_client()).initialization_options()

    assert options.server_name == "Weather"
    assert options.server_version == SERVER_VERSION
    assert options.capabilities.prompts is not None


@pytest.mark.asyncio
async def test_list_tools_exposes_translated_schema(fake):
    # Given
    relay = RelayServer(tools_only_table(), fake.backend_client())

    # When
    tools = await relay.list_tools()

    # Then
    assert [t.name for t in tools] == ["Get_Weather"]
    schema = tools[0].inputSchema
    assert schema["properties"]["city"]["type"] == "string"
    assert schema["properties"]["city"]["description"] == "City name"
    assert schema["required"] == ["city"]


@pytest.mark.asyncio
async def test_call_tool_forwards_to_owning_server(fake):
    # Given
    relay = RelayServer(tools_only_table(), fake.backend_client())

    # When
    result = await relay.call_tool("Get_Weather", {"city": "Paris", "days": 2})

    # Then
    assert result.content[0].text == "ran get-weather"
    assert fake.last_request("/execute").url.path == "/mcp/servers/srv1/tools/get-weather/execute"


@pytest.mark.asyncio
async def test_call_tool_through_protocol_handler(fake):
    # Given
    relay = RelayServer(tools_only_table(), fake.backend_client())
    handler = relay.server.request_handlers[types.CallToolRequest]
    request = types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name="Get_Weather", arguments={"city": "Oslo"}),
    )

    # When
    result = await handler(request)

    # Then
    assert result.root.isError is False
    assert result.root.content[0].text == "ran get-weather"


@pytest.mark.asyncio
async def test_unknown_tool_is_rejected(fake):
    relay = RelayServer(tools_only_table(), fake.backend_client())

    with pytest.raises(ValueError, match="Unknown tool"):
        await relay.call_tool("nope", {})


@pytest.mark.asyncio
async def test_missing_required_argument_is_rejected_before_forwarding(fake):
    relay = RelayServer(tools_only_table(), fake.backend_client())

    with pytest.raises(ValueError, match="city"):
        await relay.call_tool("Get_Weather", {"days": 2})

    assert fake.requests == []


@pytest.mark.asyncio
async def test_wrongly_typed_argument_is_rejected(fake):
    relay = RelayServer(tools_only_table(), fake.backend_client())

    with pytest.raises(ValueError, match="Invalid arguments"):
        await relay.call_tool("Get_Weather", {"city": "Paris", "metric": {"not": "a bool"}})


@pytest.mark.asyncio
async def test_list_resources_skips_invalid_uris(fake):
    relay = RelayServer(full_table(), fake.backend_client())

    resources = await relay.list_resources()

    assert len(resources) == 1
    assert resources[0].name == "read_me"
    assert str(resources[0].uri) == "file:///readme.md"
    assert resources[0].mimeType == "text/markdown"


@pytest.mark.asyncio
async def test_read_resource_forwards_to_owning_server(fake):
    relay = RelayServer(full_table(), fake.backend_client())

    result = await relay.read_resource("file:///readme.md")

    assert result.contents[0].text == "contents of file:///readme.md"
    assert fake.last_request("/resources/read").headers["X-Target-Server-Id"] == "srv1"


@pytest.mark.asyncio
async def test_read_unknown_resource_fails(fake):
    relay = RelayServer(full_table(), fake.backend_client())

    with pytest.raises(ResourceReadFailure, match="Unknown resource"):
        await relay.read_resource("file:///other.md")


@pytest.mark.asyncio
async def test_read_resource_upstream_error_is_raised(fake):
    fake.resource_replies["file:///readme.md"] = httpx.Response(404, json={"error": "gone"})
    relay = RelayServer(full_table(), fake.backend_client())

    with pytest.raises(ResourceReadFailure, match="Upstream server error: 404"):
        await relay.read_resource("file:///readme.md")


@pytest.mark.asyncio
async def test_list_prompts_carries_arguments(fake):
    relay = RelayServer(full_table(), fake.backend_client())

    prompts = await relay.list_prompts()

    assert [p.name for p in prompts] == ["summarize"]
    assert prompts[0].arguments[0].name == "topic"
    assert prompts[0].arguments[0].required is True


@pytest.mark.asyncio
async def test_get_prompt_forwards_normalized_arguments(fake):
    relay = RelayServer(full_table(), fake.backend_client())

    result = await relay.get_prompt("summarize", {"params": {"arguments": {"topic": "cats"}}})

    assert result.messages[0].content.text == "prompt summarize"
    request = fake.last_request("/prompts/get")
    assert b'"topic": "cats"' in request.content or b'"topic":"cats"' in request.content


@pytest.mark.asyncio
async def test_get_unknown_prompt_fails(fake):
    relay = RelayServer(full_table(), fake.backend_client())

    with pytest.raises(PromptRetrievalFailure, match="Unknown prompt"):
        await relay.get_prompt("nope", {})


def test_installed_sdk_is_within_supported_major_version():
    assert int(version("mcp").split(".")[0]) == 1
