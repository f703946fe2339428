import httpx
import pytest

from mcp_relay.errors import FetchFailure, TargetNotFound
from mcp_relay.fetcher import DefinitionFetcher
from tests.fake_backend import FakeBackend, ping_server, weather_server


@pytest.fixture
def fake() -> FakeBackend:
    fake = FakeBackend([weather_server(), ping_server("srv2")])
    fake.resources["srv1"] = [{"name": "Forecast", "uri": "weather://forecast"}]
    fake.prompts["srv1"] = [{"name": "daily", "arguments": [{"name": "city", "required": True}]}]
    return fake


@pytest.mark.asyncio
async def test_target_id_fetches_only_that_server(fake):
    # Given
    fetcher = DefinitionFetcher(fake.backend_client())

    # When
    discovery = await fetcher.discover("srv1")

    # Then
    assert discovery.scoped
    assert [s.id for s in discovery.servers] == ["srv1"]
    assert discovery.resources["srv1"][0].uri == "weather://forecast"
    assert discovery.prompts["srv1"][0].arguments[0].required
    assert fake.last_request("/servers").url.params["serverId"] == "srv1"


@pytest.mark.asyncio
async def test_requests_carry_bearer_token(fake):
    fetcher = DefinitionFetcher(fake.backend_client())

    await fetcher.discover("srv1")

    assert all(r.headers["Authorization"] == "Bearer test-key" for r in fake.requests)


@pytest.mark.asyncio
async def test_unknown_target_falls_back_to_all_servers(fake, caplog):
    # Given
    fetcher = DefinitionFetcher(fake.backend_client())

    # When
    discovery = await fetcher.discover("missing")

    # Then
    assert not discovery.scoped
    assert discovery.target_server_id is None
    assert [s.id for s in discovery.servers] == ["srv1", "srv2"]
    assert "Falling back" in caplog.text


@pytest.mark.asyncio
async def test_failed_target_fetch_falls_back_to_all_servers(fake):
    # Given
    calls = []

    def servers(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.params.get("serverId"):
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json=fake.servers)

    fake.overrides["/servers"] = servers
    fetcher = DefinitionFetcher(fake.backend_client())

    # When
    discovery = await fetcher.discover("srv1")

    # Then
    assert not discovery.scoped
    assert len(discovery.servers) == 2
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_fetch_target_raises_target_not_found(fake):
    fetcher = DefinitionFetcher(fake.backend_client())

    with pytest.raises(TargetNotFound):
        await fetcher.fetch_target("missing")


@pytest.mark.asyncio
async def test_target_lookup_answered_with_another_server_falls_back(fake):
    # Given
    fake.overrides["/servers"] = lambda request: (
        httpx.Response(200, json=[ping_server("other")])
        if request.url.params.get("serverId")
        else httpx.Response(200, json=fake.servers)
    )
    fetcher = DefinitionFetcher(fake.backend_client())

    # When
    with pytest.raises(TargetNotFound, match="not in backend response"):
        await fetcher.fetch_target("srv1")
    discovery = await fetcher.discover("srv1")

    # Then
    assert not discovery.scoped
    assert [s.id for s in discovery.servers] == ["srv1", "srv2"]


@pytest.mark.asyncio
async def test_primary_fetch_failure_is_fatal(fake):
    # Given
    fake.overrides["/servers"] = httpx.Response(401, json={"error": "Invalid API key"})
    fetcher = DefinitionFetcher(fake.backend_client())

    # When
    with pytest.raises(FetchFailure) as excinfo:
        await fetcher.discover()

    # Then
    assert excinfo.value.status == 401
    assert excinfo.value.body == {"error": "Invalid API key"}
    assert "Invalid API key" in str(excinfo.value)


@pytest.mark.asyncio
async def test_network_error_on_primary_fetch_is_fatal(fake):
    fake.overrides["/servers"] = httpx.ConnectError("connection refused")
    fetcher = DefinitionFetcher(fake.backend_client())

    with pytest.raises(FetchFailure, match="network_error"):
        await fetcher.discover()


@pytest.mark.asyncio
async def test_malformed_definitions_are_a_fetch_failure(fake):
    fake.overrides["/servers"] = httpx.Response(200, json=[{"name": "no id"}])
    fetcher = DefinitionFetcher(fake.backend_client())

    with pytest.raises(FetchFailure, match="malformed_response"):
        await fetcher.discover()


@pytest.mark.asyncio
async def test_secondary_fetch_failures_degrade_to_empty(fake):
    # Given
    fake.overrides["/resources/list"] = httpx.Response(500, json={"error": "db down"})
    fake.overrides["/prompts/list"] = httpx.ReadTimeout("slow")
    fetcher = DefinitionFetcher(fake.backend_client())

    # When
    discovery = await fetcher.discover("srv1")

    # Then
    assert discovery.scoped
    assert discovery.resources == {"srv1": []}
    assert discovery.prompts == {"srv1": []}


@pytest.mark.asyncio
async def test_unscoped_mode_fetches_resources_and_prompts_for_each_server(fake):
    fetcher = DefinitionFetcher(fake.backend_client())

    discovery = await fetcher.discover()

    assert set(discovery.resources) == {"srv1", "srv2"}
    assert discovery.prompts["srv2"] == []


@pytest.mark.asyncio
async def test_empty_backend_is_a_valid_empty_discovery():
    fetcher = DefinitionFetcher(FakeBackend([]).backend_client())

    discovery = await fetcher.discover()

    assert discovery.servers == []
    assert not discovery.scoped
