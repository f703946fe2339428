import json

import httpx
import pytest

from mcp_relay import cli
from mcp_relay.config import RelaySettings
from mcp_relay.errors import FetchFailure
from tests.fake_backend import API_KEY, SERVER_URL, FakeBackend, ping_server, weather_server


@pytest.fixture
def fake() -> FakeBackend:
    backend = FakeBackend([weather_server(), ping_server("srv2")])
    backend.prompts["srv2"] = [{"name": "greet", "description": "Say hello"}]
    return backend


@pytest.fixture
def relay_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MCPKIT_API_KEY", API_KEY)
    monkeypatch.setenv("MCP_SERVER_URL", SERVER_URL)
    for name in ("MCP_RELAY_CONFIG", "MCP_RELAY_TARGET_SERVER_ID", "MCP_RELAY_LOG_FILE",
                 "MCP_RELAY_LOG_LEVEL", "MCP_RELAY_RECURSION_LIMIT"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.mark.asyncio
async def test_list_prints_unscoped_capability_table(fake, capsys):
    # Given
    settings = RelaySettings(api_key=API_KEY, server_url=SERVER_URL)

    # When
    code = await cli.run_relay(settings, list_only=True, http_client=fake.http_client())

    # Then
    assert code == 0
    table = json.loads(capsys.readouterr().out)
    assert table["serverName"] == "MCP Kit Relay"
    assert [t["localIdentifier"] for t in table["tools"]] == ["srv1_get-weather", "srv2_ping"]
    assert table["prompts"][0]["localIdentifier"] == "srv2_greet"
    assert table["resources"] == []


@pytest.mark.asyncio
async def test_list_prints_scoped_capability_table(fake, capsys):
    settings = RelaySettings(api_key=API_KEY, server_url=SERVER_URL, target_server_id="srv1")

    await cli.run_relay(settings, list_only=True, http_client=fake.http_client())

    table = json.loads(capsys.readouterr().out)
    assert table["serverName"] == "Weather"
    assert table["scoped"] is True
    assert [t["localIdentifier"] for t in table["tools"]] == ["Get_Weather"]


@pytest.mark.asyncio
async def test_unauthorized_backend_raises_fetch_failure(fake):
    fake.overrides["/servers"] = httpx.Response(401, json={"error": "Invalid API key"})
    settings = RelaySettings(api_key="wrong", server_url=SERVER_URL)

    with pytest.raises(FetchFailure) as exc_info:
        await cli.run_relay(settings, list_only=True, http_client=fake.http_client())

    assert exc_info.value.status == 401


def test_main_lists_through_configured_backend(fake, relay_env, monkeypatch, capsys):
    # Given
    run_relay = cli.run_relay

    async def run_against_fake(settings, list_only=False):
        return await run_relay(settings, list_only=list_only, http_client=fake.http_client())

    monkeypatch.setattr(cli, "run_relay", run_against_fake)

    # When
    code = cli.main(["--list", "--target-server", "srv2"])

    # Then
    assert code == 0
    table = json.loads(capsys.readouterr().out)
    assert [t["localIdentifier"] for t in table["tools"]] == ["Ping"]


def test_main_without_api_key_exits_with_error(relay_env, monkeypatch, capsys):
    monkeypatch.delenv("MCPKIT_API_KEY")

    code = cli.main(["--list"])

    assert code == 1
    assert "FATAL ERROR: Environment variable MCPKIT_API_KEY is not set." in capsys.readouterr().err


def test_main_with_malformed_config_exits_with_error(relay_env, capsys):
    (relay_env / "mcpconfig.json").write_text("{oops", encoding="utf-8")

    code = cli.main(["--list"])

    assert code == 1
    assert "FATAL ERROR" in capsys.readouterr().err


def test_main_with_unopenable_log_file_exits_with_error(relay_env, capsys):
    log_file = relay_env / "no" / "such" / "dir" / "relay.log"

    code = cli.main(["--log-file", str(log_file), "--list"])

    assert code == 1
    assert f"FATAL ERROR: Cannot open log file {log_file}" in capsys.readouterr().err


def test_main_reports_fetch_failure_with_status(relay_env, monkeypatch, capsys):
    async def failing(settings, list_only=False):
        raise FetchFailure("Failed to fetch server definitions", status=401, body={"error": "Invalid API key"})

    monkeypatch.setattr(cli, "run_relay", failing)

    code = cli.main([])

    assert code == 1
    err = capsys.readouterr().err
    assert f"from {SERVER_URL}/mcp" in err
    assert 'Server responded with status 401: {"error": "Invalid API key"}' in err


def test_main_suggests_recursion_limit_on_stack_overflow(relay_env, monkeypatch, capsys):
    async def overflowing(settings, list_only=False):
        raise RecursionError("maximum recursion depth exceeded")

    monkeypatch.setattr(cli, "run_relay", overflowing)

    code = cli.main([])

    assert code == 1
    assert "--recursion-limit" in capsys.readouterr().err
