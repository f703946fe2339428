"""
Relay configuration.

Sources, lowest to highest precedence: defaults, the JSON config file,
environment variables, command-line overrides.

Environment:
    MCPKIT_API_KEY               bearer token for the backend (required)
    MCP_SERVER_URL               backend base URL (default http://localhost:3002)
    MCP_RELAY_CONFIG             config file path (default ./mcpconfig.json)
    MCP_RELAY_TARGET_SERVER_ID   expose only this server (scoped mode)
    MCP_RELAY_LOG_FILE           also write logs to this file
    MCP_RELAY_LOG_LEVEL          DEBUG/INFO/WARNING/ERROR (default INFO)
    MCP_RELAY_RECURSION_LIMIT    interpreter recursion limit for deeply nested payloads

Config file (JSON):
    {"targetServerId": "srv1"}
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from mcp_relay.errors import ConfigInvalid

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://localhost:3002"
DEFAULT_CONFIG_PATH = "mcpconfig.json"
API_PATH = "/mcp"
PLACEHOLDER_SERVER_ID = "YOUR_SERVER_ID_HERE"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
MIN_RECURSION_LIMIT = 100


@dataclass(frozen=True)
class RelaySettings:
    """Validated relay settings."""
    api_key: str
    server_url: str = DEFAULT_SERVER_URL
    target_server_id: str | None = None
    tool_timeout: float = 30.0
    request_timeout: float = 120.0
    log_file: str | None = None
    log_level: str = "INFO"
    recursion_limit: int | None = None
    config_path: str | None = None

    @property
    def api_root(self) -> str:
        return f"{self.server_url.rstrip('/')}{API_PATH}"

    @property
    def scoped(self) -> bool:
        return bool(self.target_server_id)


def read_config_file(path: str | os.PathLike) -> dict[str, Any]:
    """
    Read the JSON config file. A missing file is an empty config.

    Raises:
        ConfigInvalid: unreadable file, invalid JSON or non-object top level
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.info(f"Config file not found at: {config_path}")
        return {}

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigInvalid(f"Cannot read config file {config_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigInvalid(f"Config file {config_path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigInvalid(f"Config file {config_path} must contain a JSON object")
    return data


def normalize_target(value: Any, source: str) -> str | None:
    """Blank values and the template placeholder mean "no target"."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigInvalid(f"targetServerId in {source} must be a string, got {type(value).__name__}")
    value = value.strip()
    if not value or value == PLACEHOLDER_SERVER_ID:
        return None
    return value


def load_settings(
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RelaySettings:
    """
    Build RelaySettings from the config file, environment and overrides.

    Args:
        env: Environment mapping (defaults to os.environ)
        overrides: Command-line values; None entries are ignored

    Raises:
        ConfigInvalid: missing API key or any malformed value
    """
    env = os.environ if env is None else env
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    config_path = overrides.pop("config_path", None) or env.get("MCP_RELAY_CONFIG") or DEFAULT_CONFIG_PATH
    file_config = read_config_file(config_path)

    target = normalize_target(file_config.get("targetServerId"), str(config_path))
    if env.get("MCP_RELAY_TARGET_SERVER_ID") is not None:
        target = normalize_target(env["MCP_RELAY_TARGET_SERVER_ID"], "MCP_RELAY_TARGET_SERVER_ID")

    api_key = (env.get("MCPKIT_API_KEY") or "").strip()
    if not api_key:
        raise ConfigInvalid("Environment variable MCPKIT_API_KEY is not set.")

    settings = RelaySettings(
        api_key=api_key,
        server_url=env.get("MCP_SERVER_URL") or DEFAULT_SERVER_URL,
        target_server_id=target,
        log_file=env.get("MCP_RELAY_LOG_FILE") or None,
        log_level=env.get("MCP_RELAY_LOG_LEVEL") or "INFO",
        recursion_limit=_int_or_none(env.get("MCP_RELAY_RECURSION_LIMIT"), "MCP_RELAY_RECURSION_LIMIT"),
        config_path=str(config_path),
    )

    if "target_server_id" in overrides:
        overrides["target_server_id"] = normalize_target(overrides["target_server_id"], "--target-server")
    settings = replace(settings, **overrides)

    _validate(settings)
    logger.info(
        f"Loaded config from {settings.config_path}: server={settings.server_url}, "
        f"target={settings.target_server_id or 'all servers'}"
    )
    return settings


def _int_or_none(value: str | None, name: str) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ConfigInvalid(f"{name} must be an integer, got {value!r}") from e


def _validate(settings: RelaySettings) -> None:
    if not settings.server_url.startswith(("http://", "https://")):
        raise ConfigInvalid(f"Server URL must start with http:// or https://, got {settings.server_url!r}")
    if settings.tool_timeout <= 0 or settings.request_timeout <= 0:
        raise ConfigInvalid("Timeouts must be positive")
    if settings.log_level.upper() not in LOG_LEVELS:
        raise ConfigInvalid(f"Unknown log level {settings.log_level!r}; use one of {', '.join(LOG_LEVELS)}")
    if settings.recursion_limit is not None and settings.recursion_limit < MIN_RECURSION_LIMIT:
        raise ConfigInvalid(f"Recursion limit must be at least {MIN_RECURSION_LIMIT}")
