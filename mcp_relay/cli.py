"""
mcp-relay: expose a remote MCP kit backend to a local stdio client.

This is the process entry point. It:
1. Loads settings (config file, environment, flags)
2. Fetches server/tool/resource/prompt definitions from the backend
3. Builds the capability table
4. Serves it over stdio until the client disconnects

Usage:
    # Expose every server the API key can access
    MCPKIT_API_KEY=... mcp-relay

    # Expose a single server under its own tool names
    MCPKIT_API_KEY=... mcp-relay --target-server srv1

    # Print the capability table instead of serving
    MCPKIT_API_KEY=... mcp-relay --list

stdout carries the JSON-RPC stream; every log line goes to stderr (and the
optional log file).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import httpx

from mcp_relay.client import BackendClient
from mcp_relay.config import RelaySettings, load_settings
from mcp_relay.errors import ConfigInvalid, FetchFailure
from mcp_relay.fetcher import DefinitionFetcher
from mcp_relay.registrar import build_capability_table
from mcp_relay.server import RelayServer
from mcp_relay.transport import HttpTransport

logger = logging.getLogger("mcp_relay")

LOG_FORMAT = "%(levelname)s: %(message)s"
FILE_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

RECURSION_HINT = (
    "Fatal Error: maximum recursion depth exceeded.\n"
    "This likely occurred while handling a deeply nested payload (e.g. a large embedded resource blob).\n"
    "Restart the relay with a higher recursion limit, for example:\n"
    "  mcp-relay --recursion-limit 20000\n"
    "or set MCP_RELAY_RECURSION_LIMIT=20000 in the environment."
)


def configure_logging(settings: RelaySettings) -> None:
    """Route logs to stderr (and the log file if one is configured)."""
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())

    if settings.log_file:
        handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        root.addHandler(handler)
        logger.info(f"Log file: {settings.log_file}")

    if settings.log_level.upper() != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-relay",
        description="Relay a remote MCP kit backend to a local stdio MCP client.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mcp-relay
  mcp-relay --target-server srv1
  mcp-relay --list --log-level DEBUG
        """,
    )
    parser.add_argument("--config", dest="config_path", type=str, default=None,
                        help="Path to the JSON config file (default: ./mcpconfig.json)")
    parser.add_argument("--target-server", dest="target_server_id", type=str, default=None,
                        help="Expose only this server id (scoped mode)")
    parser.add_argument("--server-url", dest="server_url", type=str, default=None,
                        help="Backend base URL (default: http://localhost:3002)")
    parser.add_argument("--log-file", dest="log_file", type=str, default=None,
                        help="Also write logs to this file")
    parser.add_argument("--log-level", dest="log_level", type=str, default=None,
                        help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--recursion-limit", dest="recursion_limit", type=int, default=None,
                        help="Interpreter recursion limit for deeply nested payloads")
    parser.add_argument("--list", action="store_true",
                        help="Print the capability table as JSON and exit")
    return parser


async def run_relay(
    settings: RelaySettings,
    list_only: bool = False,
    http_client: httpx.AsyncClient | None = None,
) -> int:
    """
    Run the startup chain and serve.

    Raises:
        FetchFailure: the server definitions could not be fetched
    """
    transport = HttpTransport(
        settings.api_root,
        settings.api_key,
        timeout=settings.request_timeout,
        client=http_client,
    )
    backend = BackendClient(transport, tool_timeout=settings.tool_timeout)

    try:
        discovery = await DefinitionFetcher(backend).discover(settings.target_server_id)
        table = build_capability_table(discovery)

        if list_only:
            print(json.dumps(table.to_dict(), indent=2))
            return 0

        await RelayServer(table, backend).run()
        return 0
    finally:
        await backend.close()


def _fatal(message: str) -> int:
    logger.debug("Fatal error details", exc_info=True)
    print(message, file=sys.stderr, flush=True)
    return 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stderr)

    overrides = {
        "config_path": args.config_path,
        "target_server_id": args.target_server_id,
        "server_url": args.server_url,
        "log_file": args.log_file,
        "log_level": args.log_level,
        "recursion_limit": args.recursion_limit,
    }

    try:
        settings = load_settings(overrides=overrides)
    except ConfigInvalid as e:
        return _fatal(f"FATAL ERROR: {e}")

    try:
        configure_logging(settings)
    except OSError as e:
        return _fatal(f"FATAL ERROR: Cannot open log file {settings.log_file}: {e}")
    if settings.recursion_limit:
        sys.setrecursionlimit(settings.recursion_limit)
        logger.info(f"Recursion limit set to {settings.recursion_limit}")

    try:
        return asyncio.run(run_relay(settings, list_only=args.list))
    except RecursionError:
        return _fatal(RECURSION_HINT)
    except FetchFailure as e:
        message = (
            f"Fatal error initializing MCP Local Relay: Failed to connect or process definitions "
            f"from {settings.api_root}. Ensure the central server is running and API key is valid. "
            f"Error: {e}"
        )
        if e.status is not None:
            message += f" Server responded with status {e.status}: {json.dumps(e.body, default=str)}"
        return _fatal(message)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
