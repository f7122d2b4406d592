"""MCP Server for repository sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents keep a file tree in sync with a branch of a remote repository.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import ensure_config
from ..core.async_utils import run_sync
from ..logger import setup_logging
from ..sync.orchestrator import SyncOrchestrator
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    load_scopes_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("repo-sync-mcp-server")

# Global orchestrator instance (initialized in lifespan)
_orchestrator: SyncOrchestrator | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, no scope required)
# ---------------------------------------------------------------------------


async def _handle_ping(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- test API connectivity and the token."""
    try:
        login = await run_sync(orchestrator.client.validate_connection)
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Repo sync MCP server connected successfully. Authenticated as: {login}",
                )
            ]
        )
    except Exception as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"API connection failed: {e}. Check REPO_SYNC_API_URL and REPO_SYNC_TOKEN.",
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test API connectivity and return the authenticated user",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    scopes=frozenset(),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_orchestrator() -> SyncOrchestrator:
    """Get the global SyncOrchestrator instance.

    Raises:
        RuntimeError: If the orchestrator is not initialized
    """
    if _orchestrator is None:
        raise RuntimeError(
            "SyncOrchestrator not initialized. Server lifespan not started."
        )
    return _orchestrator


def set_orchestrator(orchestrator: SyncOrchestrator | None) -> None:
    global _orchestrator
    _orchestrator = orchestrator


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List all registered (and permitted) tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    orchestrator = get_orchestrator()
    try:
        return await get_registry().call_tool(name, arguments, orchestrator)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def build_registry(scopes_file: str | None = None) -> ToolRegistry:
    """Build the registry, filtered by *scopes_file* when given."""
    allowed_scopes = None
    if scopes_file:
        allowed_scopes = load_scopes_file(scopes_file)
        logger.info(
            "Loaded %d scopes from %s", len(allowed_scopes), scopes_file
        )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, allowed_scopes)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if scopes_file:
        print(
            f"Scopes file: {scopes_file} "
            f"({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )
    return registry


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    API token via the lifespan manager, and starts the server with stdio
    transport for JSON-RPC communication.

    Args:
        config_overrides: Optional dict with config values to override
            (token, api_url, insecure, debug, log_file, scopes_file,
            repository, branch)
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing reaches stdout during
    # protocol negotiation.
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    try:
        registry = build_registry(overrides.get("scopes_file"))
    except (OSError, ValueError) as e:
        print(f"ERROR: Invalid scopes file: {e}", file=sys.stderr)
        raise RuntimeError(f"Invalid scopes file: {e}") from e
    set_registry(registry)

    # set_orchestrator() is called here rather than in the lifespan: under
    # `python -m repo_sync.mcp.server` this module is __main__, and a
    # `from . import server` in lifespan.py would set a separate copy.
    async with server_lifespan(config_overrides=config_overrides) as ctx:
        set_orchestrator(ctx["orchestrator"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="repo-sync-mcp-server",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_orchestrator(None)
            set_registry(None)


_EPILOG = """
Examples:
  # Run with default config (from .env or .repo_sync/config.yml)
  repo-sync-mcp-server

  # Write a commented starter config to .repo_sync/config.yml
  repo-sync-mcp-server --init-config

  # Connect to a repository at startup
  repo-sync-mcp-server --repository octo/notes --branch main

  # Use a GitHub Enterprise API
  repo-sync-mcp-server --api-url https://ghe.example.com/api/v3

  # Expose read-only tools
  repo-sync-mcp-server --scopes-file /etc/repo-sync/read-only.scopes

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
"""


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-sync-mcp-server",
        description="Repo Sync MCP Server - keep a file tree in sync with a remote repository branch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_EPILOG,
    )

    remote = parser.add_argument_group("remote")
    remote.add_argument(
        "--api-url",
        help="Override API base URL (takes precedence over REPO_SYNC_API_URL env var and config files)",
    )
    remote.add_argument(
        "--token",
        help="Override API token (takes precedence over REPO_SYNC_TOKEN env var and config files)"
        " (visible in process list -- prefer REPO_SYNC_TOKEN env var for security)",
    )
    remote.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )

    sync = parser.add_argument_group("sync")
    sync.add_argument(
        "--repository",
        metavar="OWNER/NAME",
        help="Connect to this repository at startup (overrides sync.repository)",
    )
    sync.add_argument(
        "--branch",
        help="Branch to connect to at startup (overrides sync.branch)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/repo-sync-mcp-server.log",
        help="Log file path (default: /tmp/repo-sync-mcp-server.log)",
    )
    parser.add_argument(
        "--scopes-file",
        help="Path to scopes file restricting available tools. "
        "Format: one scope per line (REPO_READ, REPO_WRITE, BRANCH_CREATE), # for comments. "
        "If not specified, all tools are available.",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a starter config file if none exists, print its path and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"repo-sync-mcp-server version {__version__}",
    )
    return parser


def _overrides_from_args(args: argparse.Namespace) -> dict:
    """Collect the CLI values that were actually given."""
    overrides = {}
    for key in (
        "api_url",
        "token",
        "repository",
        "branch",
        "log_file",
        "scopes_file",
    ):
        value = getattr(args, key)
        if value:
            overrides[key] = value
    for flag in ("insecure", "debug"):
        if getattr(args, flag):
            overrides[flag] = True
    return overrides


def run() -> None:
    """Console entry point: parse arguments and run the server until EOF."""
    args = _build_parser().parse_args()

    if args.init_config:
        print(ensure_config())
        return

    config_overrides = _overrides_from_args(args)
    if config_overrides:
        shown = [k for k in config_overrides if k != "token"]
        print(
            f"Config overrides from CLI: {', '.join(shown)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
