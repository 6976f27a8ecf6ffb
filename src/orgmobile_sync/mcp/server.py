"""MCP Server for MobileOrg synchronisation using stdio transport.

Exposes the push, pull, apply and status phases as tools so an agent can
drive a sync round-trip.

Transport: stdio
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
from ..logger import DEFAULT_MCP_LOG_FILE, setup_logging
from ..sync.engine import MobileSync
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("orgmobile-sync")

# Global sync instance (initialized in lifespan)
_mobile_sync: MobileSync | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_sync() -> MobileSync:
    """Get the global MobileSync instance.

    Raises:
        RuntimeError: If the instance is not initialized
    """
    if _mobile_sync is None:
        raise RuntimeError(
            "MobileSync not initialized. Server lifespan not started."
        )
    return _mobile_sync


def set_sync(sync: MobileSync | None) -> None:
    """Set the global MobileSync instance, or None to clear."""
    global _mobile_sync
    _mobile_sync = sync


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List the registered sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    sync = get_sync()
    try:
        return await get_registry().call_tool(name, arguments, sync)
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


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up file-only logging, validates the configured locations via the
    lifespan manager, and serves JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with org_directory, mobile_directory,
            inbox, log_file and read_only
    """
    overrides = config_overrides or {}

    # Must run BEFORE stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=overrides.get("log_file"))

    registry = ToolRegistry(ALL_SPECS, read_only=overrides.get("read_only", False))
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    set_registry(registry)

    # set_sync() is called here rather than in the lifespan so that running
    # this file as __main__ still updates this module's global.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_sync(ctx["sync"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="orgmobile-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_sync(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="orgmobile-sync MCP server - MobileOrg push/pull as MCP tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .orgmobile/config.yml)
  orgmobile-sync-mcp

  # Override locations
  orgmobile-sync-mcp --org-directory ~/org --mobile-directory ~/Dropbox/MobileOrg

  # Only expose mobile_status
  orgmobile-sync-mcp --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    parser.add_argument(
        "--org-directory",
        help="Override the canonical Org directory (takes precedence over ORG_DIRECTORY)",
    )
    parser.add_argument(
        "--mobile-directory",
        help="Override the staging directory (takes precedence over ORGMOBILE_DIRECTORY)",
    )
    parser.add_argument(
        "--inbox",
        help="Override the inbox file (takes precedence over ORGMOBILE_INBOX)",
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_MCP_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_MCP_LOG_FILE})",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only register tools that do not write (mobile_status)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"orgmobile-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {
        "org_directory": args.org_directory,
        "mobile_directory": args.mobile_directory,
        "inbox": args.inbox,
        "log_file": args.log_file,
        "read_only": args.read_only,
    }

    try:
        asyncio.run(main(config_overrides=config_overrides))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
