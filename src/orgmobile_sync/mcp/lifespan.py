"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from pydantic import ValidationError

from ..config import check_setup, load_runtime_config
from ..core.async_utils import init_phase_lock
from ..errors import SetupError
from ..sync.engine import MobileSync

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env, the YAML config, and CLI overrides via load_runtime_config()
    - Validate the org, staging and inbox locations
    - Fail fast if any of them is unusable

    Args:
        config_overrides: Optional dict with org_directory, mobile_directory, inbox

    Yields:
        Dict with 'sync' key containing the MobileSync instance

    Raises:
        RuntimeError: If configuration is invalid or a location is unusable.
    """
    logger.info("MCP server starting...")
    _stderr_print("orgmobile-sync MCP server starting...")

    overrides = config_overrides or {}
    try:
        config, _, sources = load_runtime_config(
            {
                "org_directory": overrides.get("org_directory"),
                "mobile_directory": overrides.get("mobile_directory"),
                "inbox": overrides.get("inbox"),
            }
        )
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")

        check_setup(config)
        sync = MobileSync(config)
    except (SetupError, ValidationError) as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(
            "  Ensure ORG_DIRECTORY and ORGMOBILE_DIRECTORY point at existing directories."
        )
        raise RuntimeError(f"Configuration error: {e}") from e

    _stderr_print(f"  Org directory: {config.org_directory}")
    _stderr_print(f"  MobileOrg directory: {config.mobile_directory}")
    _stderr_print(f"  Inbox: {config.inbox_for_pull}")
    init_phase_lock()
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {"sync": sync}

    # Shutdown
    logger.info("MCP server shutting down")
    _stderr_print("orgmobile-sync MCP server shutting down.")
