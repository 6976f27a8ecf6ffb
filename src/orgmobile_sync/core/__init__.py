"""Async helpers shared by the MCP server."""

from .async_utils import run_phase, run_sync

__all__ = ["run_phase", "run_sync"]
