"""MCP tool handlers for MobileOrg synchronisation.

This package wraps the synchronous ``MobileSync`` phases with async
handlers, text/JSON report output, and structured error responses.
"""

from .errors import build_error_response
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = SYNC_SPECS

__all__ = [
    "build_error_response",
    "ToolSpec",
    "ToolRegistry",
    "ALL_SPECS",
    "SYNC_SPECS",
    "SYNC_TOOLS",
]
