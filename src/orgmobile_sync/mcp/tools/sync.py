"""MCP tool handlers for the MobileOrg phases.

Defines four tools:

- ``mobile_push``   -- export the canonical documents to the staging area.
- ``mobile_pull``   -- ingest captures and apply change requests.
- ``mobile_apply``  -- re-apply requests in an explicit inbox range.
- ``mobile_status`` -- read-only summary of staging area and inbox.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_phase, run_sync
from ...sync.engine import MobileSync
from ...sync.reporter import (
    format_apply_report,
    format_pull_report,
    format_push_report,
    format_status,
    report_to_json,
)
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


_PUSH_TOOL = types.Tool(
    name="mobile_push",
    description=(
        "Export the canonical Org documents to the MobileOrg staging "
        "directory: copies, index.org, agendas.org and checksums."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    ),
    inputSchema={"type": "object", "properties": {}, "required": []},
)

_PULL_TOOL = types.Tool(
    name="mobile_pull",
    description=(
        "Move new MobileOrg captures into the inbox and apply the flagged "
        "change requests among them. Failed requests stay in the inbox "
        "with an inline error message."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=False,
    ),
    inputSchema={"type": "object", "properties": {}, "required": []},
)

_APPLY_TOOL = types.Tool(
    name="mobile_apply",
    description=(
        "Apply the change requests in a character range of the inbox "
        "(default: the whole inbox). Use after fixing retained requests."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=False,
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "start": {
                "type": "integer",
                "minimum": 0,
                "default": 0,
                "description": "Offset of the first character to process",
            },
            "end": {
                "type": "integer",
                "minimum": 0,
                "description": "Offset just past the region (default: end of inbox)",
            },
        },
        "required": [],
    },
)

_STATUS_TOOL = types.Tool(
    name="mobile_status",
    description=(
        "Show the checksum manifest, waiting capture bytes, and pending "
        "requests in the inbox. Changes nothing."
    ),
    annotations=types.ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    ),
    inputSchema={"type": "object", "properties": {}, "required": []},
)

SYNC_TOOLS: list[types.Tool] = [_PUSH_TOOL, _PULL_TOOL, _APPLY_TOOL, _STATUS_TOOL]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _result(text: str, structured: dict) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


def _offset(args: dict[str, Any], key: str) -> int | None:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
    return value


async def _handle_push(sync: MobileSync, args: dict[str, Any]) -> types.CallToolResult:
    report = await run_phase(sync.push)
    return _result(format_push_report(report), report_to_json(report))


async def _handle_pull(sync: MobileSync, args: dict[str, Any]) -> types.CallToolResult:
    report = await run_phase(sync.pull)
    return _result(format_pull_report(report), report_to_json(report))


async def _handle_apply(sync: MobileSync, args: dict[str, Any]) -> types.CallToolResult:
    start = _offset(args, "start") or 0
    end = _offset(args, "end")
    if end is not None and end < start:
        raise ValueError(f"end ({end}) is before start ({start})")
    report = await run_phase(sync.apply, start, end)
    return _result(format_apply_report(report), report_to_json(report))


async def _handle_status(sync: MobileSync, args: dict[str, Any]) -> types.CallToolResult:
    report = await run_sync(sync.status)
    return _result(format_status(report), report_to_json(report))


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=_PUSH_TOOL, writes=True, handler=_handle_push),
    ToolSpec(tool=_PULL_TOOL, writes=True, handler=_handle_pull),
    ToolSpec(tool=_APPLY_TOOL, writes=True, handler=_handle_apply),
    ToolSpec(tool=_STATUS_TOOL, writes=False, handler=_handle_status),
]
