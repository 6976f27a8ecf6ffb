"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover (fix a path, retry after editing the inbox) without human help.
"""

import mcp.types as types

from ...errors import HookError, OrgMobileError, SetupError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (setup_error, hook_failed,
            validation_error, server_error, unknown_tool)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


_CORRECTIVE_ACTIONS: dict[str, str] = {
    "hook_failed": "Fix the failing hook command in the 'hooks' config section, then retry.",
    "setup_error": (
        "Check ORG_DIRECTORY, ORGMOBILE_DIRECTORY and ORGMOBILE_INBOX "
        "(or the org/mobile sections of .orgmobile/config.yml)."
    ),
    "sync_error": "Run mobile_status to inspect the staging area, then retry.",
}


def translate_sync_error(error: OrgMobileError) -> types.CallToolResult:
    """Translate a phase failure into a structured error response."""
    match error:
        case HookError():
            kind = "hook_failed"
        case SetupError():
            kind = "setup_error"
        case _:
            kind = "sync_error"
    return build_error_response(kind, str(error), _CORRECTIVE_ACTIONS[kind])
