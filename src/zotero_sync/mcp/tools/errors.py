"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types

from ...errors import ZoteroApiError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, permission_denied,
            rate_limited, validation_error, configuration_error,
            server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Item ABCD1234 not found", "Check the item key.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_api_error(error: ZoteroApiError) -> types.CallToolResult:
    """Translate a Zotero API error into a structured error response."""
    match error.status_code:
        case 401 | 403:
            return build_error_response(
                "permission_denied",
                str(error),
                "Check that ZOTERO_API_KEY is valid and has access to this "
                "library (read access for sync, write access for tag pushes).",
            )
        case 404:
            return build_error_response(
                "not_found",
                str(error),
                "Check ZOTERO_USER_ID / ZOTERO_GROUP_ID and the item key.",
            )
        case 429:
            return build_error_response(
                "rate_limited",
                str(error),
                "Zotero is rate limiting this key. Wait a few minutes and retry.",
            )
        case _:
            return build_error_response(
                "server_error",
                str(error),
                "Retry later; the Zotero API may be temporarily unavailable.",
            )
