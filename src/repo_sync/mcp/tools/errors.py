"""Error response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
to help AI agents recover from errors without human intervention.
"""

import mcp.types as types

from ...core.exceptions import (
    RemoteAPIError,
    RemoteAuthError,
    RemoteNetworkError,
    RemoteNotFoundError,
    RemotePermissionError,
    RemoteRateLimitError,
    VersionMismatchError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, permission_denied, version_conflict,
            validation_error, not_connected, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Branch 'dev' not found", "Use repo_list_branches to see branches.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


_ACTIONS: dict[str, str] = {
    "auth": "Check REPO_SYNC_TOKEN (or GITHUB_TOKEN) and restart the server.",
    "permission": "The token lacks access; grant it contents write permission on the repository.",
    "not_found": "Use repo_list_branches to verify the branch exists, and check the repo_id spelling.",
    "not_found_named": "Use repo_list_branches to find branches similar to '{entity_name}'.",
    "version": "The remote changed since the last sync. Run repo_sync, then resolve the new conflicts.",
    "rate_limit": "Wait a minute before retrying.",
    "network": "Check network connectivity to the API and retry.",
    "server": "Retry later.",
}


def translate_remote_error(
    error: RemoteAPIError,
    entity_name: str | None = None,
) -> types.CallToolResult:
    """Translate a remote API exception to a structured error response.

    Args:
        error: Exception raised by ``RepoClient``
        entity_name: Optional branch/path/repository name for contextual hints

    Returns:
        CallToolResult with isError=True and corrective action
    """
    message = str(error)

    match error:
        case VersionMismatchError():
            return build_error_response(
                "version_conflict", message, _ACTIONS["version"]
            )
        case RemoteAuthError():
            return build_error_response(
                "auth_failed", message, _ACTIONS["auth"]
            )
        case RemoteRateLimitError():
            return build_error_response(
                "rate_limited", message, _ACTIONS["rate_limit"]
            )
        case RemotePermissionError():
            return build_error_response(
                "permission_denied", message, _ACTIONS["permission"]
            )
        case RemoteNotFoundError():
            if entity_name:
                action = _ACTIONS["not_found_named"].format(
                    entity_name=entity_name
                )
            else:
                action = _ACTIONS["not_found"]
            return build_error_response("not_found", message, action)
        case RemoteNetworkError():
            return build_error_response(
                "network_error", message, _ACTIONS["network"]
            )
        case _:
            return build_error_response(
                "server_error", message, _ACTIONS["server"]
            )
