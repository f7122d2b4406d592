"""Tests for mcp/tools/errors.py: error response builders.

Covers:
- build_error_response() structure and format
- translate_remote_error() mapping of the RemoteAPIError hierarchy
"""

import mcp.types as types
import pytest

from repo_sync.core.exceptions import (
    RemoteAPIError,
    RemoteAuthError,
    RemoteNetworkError,
    RemoteNotFoundError,
    RemotePermissionError,
    RemoteRateLimitError,
    VersionMismatchError,
)
from repo_sync.mcp.tools.errors import (
    build_error_response,
    translate_remote_error,
)


def _get_error_text(result: types.CallToolResult) -> str:
    """Extract text from first content item with type narrowing for Pyright."""
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


# ---------------------------------------------------------------------------
# build_error_response tests
# ---------------------------------------------------------------------------


class TestBuildErrorResponse:
    def test_is_error_result(self):
        result = build_error_response("not_found", "Not found", "Try again")
        assert isinstance(result, types.CallToolResult)
        assert result.isError is True
        assert len(result.content) == 1

    def test_error_format(self):
        """Text format is 'Error ({type}): {message}\\n\\nAction: {action}'."""
        result = build_error_response(
            "validation_error", "repo_id is required", "Pass repo_id."
        )
        assert _get_error_text(result) == (
            "Error (validation_error): repo_id is required\n\n"
            "Action: Pass repo_id."
        )


# ---------------------------------------------------------------------------
# translate_remote_error tests
# ---------------------------------------------------------------------------


class TestTranslateRemoteError:
    @pytest.mark.parametrize(
        "error, error_type",
        [
            (VersionMismatchError("a.txt", "abc", status_code=409), "version_conflict"),
            (RemoteAuthError("Bad credentials", 401), "auth_failed"),
            (RemoteRateLimitError("API rate limit exceeded", 403), "rate_limited"),
            (RemotePermissionError("Resource not accessible", 403), "permission_denied"),
            (RemoteNotFoundError("Not Found", 404), "not_found"),
            (RemoteNetworkError("Connection refused"), "network_error"),
            (RemoteAPIError("Server Error", 502), "server_error"),
        ],
    )
    def test_error_types(self, error, error_type):
        result = translate_remote_error(error)
        assert result.isError is True
        assert _get_error_text(result).startswith(
            f"Error ({error_type}): {error}"
        )

    def test_version_conflict_suggests_resync(self):
        text = _get_error_text(
            translate_remote_error(VersionMismatchError("a.txt", None))
        )
        assert "Stale write to a.txt: expected version <none>" in text
        assert "repo_sync" in text

    def test_not_found_without_entity(self):
        text = _get_error_text(
            translate_remote_error(RemoteNotFoundError("Not Found", 404))
        )
        assert "verify the branch exists" in text

    def test_not_found_with_entity(self):
        text = _get_error_text(
            translate_remote_error(
                RemoteNotFoundError("Branch not found", 404), "feature/x"
            )
        )
        assert (
            "Action: Use repo_list_branches to find branches similar to "
            "'feature/x'." in text
        )

    def test_entity_ignored_for_other_errors(self):
        text = _get_error_text(
            translate_remote_error(RemoteAuthError("Bad credentials", 401), "dev")
        )
        assert "'dev'" not in text
        assert "REPO_SYNC_TOKEN" in text
