"""MCP tool handlers for repository sync.

This package contains MCP tool implementations that drive the
``SyncOrchestrator`` with async handlers and structured error responses.
"""

from .branch import BRANCH_SPECS, BRANCH_TOOLS
from .errors import build_error_response, translate_remote_error
from .registry import (
    BRANCH_CREATE,
    REPO_READ,
    REPO_WRITE,
    ToolRegistry,
    ToolSpec,
    load_scopes_file,
)
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = SYNC_SPECS + BRANCH_SPECS

__all__ = [
    "build_error_response",
    "translate_remote_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_scopes_file",
    "REPO_READ",
    "REPO_WRITE",
    "BRANCH_CREATE",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "BRANCH_SPECS",
    # Tool lists
    "SYNC_TOOLS",
    "BRANCH_TOOLS",
]
