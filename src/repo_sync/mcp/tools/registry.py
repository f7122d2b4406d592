"""ToolSpec and ToolRegistry for scope-based tool filtering.

This module provides a centralized registry for MCP tools that supports
filtering based on access scopes, enabling operators to restrict which
tools are exposed to AI agents (for example a read-only deployment that
can inspect sync status but never write to the remote).

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, required scopes,
  and an async handler with signature (orchestrator, args) -> CallToolResult.
- ToolRegistry: Filters specs by allowed scopes at construction time,
  then provides list_tools() and call_tool() dispatch with error translation.
- load_scopes_file: Reads a simple text file of scope names.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import mcp.types as types

from ...core.exceptions import RemoteAPIError
from ...sync.orchestrator import NotConnectedError, SyncOrchestrator

logger = logging.getLogger(__name__)

# Scopes known to the built-in tools.
REPO_READ = "REPO_READ"
REPO_WRITE = "REPO_WRITE"
BRANCH_CREATE = "BRANCH_CREATE"
KNOWN_SCOPES = frozenset({REPO_READ, REPO_WRITE, BRANCH_CREATE})


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        scopes: Scopes required to use this tool.
            Empty frozenset means the tool is always available.
        handler: Async handler with signature (orchestrator, args) -> CallToolResult.
    """

    tool: types.Tool
    scopes: frozenset[str]
    handler: Callable[
        [SyncOrchestrator, dict], Awaitable[types.CallToolResult]
    ]


class ToolRegistry:
    """Registry of ToolSpecs with optional scope-based filtering.

    If allowed_scopes is None, all specs are included.
    Otherwise, a spec is included only if:
    - its scopes set is empty (always available), or
    - its scopes are a subset of allowed_scopes.
    """

    def __init__(
        self,
        specs: list[ToolSpec],
        allowed_scopes: frozenset[str] | None = None,
    ):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if (
                allowed_scopes is None
                or not spec.scopes
                or spec.scopes <= allowed_scopes
            ):
                self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered (permitted) specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        orchestrator: SyncOrchestrator,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Remote API errors, validation errors and unexpected exceptions are
        translated into structured CallToolResult responses with corrective
        actions.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_remote_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(orchestrator, args)
        except NotConnectedError as e:
            return build_error_response(
                "not_connected",
                str(e),
                "Call repo_connect with repo_id='owner/name' first.",
            )
        except RemoteAPIError as e:
            logger.warning("Remote API error in %s: %s", name, e)
            return translate_remote_error(e, _entity_from_args(args))
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log and retry later.",
            )


def _entity_from_args(args: dict) -> str | None:
    """Pick the argument naming the thing a tool acted on, for error hints."""
    for key in ("branch", "name", "repo_id", "path"):
        value = args.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def load_scopes_file(path: str | Path) -> frozenset[str]:
    """Load allowed scopes from a text file.

    Format: one scope per line, ``#`` for comments, blank lines ignored.

    Example file::

        # Read-only deployment
        REPO_READ

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file contains invalid scopes or is empty.
    """
    path = Path(path)
    scopes: set[str] = set()
    for line_num, line in enumerate(path.read_text().splitlines(), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if not stripped.replace("_", "").isalpha() or not stripped.isupper():
            raise ValueError(
                f"Invalid scope '{stripped}' at line {line_num} in {path}. "
                "Expected UPPER_SNAKE_CASE (e.g., REPO_READ)."
            )
        if stripped not in KNOWN_SCOPES:
            logger.warning(
                "Scope %s at line %d in %s is not used by any built-in tool",
                stripped,
                line_num,
                path,
            )
        scopes.add(stripped)
    if not scopes:
        raise ValueError(
            f"No scopes found in {path}. File must contain at least one scope."
        )
    return frozenset(scopes)
