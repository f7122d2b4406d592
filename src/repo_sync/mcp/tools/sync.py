"""MCP tool handlers for repository sync.

Defines the tools that drive a ``SyncOrchestrator``:

- ``repo_connect`` / ``repo_disconnect`` -- connection lifecycle.
- ``repo_update_files`` -- replace the local snapshot.
- ``repo_list_local_files`` -- show the snapshot with known versions.
- ``repo_sync`` -- run a sync pass.
- ``repo_sync_status`` -- current status.
- ``repo_conflict_diff`` -- unified diff of one conflict.
- ``repo_resolve_conflicts`` -- resolve recorded conflicts.

File content crosses the MCP boundary as UTF-8 text.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...sync.models import ConflictResolution, LocalFile, Resolution
from ...sync.orchestrator import SyncOrchestrator
from ...sync.reporter import (
    format_conflict_diff,
    format_status,
    format_sync_outcome,
    outcome_to_json,
    status_to_json,
)
from ...sync.tree import build_tree, flatten_tree
from ...validators import validate_file_path
from .registry import REPO_READ, REPO_WRITE, ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="repo_connect",
        description=(
            "Connect to a remote repository branch. Starts the auto-sync "
            "timer when real-time sync is enabled. Replaces any existing "
            "connection and clears the local file snapshot."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "repo_id": {
                    "type": "string",
                    "description": "Repository as 'owner/name'",
                },
                "branch": {
                    "type": "string",
                    "default": "main",
                    "description": "Branch to sync against",
                },
            },
            "required": ["repo_id"],
        },
    ),
    types.Tool(
        name="repo_disconnect",
        description="Disconnect, stop auto-sync and drop the local snapshot and all conflicts.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="repo_update_files",
        description=(
            "Replace the local file snapshot. Every file to keep must be "
            "listed; files left out count as locally absent on the next sync. "
            "Pass 'version' (the remote version a file was loaded from) to "
            "get stale-edit detection."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "files": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "path": {"type": "string"},
                            "content": {"type": "string"},
                            "version": {"type": "string"},
                        },
                        "required": ["path", "content"],
                    },
                    "description": "Files with repository-relative paths",
                },
            },
            "required": ["files"],
        },
    ),
    types.Tool(
        name="repo_list_local_files",
        description="List the paths in the local snapshot with the remote version each was last synced against.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="repo_sync",
        description=(
            "Reconcile the local snapshot with the remote branch. Local-only "
            "files are created remotely, changed files are written with a "
            "version check, and divergence is reported as conflicts."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "force": {
                    "type": "boolean",
                    "default": False,
                    "description": (
                        "Run a fresh sync even if one is already in progress "
                        "(waits for it first)"
                    ),
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="repo_sync_status",
        description="Show connection, branch, sync phase, pending changes, conflicts and last errors.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="repo_conflict_diff",
        description="Show a unified diff (local to remote) for one recorded conflict.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path of the conflicted file",
                },
            },
            "required": ["path"],
        },
    ),
    types.Tool(
        name="repo_resolve_conflicts",
        description=(
            "Resolve recorded conflicts. 'local' adopts the local state, "
            "'remote' adopts the remote state, 'merged' writes merged_content. "
            "For a file that exists only remotely, 'local' deletes it remotely "
            "and 'remote' restores it locally. Clears all conflicts."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "resolutions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "path": {"type": "string"},
                            "resolution": {
                                "type": "string",
                                "enum": ["local", "remote", "merged"],
                            },
                            "merged_content": {"type": "string"},
                        },
                        "required": ["path", "resolution"],
                    },
                },
            },
            "required": ["resolutions"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _text_result(
    text: str, structured: dict[str, Any] | None = None
) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


def _repo_label(orchestrator: SyncOrchestrator) -> str | None:
    return orchestrator.repo.full_name if orchestrator.repo else None


async def _handle_connect(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    repo_id = args.get("repo_id")
    if not repo_id:
        raise ValueError("repo_id is required")
    branch = args.get("branch") or "main"

    await orchestrator.connect(repo_id, branch)
    status = orchestrator.get_status()
    return _text_result(
        f"Connected to {repo_id} on branch '{branch}'.",
        status_to_json(status),
    )


async def _handle_disconnect(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    await orchestrator.disconnect()
    return _text_result("Disconnected.")


async def _handle_update_files(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    files = args.get("files")
    if not isinstance(files, list):
        raise ValueError("files must be a list of {path, content} objects")

    snapshot: dict[str, LocalFile] = {}
    for item in files:
        path = str(item.get("path", "")).strip("/")
        is_valid, message = validate_file_path(path)
        if not is_valid:
            raise ValueError(message)
        content = item.get("content")
        if not isinstance(content, str):
            raise ValueError(f"content for {path} must be a string")
        snapshot[path] = LocalFile(
            path=path,
            content=content.encode("utf-8"),
            known_remote_version=item.get("version"),
        )

    orchestrator.update_local_files(build_tree(snapshot))
    status = orchestrator.get_status()
    return _text_result(
        f"Local snapshot updated: {len(snapshot)} files "
        f"(status: {status.phase.value}).",
        status_to_json(status),
    )


async def _handle_list_local_files(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    files = flatten_tree(orchestrator.get_local_tree())
    if not files:
        return _text_result("Local snapshot is empty.", {"files": []})

    lines = [f"{len(files)} local files:"]
    entries = []
    for path in sorted(files):
        version = files[path].known_remote_version
        lines.append(f"  {path} ({version[:7] if version else 'unsynced'})")
        entries.append({"path": path, "version": version})
    return _text_result("\n".join(lines), {"files": entries})


async def _handle_sync(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    outcome = await orchestrator.sync(force=bool(args.get("force", False)))
    return _text_result(
        format_sync_outcome(outcome, orchestrator.branch),
        outcome_to_json(outcome),
    )


async def _handle_status(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    status = orchestrator.get_status()
    return _text_result(
        format_status(status, _repo_label(orchestrator)),
        status_to_json(status),
    )


async def _handle_conflict_diff(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    path = args.get("path")
    if not path:
        raise ValueError("path is required")
    conflicts = {c.path: c for c in orchestrator.get_status().conflicts}
    if path not in conflicts:
        raise ValueError(f"No conflict recorded for {path}")
    return _text_result(format_conflict_diff(conflicts[path]))


async def _handle_resolve_conflicts(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    items = args.get("resolutions")
    if not isinstance(items, list) or not items:
        raise ValueError("resolutions must be a non-empty list")

    conflicts = {c.path: c for c in orchestrator.get_status().conflicts}
    resolutions: list[ConflictResolution] = []
    for item in items:
        path = item.get("path")
        if path not in conflicts:
            raise ValueError(f"No conflict recorded for {path}")
        merged = item.get("merged_content")
        resolutions.append(
            ConflictResolution(
                conflict=conflicts[path],
                resolution=Resolution(item.get("resolution")),
                merged_content=(
                    merged.encode("utf-8") if merged is not None else None
                ),
            )
        )

    actions = await orchestrator.resolve_conflicts(resolutions)
    lines = [f"Resolved {len(actions)} conflicts:"]
    for action in actions:
        verb = "removed locally" if action.action == "delete" else "updated"
        lines.append(f"  {action.path}: {verb}")
    return _text_result(
        "\n".join(lines),
        {
            "resolved": [
                {
                    "path": a.path,
                    "action": a.action,
                    "version": a.version,
                }
                for a in actions
            ],
            "status": status_to_json(orchestrator.get_status()),
        },
    )


# ToolSpec list for registry-based dispatch
SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=SYNC_TOOLS[0],
        scopes=frozenset({REPO_READ}),
        handler=_handle_connect,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[1],
        scopes=frozenset(),
        handler=_handle_disconnect,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[2],
        scopes=frozenset({REPO_WRITE}),
        handler=_handle_update_files,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[3],
        scopes=frozenset({REPO_READ}),
        handler=_handle_list_local_files,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[4],
        scopes=frozenset({REPO_WRITE}),
        handler=_handle_sync,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[5],
        scopes=frozenset({REPO_READ}),
        handler=_handle_status,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[6],
        scopes=frozenset({REPO_READ}),
        handler=_handle_conflict_diff,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[7],
        scopes=frozenset({REPO_WRITE}),
        handler=_handle_resolve_conflicts,
    ),
]
