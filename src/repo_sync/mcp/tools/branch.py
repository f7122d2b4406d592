"""MCP tool handlers for branches of the connected repository.

- ``repo_list_branches`` -- branches with their head commits.
- ``repo_switch_branch`` -- move the orchestrator to another branch and sync.
- ``repo_create_branch`` -- create a branch from a source head and switch to it.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync_limited
from ...sync.orchestrator import NotConnectedError, SyncOrchestrator
from ...sync.reporter import format_sync_outcome, outcome_to_json
from .registry import BRANCH_CREATE, REPO_READ, REPO_WRITE, ToolSpec

logger = logging.getLogger(__name__)


BRANCH_TOOLS: list[types.Tool] = [
    types.Tool(
        name="repo_list_branches",
        description="List branches of the connected repository with their head commit.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="repo_switch_branch",
        description=(
            "Switch to another existing branch and sync against it. If the "
            "branch does not exist nothing changes."
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
                "branch": {
                    "type": "string",
                    "description": "Name of the branch to switch to",
                },
            },
            "required": ["branch"],
        },
    ),
    types.Tool(
        name="repo_create_branch",
        description=(
            "Create a branch at the head of from_branch (default: the "
            "current branch), switch to it and sync."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "branch": {
                    "type": "string",
                    "description": "Name of the new branch",
                },
                "from_branch": {
                    "type": "string",
                    "description": "Source branch (default: current branch)",
                },
            },
            "required": ["branch"],
        },
    ),
]


async def _handle_list_branches(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    repo = orchestrator.repo
    if repo is None:
        raise NotConnectedError()

    branches = await run_sync_limited(
        orchestrator.client.list_branches, repo.owner, repo.name
    )
    current = orchestrator.branch
    lines = [f"Branches of {repo.full_name}:"]
    entries = []
    for b in branches:
        name = b.get("name", "")
        sha = b.get("commit", {}).get("sha", "")
        marker = "*" if name == current else " "
        lines.append(f" {marker} {name} ({sha[:7]})")
        entries.append({"name": name, "sha": sha, "current": name == current})

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent={"branches": entries},
    )


async def _handle_switch_branch(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    branch = args.get("branch")
    if not branch:
        raise ValueError("branch is required")

    outcome = await orchestrator.switch_branch(branch)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Switched to '{branch}'.\n\n"
                + format_sync_outcome(outcome, branch),
            )
        ],
        structuredContent=outcome_to_json(outcome),
    )


async def _handle_create_branch(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    branch = args.get("branch")
    if not branch:
        raise ValueError("branch is required")
    from_branch = args.get("from_branch") or None

    source = from_branch or orchestrator.branch
    outcome = await orchestrator.create_branch(branch, from_branch)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Created '{branch}' from '{source}' and switched to it.\n\n"
                + format_sync_outcome(outcome, branch),
            )
        ],
        structuredContent=outcome_to_json(outcome),
    )


BRANCH_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=BRANCH_TOOLS[0],
        scopes=frozenset({REPO_READ}),
        handler=_handle_list_branches,
    ),
    ToolSpec(
        tool=BRANCH_TOOLS[1],
        scopes=frozenset({REPO_WRITE}),
        handler=_handle_switch_branch,
    ),
    ToolSpec(
        tool=BRANCH_TOOLS[2],
        scopes=frozenset({REPO_WRITE, BRANCH_CREATE}),
        handler=_handle_create_branch,
    ),
]
