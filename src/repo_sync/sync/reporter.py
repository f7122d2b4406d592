"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_outcome`` -- post-sync summary.
- ``format_status`` -- orchestrator status summary.
- ``format_conflict_diff`` -- unified diff for conflict review.
- ``outcome_to_json`` / ``status_to_json`` -- structured dicts for MCP
  tool output.
"""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncConflict, SyncOutcome, SyncStatus

from .models import ConflictKind

_KIND_LABELS = {
    ConflictKind.CONTENT: "both sides changed",
    ConflictKind.DELETION: "exists only remotely",
    ConflictKind.CREATION: "exists only locally",
}


def _as_text(content: bytes) -> str | None:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return None


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_outcome(outcome: SyncOutcome, branch: str = "") -> str:
    """Format a sync outcome as human-readable text.

    Sections are only included when they contain at least one entry.
    """
    lines: list[str] = []
    header = "Sync complete"
    if branch:
        header += f" on '{branch}'"
    lines.append(header)
    lines.append(
        f"{len(outcome.synced)} written, "
        f"{len(outcome.conflicts)} conflicts, "
        f"{len(outcome.errors)} errors"
    )
    lines.append("")

    if outcome.synced:
        lines.append("Written to remote:")
        for path in outcome.synced:
            lines.append(f"  {path}")
        lines.append("")

    if outcome.conflicts:
        lines.append("Conflicts:")
        for c in outcome.conflicts:
            lines.append(f"  {c.path} [{c.kind.value}]: {_KIND_LABELS[c.kind]}")
        lines.append("")

    if outcome.errors:
        lines.append("Errors:")
        for error in outcome.errors:
            lines.append(f"  {error}")
        lines.append("")

    if outcome.is_clean:
        lines.append("Everything up to date.")

    return "\n".join(lines).rstrip()


def format_status(status: SyncStatus, repo: str | None = None) -> str:
    """Format the orchestrator status as human-readable text."""
    if not status.connected:
        return "Not connected"

    lines = [
        f"Repository: {repo}" if repo else "Connected",
        f"Branch: {status.current_branch}",
        f"Status: {status.phase.value}",
        f"Pending changes: {status.pending_changes}",
        "Last sync: "
        + (status.last_sync.isoformat() if status.last_sync else "never"),
    ]
    if status.conflicts:
        lines.append(f"Conflicts ({len(status.conflicts)}):")
        for c in status.conflicts:
            lines.append(f"  {c.path} [{c.kind.value}]")
    if status.last_errors:
        lines.append("Last errors:")
        for error in status.last_errors:
            lines.append(f"  {error}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflict_diff(conflict: SyncConflict) -> str:
    """Format a single conflict for review as a local-to-remote unified diff.

    Binary content is summarised by size.
    """
    lines: list[str] = []
    lines.append(f"Conflict: {conflict.path} ({_KIND_LABELS[conflict.kind]})")
    lines.append(
        f"Local version: {conflict.local_version or '-'}, "
        f"remote version: {conflict.remote_version}"
    )
    lines.append("")

    local_text = _as_text(conflict.local_content)
    remote_text = _as_text(conflict.remote_content)
    if local_text is None or remote_text is None:
        lines.append(
            f"(binary content: local {len(conflict.local_content)} bytes, "
            f"remote {len(conflict.remote_content)} bytes)"
        )
        return "\n".join(lines)

    diff = difflib.unified_diff(
        local_text.splitlines(keepends=True),
        remote_text.splitlines(keepends=True),
        fromfile=f"local: {conflict.path}",
        tofile=f"remote: {conflict.path}",
    )
    diff_text = "".join(diff)
    if diff_text:
        lines.append(diff_text.rstrip())
    else:
        lines.append("(no textual differences)")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def conflict_to_json(conflict: SyncConflict) -> dict:
    """Text content is included when it decodes as UTF-8, else ``None``."""
    return {
        "path": conflict.path,
        "kind": conflict.kind.value,
        "local_version": conflict.local_version,
        "remote_version": conflict.remote_version,
        "local_content": _as_text(conflict.local_content),
        "remote_content": _as_text(conflict.remote_content),
    }


def outcome_to_json(outcome: SyncOutcome) -> dict:
    """Convert a sync outcome to a dict for MCP ``structuredContent``."""
    return {
        "counts": {
            "synced": len(outcome.synced),
            "conflicts": len(outcome.conflicts),
            "errors": len(outcome.errors),
        },
        "synced": list(outcome.synced),
        "conflicts": [conflict_to_json(c) for c in outcome.conflicts],
        "errors": list(outcome.errors),
    }


def status_to_json(status: SyncStatus) -> dict:
    return {
        "connected": status.connected,
        "phase": status.phase.value,
        "current_branch": status.current_branch,
        "pending_changes": status.pending_changes,
        "last_sync": status.last_sync.isoformat() if status.last_sync else None,
        "conflicts": [conflict_to_json(c) for c in status.conflicts],
        "last_errors": list(status.last_errors),
    }
