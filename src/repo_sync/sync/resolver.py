"""Conflict resolution for the sync engine.

``resolve_conflict()`` turns one ``SyncConflict`` plus a chosen
``Resolution`` into remote writes and a ``ResolveAction`` telling the
orchestrator what to do with its local snapshot.

Resolution semantics per conflict kind:

``content`` (both sides changed)
    The chosen content is written with ``conflict.remote_version`` as the
    compare-and-swap token.  The snapshot gets that content and the new
    version.

``deletion`` (file exists remotely, not locally)
    ``remote`` adopts the remote state: the remote file is kept, nothing is
    written, and the snapshot gains the remote content.  ``local`` adopts
    the local state: the remote file is deleted (CAS on
    ``conflict.remote_version``) and the path is dropped locally.
    ``merged`` writes the merged text over the remote file.

``creation`` (file exists locally, not remotely)
    ``local`` and ``merged`` create the remote file (no CAS token).
    ``remote`` adopts the remote absence and drops the local copy.

Automatic strategies:

- ``ManualResolver``: never decides; every conflict waits for the caller.
- ``LocalWinsResolver``: picks ``local`` for content conflicts.
- ``RemoteWinsResolver``: picks ``remote`` for content conflicts.

Deletion and creation conflicts are never auto-resolved.  The
``create_resolver()`` factory maps a ``ConflictMode`` to a resolver.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from ..core.async_utils import run_sync_limited
from .models import (
    ConflictKind,
    ConflictMode,
    RepoRef,
    Resolution,
    ResolveAction,
    SyncConflict,
)

if TYPE_CHECKING:
    from ..core.client import RepoClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Resolution protocol
# ---------------------------------------------------------------------------


def _chosen_content(
    conflict: SyncConflict,
    resolution: Resolution,
    merged_content: bytes | None,
) -> bytes:
    if resolution == Resolution.LOCAL:
        return conflict.local_content
    if resolution == Resolution.REMOTE:
        return conflict.remote_content
    if merged_content is None:
        raise ValueError(
            f"Resolution 'merged' for {conflict.path} requires merged_content"
        )
    return merged_content


async def resolve_conflict(
    client: RepoClient,
    repo: RepoRef,
    conflict: SyncConflict,
    resolution: Resolution,
    merged_content: bytes | None = None,
    branch: str = "main",
) -> ResolveAction:
    """Apply *resolution* to *conflict*.

    Args:
        client: Remote API client.
        repo: Repository the conflict belongs to.
        conflict: The conflict to resolve.  Not modified.
        resolution: Which side to adopt.
        merged_content: Caller-supplied text, required for ``merged``.
        branch: Branch the conflict was found on.

    Returns:
        The action the local snapshot must apply for ``conflict.path``.

    Raises:
        ValueError: If ``merged`` is chosen without *merged_content*.
        VersionMismatchError: If the remote changed since the conflict
            was recorded.
        RemoteAPIError: On any other remote failure.
    """
    resolution = Resolution(resolution)
    content = _chosen_content(conflict, resolution, merged_content)
    path = conflict.path

    if conflict.kind == ConflictKind.DELETION:
        if resolution == Resolution.REMOTE:
            logger.info("Keeping remote %s, restoring local copy", path)
            return ResolveAction(
                action="update",
                path=path,
                content=conflict.remote_content,
                version=conflict.remote_version,
            )
        if resolution == Resolution.LOCAL:
            logger.info("Deleting remote %s", path)
            await run_sync_limited(
                client.delete_file,
                repo.owner,
                repo.name,
                path,
                f"Delete {path}",
                conflict.remote_version,
                branch,
            )
            return ResolveAction(action="delete", path=path)
        token: str | None = conflict.remote_version
    elif conflict.kind == ConflictKind.CREATION:
        if resolution == Resolution.REMOTE:
            logger.info("Dropping local %s", path)
            return ResolveAction(action="delete", path=path)
        token = None
    else:
        token = conflict.remote_version

    new_version = await run_sync_limited(
        client.write_file,
        repo.owner,
        repo.name,
        path,
        token,
        content,
        f"Resolve conflict in {path} ({resolution.value})",
        branch,
    )
    logger.info(
        "Resolved %s conflict in %s with %s",
        conflict.kind.value,
        path,
        resolution.value,
    )
    return ResolveAction(
        action="update", path=path, content=content, version=new_version
    )


# ---------------------------------------------------------------------------
# Automatic strategies
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    def resolve(self, conflict: SyncConflict) -> Resolution | None:
        """Pick a resolution, or ``None`` to leave the conflict to the caller."""
        ...  # pragma: no cover


class ManualResolver:
    """Leave every conflict for manual review."""

    def resolve(self, conflict: SyncConflict) -> Resolution | None:
        return None


class LocalWinsResolver:
    """Resolve content conflicts in favour of local content."""

    def resolve(self, conflict: SyncConflict) -> Resolution | None:
        if conflict.kind != ConflictKind.CONTENT:
            return None
        return Resolution.LOCAL


class RemoteWinsResolver:
    """Resolve content conflicts in favour of remote content."""

    def resolve(self, conflict: SyncConflict) -> Resolution | None:
        if conflict.kind != ConflictKind.CONTENT:
            return None
        return Resolution.REMOTE


_STRATEGY_MAP: dict[ConflictMode, type] = {
    ConflictMode.MANUAL: ManualResolver,
    ConflictMode.AUTO_LOCAL: LocalWinsResolver,
    ConflictMode.AUTO_REMOTE: RemoteWinsResolver,
}


def create_resolver(mode: ConflictMode | str) -> ConflictResolver:
    """Create a conflict resolver for *mode*.

    Raises:
        ValueError: If the mode is not recognised.
    """
    try:
        cls = _STRATEGY_MAP[ConflictMode(mode)]
    except ValueError:
        raise ValueError(
            f"Unknown conflict mode: '{mode}'. Valid modes: "
            f"{sorted(m.value for m in ConflictMode)}"
        ) from None
    return cls()
