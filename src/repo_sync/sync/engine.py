"""Diff/apply engine: one reconciliation pass of a local snapshot against a branch.

The ``SyncEngine`` compares the snapshot with the remote tree and:

1. Walks the remote branch (any listing failure aborts the pass).
2. Creates remote files for paths that exist only locally.
3. Skips paths whose content is identical on both sides.
4. Updates remote files whose local copy is based on the current remote
   version, using that version as the compare-and-swap token.
5. Records a ``content`` conflict when the local copy is based on an older
   remote version (no write).
6. Records a ``deletion`` conflict for paths that exist only remotely.

Error handling is per file: a failed fetch or write is reported in
``SyncOutcome.errors`` and the pass continues.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from ..core.async_utils import run_sync_limited
from .models import (
    ConflictKind,
    LocalFile,
    RemoteEntry,
    RepoRef,
    SyncConflict,
    SyncOutcome,
)
from .walker import walk_remote_tree

if TYPE_CHECKING:
    from ..core.client import RepoClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def git_blob_sha(content: bytes) -> str:
    """Return the git blob hash of *content* (the remote's version token)."""
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


class SyncEngine:
    """Reconcile local snapshots with one remote repository.

    Args:
        client: Remote API client.
        repo: Target repository.
    """

    def __init__(self, client: RepoClient, repo: RepoRef) -> None:
        self.client = client
        self.repo = repo

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(
        self,
        local_files: Mapping[str, LocalFile],
        branch: str,
        progress: ProgressCallback | None = None,
    ) -> SyncOutcome:
        """Execute one reconciliation pass.

        Args:
            local_files: Snapshot keyed by path.  Not modified.
            branch: Remote branch to reconcile against.
            progress: Called with the completed fraction after each path.

        Returns:
            The conflicts found, the paths written and per-file errors.

        Raises:
            RemoteAPIError: If the remote tree cannot be walked.
        """
        entries = await walk_remote_tree(
            self.client, self.repo.owner, self.repo.name, branch
        )
        remote_files: dict[str, RemoteEntry] = {e.path: e for e in entries}
        remote_only = [p for p in remote_files if p not in local_files]

        conflicts: list[SyncConflict] = []
        synced: list[str] = []
        errors: list[str] = []
        versions: dict[str, str] = {}

        total = len(local_files) + len(remote_only)
        done = 0

        def _advance() -> None:
            nonlocal done
            done += 1
            if progress is not None:
                progress(done / total)

        for path, local in local_files.items():
            remote = remote_files.get(path)
            try:
                if remote is None:
                    versions[path] = await self._write(
                        path, None, local.content, branch, "Add"
                    )
                    synced.append(path)
                else:
                    conflict = await self._reconcile_shared(
                        local, remote, branch, synced, versions
                    )
                    if conflict is not None:
                        conflicts.append(conflict)
            except Exception as exc:
                verb = "create" if remote is None else "update"
                logger.error("Failed to %s %s: %s", verb, path, exc)
                errors.append(f"Failed to {verb} {path}: {exc}")
            _advance()

        for path in remote_only:
            remote = remote_files[path]
            try:
                remote_content = await self._fetch(remote)
                conflicts.append(
                    SyncConflict(
                        path=path,
                        local_content=b"",
                        remote_content=remote_content,
                        remote_version=remote.version,
                        kind=ConflictKind.DELETION,
                        branch=branch,
                    )
                )
            except Exception as exc:
                logger.error("Failed to fetch %s: %s", path, exc)
                errors.append(f"Failed to fetch {path}: {exc}")
            _advance()

        if total == 0 and progress is not None:
            progress(1.0)

        logger.info(
            "Sync of %s@%s: %d written, %d conflicts, %d errors",
            self.repo.full_name,
            branch,
            len(synced),
            len(conflicts),
            len(errors),
        )
        return SyncOutcome(
            conflicts=conflicts,
            synced=synced,
            errors=errors,
            versions=versions,
        )

    # ------------------------------------------------------------------
    # Per-path reconciliation
    # ------------------------------------------------------------------

    async def _reconcile_shared(
        self,
        local: LocalFile,
        remote: RemoteEntry,
        branch: str,
        synced: list[str],
        versions: dict[str, str],
    ) -> SyncConflict | None:
        """Handle a path present on both sides.

        Returns a conflict, or ``None`` after a no-op or a write.  Mutates
        *synced* and *versions* in place.
        """
        if git_blob_sha(local.content) == remote.version:
            versions[local.path] = remote.version
            return None

        remote_content = await self._fetch(remote)
        if remote_content == local.content:
            versions[local.path] = remote.version
            return None

        if (
            local.known_remote_version is not None
            and local.known_remote_version != remote.version
        ):
            logger.info(
                "Stale local copy of %s (based on %s, remote is %s)",
                local.path,
                local.known_remote_version,
                remote.version,
            )
            return SyncConflict(
                path=local.path,
                local_content=local.content,
                remote_content=remote_content,
                local_version=local.known_remote_version,
                remote_version=remote.version,
                kind=ConflictKind.CONTENT,
                branch=branch,
            )

        versions[local.path] = await self._write(
            local.path, remote.version, local.content, branch, "Update"
        )
        synced.append(local.path)
        return None

    async def _fetch(self, remote: RemoteEntry) -> bytes:
        if not remote.fetch_handle:
            return b""
        return await run_sync_limited(
            self.client.get_raw_content, remote.fetch_handle
        )

    async def _write(
        self,
        path: str,
        expected_version: str | None,
        content: bytes,
        branch: str,
        verb: str,
    ) -> str:
        return await run_sync_limited(
            self.client.write_file,
            self.repo.owner,
            self.repo.name,
            path,
            expected_version,
            content,
            f"{verb} {path}",
            branch,
        )
