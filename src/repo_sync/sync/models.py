"""Pydantic models for the repository sync engine.

Defines the data contracts shared by the walker, engine, resolver and
orchestrator:

- ``LocalFile`` / ``RemoteEntry``: one file on each side.
- ``SyncConflict``: an irreconcilable divergence for one path.
- ``SyncOutcome``: result of one diff/apply pass.
- ``SyncStatus`` / ``SyncPhase``: the orchestrator's observable state.
- ``SyncConfig``: orchestrator behaviour (auto-sync, conflict mode).
- ``ConflictResolution`` / ``ResolveAction``: the resolution protocol.
- ``FileNode``: the hierarchical tree callers hand to the orchestrator.

Records exchanged between components are frozen; ``SyncStatus`` is frozen
too and replaced with ``model_copy(update=...)`` on every transition.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class ConflictKind(str, Enum):
    """Classification of a divergence between local and remote."""

    CONTENT = "content"
    DELETION = "deletion"
    CREATION = "creation"


class SyncPhase(str, Enum):
    """Exactly one phase holds at any instant."""

    SYNCED = "synced"
    PENDING = "pending"
    CONFLICTED = "conflicted"
    ERROR = "error"


class ConflictMode(str, Enum):
    """How conflicts found by a sync are handled."""

    MANUAL = "manual"
    AUTO_LOCAL = "auto-local"
    AUTO_REMOTE = "auto-remote"


class Resolution(str, Enum):
    """Which side's content a resolution adopts."""

    LOCAL = "local"
    REMOTE = "remote"
    MERGED = "merged"


class LocalFile(BaseModel):
    """One file of the caller-owned snapshot.

    Attributes:
        path: Repository-relative path.
        content: File bytes.
        known_remote_version: Remote version this content was last
            synced against, if any.
    """

    path: str
    content: bytes
    known_remote_version: str | None = None

    model_config = {"frozen": True}


class RemoteEntry(BaseModel):
    """One entry of a remote directory listing.

    Attributes:
        path: Repository-relative path.
        type: ``file`` or ``dir``.
        version: Content hash of the blob; the CAS token for writes.
        fetch_handle: URL the raw content can be downloaded from.
    """

    path: str
    type: Literal["file", "dir"]
    version: str
    fetch_handle: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, item: dict) -> RemoteEntry:
        """Build from a contents API item (``path``, ``type``, ``sha`` ...)."""
        return cls(
            path=item["path"],
            type="dir" if item.get("type") == "dir" else "file",
            version=item.get("sha", ""),
            fetch_handle=item.get("download_url") or item.get("git_url"),
        )


class SyncConflict(BaseModel):
    """An irreconcilable divergence for one path.

    Immutable: resolution consumes the record, it is never edited.
    ``branch`` is the branch the divergence was found on; the orchestrator
    refuses to resolve it against any other.
    """

    path: str
    local_content: bytes = b""
    remote_content: bytes = b""
    local_version: str | None = None
    remote_version: str
    kind: ConflictKind
    branch: str | None = None

    model_config = {"frozen": True}


class SyncOutcome(BaseModel):
    """Result of one diff/apply pass.

    Attributes:
        conflicts: Divergences that need a resolution.
        synced: Paths written to the remote during this pass.
        errors: One message per file whose fetch or write failed.
        versions: Remote version each path now matches, for paths that were
            identical on both sides or written in this pass.
    """

    conflicts: list[SyncConflict] = Field(default_factory=list)
    synced: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    versions: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def is_clean(self) -> bool:
        return not (self.conflicts or self.synced or self.errors)


class SyncStatus(BaseModel):
    """Observable orchestrator state.

    ``conflicts`` is non-empty iff ``phase`` is ``conflicted``.  A sync
    clears them when it starts and records the ones it finds; a failed
    sync leaves none, a cancelled one restores them.  Switching branch
    drops them.
    ``last_errors`` holds the per-file error messages of the latest sync.
    """

    connected: bool = False
    last_sync: datetime | None = None
    pending_changes: int = 0
    conflicts: list[SyncConflict] = Field(default_factory=list)
    current_branch: str = "main"
    phase: SyncPhase = SyncPhase.SYNCED
    last_errors: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Orchestrator behaviour.

    Attributes:
        auto_sync_interval_ms: Period of the auto-sync timer.
        conflict_mode: Applied to ``content`` conflicts after each sync.
        real_time_sync_enabled: Run the auto-sync timer while connected.
        max_backoff_ms: Cap on the delay after consecutive failed
            auto-syncs.  Equal to the interval means no backoff.
    """

    auto_sync_interval_ms: int = Field(default=30_000, gt=0)
    conflict_mode: ConflictMode = ConflictMode.MANUAL
    real_time_sync_enabled: bool = True
    max_backoff_ms: int = Field(default=300_000, gt=0)

    model_config = {"frozen": True}


class ConflictResolution(BaseModel):
    """A caller's decision for one conflict."""

    conflict: SyncConflict
    resolution: Resolution
    merged_content: bytes | None = None

    model_config = {"frozen": True}


class ResolveAction(BaseModel):
    """What the local snapshot must do after resolving one conflict.

    Attributes:
        action: ``update`` sets the path to ``content``/``version``;
            ``delete`` drops the path from the snapshot.
        path: The conflict's path.
        content: New local content (``update`` only).
        version: Remote version now matching ``content`` (``update`` only).
    """

    action: Literal["update", "delete"]
    path: str
    content: bytes | None = None
    version: str | None = None

    model_config = {"frozen": True}


class FileNode(BaseModel):
    """A node of the hierarchical tree passed to ``update_local_files``.

    Files carry ``content`` (``str`` is encoded as UTF-8) and optionally the
    remote ``version`` they were loaded from; folders carry ``children``.
    """

    name: str
    type: Literal["file", "folder"]
    children: list[FileNode] | None = None
    content: bytes | None = None
    version: str | None = None

    model_config = {"frozen": True}


class RepoRef(BaseModel):
    """A remote repository, parsed from ``owner/name``."""

    owner: str
    name: str

    model_config = {"frozen": True}

    @classmethod
    def parse(cls, repo_id: str) -> RepoRef:
        from ..validators import validate_repo_id

        is_valid, message = validate_repo_id(repo_id)
        if not is_valid:
            raise ValueError(message)
        owner, name = repo_id.strip().split("/")
        return cls(owner=owner, name=name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"
