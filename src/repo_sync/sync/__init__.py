"""Bidirectional repository sync engine.

Keeps a locally held file tree in sync with a branch of a remote
repository reached through a GitHub-compatible contents API.  Every remote
write is a compare-and-swap on the file's blob hash; divergence that cannot
be applied safely is reported as a ``SyncConflict`` for the caller to
resolve.

Modules:

- ``models``       -- pydantic data contracts (``LocalFile``, ``SyncConflict``,
  ``SyncOutcome``, ``SyncStatus`` ...).
- ``tree``         -- ``FileNode`` tree <-> path-keyed snapshot.
- ``walker``       -- remote tree traversal with an explicit worklist.
- ``engine``       -- ``SyncEngine``: one diff/apply pass.
- ``resolver``     -- conflict resolution protocol and automatic strategies.
- ``events``       -- ``EventBus``: typed fan-out to subscribers.
- ``orchestrator`` -- ``SyncOrchestrator``: connection, status state
  machine, auto-sync timer.
- ``reporter``     -- human-readable and JSON formatting.

Usage example
-------------
::

    from repo_sync.core.client import RepoClient
    from repo_sync.sync import FileNode, SyncOrchestrator, format_sync_outcome

    orchestrator = SyncOrchestrator(RepoClient(config))
    await orchestrator.connect("octo/notes", "main")
    orchestrator.update_local_files(
        [FileNode(name="README.md", type="file", content=b"# Notes\\n")]
    )
    outcome = await orchestrator.sync()
    print(format_sync_outcome(outcome))
"""

from .engine import SyncEngine, git_blob_sha
from .events import EventBus
from .models import (
    ConflictKind,
    ConflictMode,
    ConflictResolution,
    FileNode,
    LocalFile,
    RemoteEntry,
    RepoRef,
    Resolution,
    ResolveAction,
    SyncConfig,
    SyncConflict,
    SyncOutcome,
    SyncPhase,
    SyncStatus,
)
from .orchestrator import NotConnectedError, SyncOrchestrator
from .reporter import (
    format_conflict_diff,
    format_status,
    format_sync_outcome,
    outcome_to_json,
    status_to_json,
)
from .resolver import create_resolver, resolve_conflict
from .tree import build_tree, flatten_tree
from .walker import walk_remote_tree

__all__ = [
    "ConflictKind",
    "ConflictMode",
    "ConflictResolution",
    "EventBus",
    "FileNode",
    "LocalFile",
    "NotConnectedError",
    "RemoteEntry",
    "RepoRef",
    "Resolution",
    "ResolveAction",
    "SyncConfig",
    "SyncConflict",
    "SyncEngine",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncPhase",
    "SyncStatus",
    "build_tree",
    "create_resolver",
    "flatten_tree",
    "format_conflict_diff",
    "format_status",
    "format_sync_outcome",
    "git_blob_sha",
    "outcome_to_json",
    "resolve_conflict",
    "status_to_json",
    "walk_remote_tree",
]
