"""Sync orchestrator: connection lifecycle, snapshot, status and auto-sync.

``SyncOrchestrator`` owns the local snapshot and the ``SyncStatus`` record
for one connected repository/branch.  Both are only mutated while holding
a single ``asyncio.Lock``, shared by ``sync()``, the auto-sync timer and
``resolve_conflicts()``.

Overlapping syncs:

- ``sync()`` while a sync is in flight joins it and returns its outcome.
- ``sync(force=True)`` waits for the in-flight sync, then runs a new one.

Status changes and progress fractions are published on two ``EventBus``
instances; subscribe with ``on_status_change()`` / ``on_progress()``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..core.async_utils import run_sync_limited
from ..validators import validate_branch_name
from .engine import SyncEngine
from .events import EventBus
from .models import (
    ConflictResolution,
    FileNode,
    LocalFile,
    RepoRef,
    ResolveAction,
    SyncConfig,
    SyncConflict,
    SyncOutcome,
    SyncPhase,
    SyncStatus,
)
from .resolver import create_resolver, resolve_conflict
from .tree import build_tree, flatten_tree

if TYPE_CHECKING:
    from ..core.client import RepoClient

logger = logging.getLogger(__name__)


class NotConnectedError(RuntimeError):
    """Raised when an operation needs a connected repository."""

    def __init__(self, message: str = "No repository connected"):
        super().__init__(message)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _consume_abandoned(task: asyncio.Future) -> None:
    """Retrieve the error of an auto-sync run the timer no longer awaits."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Auto-sync run finished with %r", exc)


class SyncOrchestrator:
    """Keep a caller-owned file tree in sync with one remote branch.

    Args:
        client: Remote API client.
        config: Auto-sync and conflict handling settings.
    """

    def __init__(
        self, client: RepoClient, config: SyncConfig | None = None
    ) -> None:
        self.client = client
        self._config = config or SyncConfig()
        self._repo: RepoRef | None = None
        self._branch = "main"
        self._local_files: dict[str, LocalFile] = {}
        self._status = SyncStatus()
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Task[SyncOutcome] | None = None
        self._auto_task: asyncio.Task[None] | None = None
        # Bumped on connect/disconnect; a sync that finishes in another
        # session leaves state alone.
        self._session = 0
        self._status_bus: EventBus[SyncStatus] = EventBus("status")
        self._progress_bus: EventBus[float] = EventBus("progress")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def repo(self) -> RepoRef | None:
        return self._repo

    @property
    def branch(self) -> str:
        return self._branch

    def is_connected(self) -> bool:
        return self._status.connected

    def get_status(self) -> SyncStatus:
        """Return a deep copy of the current status."""
        return self._status.model_copy(deep=True)

    def get_config(self) -> SyncConfig:
        return self._config

    def get_local_tree(self) -> list[FileNode]:
        """The current snapshot as a folder tree, with known versions."""
        return build_tree(self._local_files)

    def on_status_change(
        self, callback: Callable[[SyncStatus], None]
    ) -> Callable[[], None]:
        """Subscribe to status changes; returns an unsubscribe function."""
        return self._status_bus.subscribe(callback)

    def on_progress(
        self, callback: Callable[[float], None]
    ) -> Callable[[], None]:
        """Subscribe to sync progress (0.0 to 1.0); returns an unsubscribe function."""
        return self._progress_bus.subscribe(callback)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, repo_id: str, branch: str = "main") -> None:
        """Connect to ``owner/name`` on *branch*.

        The branch is looked up first; if that fails nothing changes.
        An existing connection is closed before the new one is made.

        Raises:
            ValueError: If *repo_id* or *branch* is malformed.
            RemoteNotFoundError: If the repository or branch does not exist.
        """
        repo = RepoRef.parse(repo_id)
        self._check_branch(branch)
        await run_sync_limited(
            self.client.get_branch, repo.owner, repo.name, branch
        )

        if self._status.connected:
            await self.disconnect()

        self._session += 1
        self._repo = repo
        self._branch = branch
        self._local_files = {}
        logger.info("Connected to %s@%s", repo.full_name, branch)
        self._set_status(connected=True, current_branch=branch)

        if self._config.real_time_sync_enabled:
            self._start_auto_sync()

    async def disconnect(self) -> None:
        """Drop the connection, the snapshot and all status."""
        await self._stop_auto_sync()
        self._session += 1
        if self._repo is not None:
            logger.info("Disconnected from %s", self._repo.full_name)
        self._repo = None
        self._branch = "main"
        self._local_files = {}
        self._status = SyncStatus()
        self._status_bus.publish(self.get_status())

    async def destroy(self) -> None:
        """Disconnect and drop every subscriber."""
        await self.disconnect()
        self._status_bus.clear()
        self._progress_bus.clear()

    def update_config(self, **changes: Any) -> SyncConfig:
        """Change settings; restarts or stops the auto-sync timer.

        Raises:
            pydantic.ValidationError: If a value is invalid.
        """
        self._config = SyncConfig.model_validate(
            {**self._config.model_dump(), **changes}
        )
        if self._config.real_time_sync_enabled and self._status.connected:
            self._start_auto_sync()
        elif self._auto_task is not None:
            self._auto_task.cancel()
            self._auto_task = None
        return self._config

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def update_local_files(self, tree: Iterable[FileNode]) -> None:
        """Replace the snapshot with the files of *tree*.

        While conflicts are outstanding the phase stays ``conflicted``.
        """
        self._local_files = flatten_tree(tree)
        pending = len(self._local_files)
        if self._status.conflicts:
            self._set_status(pending_changes=pending)
        else:
            self._set_status(
                pending_changes=pending,
                phase=SyncPhase.PENDING if pending else SyncPhase.SYNCED,
            )

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync(self, force: bool = False) -> SyncOutcome:
        """Reconcile the snapshot with the remote branch.

        Returns:
            The outcome; ``conflicts`` lists what still needs resolving.

        Raises:
            NotConnectedError: If no repository is connected.
            RemoteAPIError: If the remote tree cannot be walked.
        """
        self._require_connected()

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            if not force:
                logger.debug("Joining in-flight sync")
                return await asyncio.shield(inflight)
            await asyncio.wait([inflight])

        task = asyncio.create_task(self._run_sync())
        self._inflight = task
        try:
            return await task
        finally:
            if self._inflight is task and task.done():
                self._inflight = None

    async def _run_sync(self) -> SyncOutcome:
        async with self._lock:
            repo = self._require_connected()
            branch = self._branch
            session = self._session
            snapshot = self._local_files
            previous = self._status
            self._set_status(phase=SyncPhase.PENDING, conflicts=[])

            try:
                outcome = await SyncEngine(self.client, repo).run(
                    snapshot, branch, progress=self._progress_bus.publish
                )
            except asyncio.CancelledError:
                if session == self._session:
                    self._set_status(
                        phase=previous.phase, conflicts=previous.conflicts
                    )
                raise
            except Exception as e:
                logger.error(
                    "Sync of %s@%s failed: %s", repo.full_name, branch, e
                )
                if session == self._session:
                    self._set_status(
                        phase=SyncPhase.ERROR, last_errors=[str(e)]
                    )
                raise

            if session != self._session:
                return outcome

            self._record_versions(snapshot, outcome.versions)
            outcome = await self._auto_resolve(repo, branch, outcome, snapshot)

            if outcome.conflicts:
                self._set_status(
                    phase=SyncPhase.CONFLICTED,
                    conflicts=list(outcome.conflicts),
                    last_sync=_now(),
                    last_errors=list(outcome.errors),
                )
            else:
                self._set_status(
                    phase=SyncPhase.SYNCED,
                    conflicts=[],
                    pending_changes=(
                        0
                        if snapshot is self._local_files
                        else len(self._local_files)
                    ),
                    last_sync=_now(),
                    last_errors=list(outcome.errors),
                )
            return outcome

    def _record_versions(
        self, snapshot: dict[str, LocalFile], versions: dict[str, str]
    ) -> None:
        """Store the remote versions the synced files now match."""
        if snapshot is not self._local_files:
            return
        for path, version in versions.items():
            local = snapshot.get(path)
            if local is not None and local.known_remote_version != version:
                snapshot[path] = local.model_copy(
                    update={"known_remote_version": version}
                )

    async def _auto_resolve(
        self,
        repo: RepoRef,
        branch: str,
        outcome: SyncOutcome,
        snapshot: dict[str, LocalFile],
    ) -> SyncOutcome:
        resolver = create_resolver(self._config.conflict_mode)
        remaining: list[SyncConflict] = []
        synced = list(outcome.synced)
        errors = list(outcome.errors)

        for conflict in outcome.conflicts:
            resolution = resolver.resolve(conflict)
            if resolution is None:
                remaining.append(conflict)
                continue
            try:
                action = await resolve_conflict(
                    self.client, repo, conflict, resolution, branch=branch
                )
            except Exception as e:
                logger.warning(
                    "Automatic resolution of %s failed: %s", conflict.path, e
                )
                errors.append(f"Failed to resolve {conflict.path}: {e}")
                remaining.append(conflict)
                continue
            self._apply_action(snapshot, action)
            synced.append(conflict.path)

        if len(remaining) == len(outcome.conflicts):
            return outcome
        return outcome.model_copy(
            update={"conflicts": remaining, "synced": synced, "errors": errors}
        )

    # ------------------------------------------------------------------
    # Conflict resolution
    # ------------------------------------------------------------------

    async def resolve_conflicts(
        self, resolutions: Iterable[ConflictResolution]
    ) -> list[ResolveAction]:
        """Apply each resolution, then clear all conflicts.

        If one resolution fails, the ones before it stay applied, their
        conflicts are removed from the status and the error is re-raised.
        A snapshot pushed with ``update_local_files()`` meanwhile is kept
        as is; the next sync compares it against the resolved remote.

        Raises:
            NotConnectedError: If no repository is connected.
            ValueError: If a ``merged`` resolution has no merged content,
                or a conflict was found on another branch.
            VersionMismatchError: If the remote moved since the conflict
                was recorded.
        """
        async with self._lock:
            repo = self._require_connected()
            branch = self._branch
            snapshot = self._local_files
            actions: list[ResolveAction] = []
            try:
                for item in resolutions:
                    conflict = item.conflict
                    if conflict.branch not in (None, branch):
                        raise ValueError(
                            f"Conflict on {conflict.path} was found on branch "
                            f"{conflict.branch!r}, not {branch!r}"
                        )
                    action = await resolve_conflict(
                        self.client,
                        repo,
                        conflict,
                        item.resolution,
                        item.merged_content,
                        branch,
                    )
                    self._apply_action(snapshot, action)
                    actions.append(action)
            except Exception:
                if actions:
                    resolved = {a.path for a in actions}
                    left = [
                        c
                        for c in self._status.conflicts
                        if c.path not in resolved
                    ]
                    if left:
                        self._set_status(conflicts=left)
                    else:
                        self._set_status(conflicts=[], phase=SyncPhase.SYNCED)
                raise

            self._set_status(
                conflicts=[], phase=SyncPhase.SYNCED, last_sync=_now()
            )
            return actions

    def _apply_action(
        self, snapshot: dict[str, LocalFile], action: ResolveAction
    ) -> None:
        if snapshot is not self._local_files:
            logger.info(
                "Local files replaced while resolving %s; keeping the newer copy",
                action.path,
            )
            return
        if action.action == "delete":
            snapshot.pop(action.path, None)
        else:
            snapshot[action.path] = LocalFile(
                path=action.path,
                content=action.content or b"",
                known_remote_version=action.version,
            )

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    async def switch_branch(self, name: str) -> SyncOutcome:
        """Move to branch *name* and sync against it.

        The branch is looked up first; if that fails the current branch and
        ``last_sync`` are left unchanged and the error propagates.
        Conflicts of the old branch are dropped before the sync.
        """
        repo = self._require_connected()
        self._check_branch(name)
        await run_sync_limited(
            self.client.get_branch, repo.owner, repo.name, name
        )

        async with self._lock:
            self._branch = name
            changes: dict[str, Any] = {
                "current_branch": name,
                "last_sync": None,
                "conflicts": [],
            }
            if self._status.conflicts:
                changes["phase"] = SyncPhase.PENDING
            self._set_status(**changes)
        logger.info("Switched %s to branch %s", repo.full_name, name)
        return await self.sync(force=True)

    async def create_branch(
        self, name: str, from_branch: str | None = None
    ) -> SyncOutcome:
        """Create *name* at the head of *from_branch* (default: current) and switch to it."""
        repo = self._require_connected()
        self._check_branch(name)
        source = from_branch or self._branch
        head = await run_sync_limited(
            self.client.get_branch_head, repo.owner, repo.name, source
        )
        await run_sync_limited(
            self.client.create_branch_ref, repo.owner, repo.name, name, head
        )
        logger.info(
            "Created branch %s from %s (%s)", name, source, head[:7]
        )
        return await self.switch_branch(name)

    # ------------------------------------------------------------------
    # Auto-sync
    # ------------------------------------------------------------------

    def _start_auto_sync(self) -> None:
        if self._auto_task is not None:
            self._auto_task.cancel()
        self._auto_task = asyncio.create_task(
            self._auto_sync_loop(), name="repo-sync-auto"
        )

        def _on_done(task: asyncio.Task) -> None:
            if task.cancelled():
                logger.debug("Auto-sync loop cancelled")
            elif task.exception():
                logger.error("Auto-sync loop crashed: %s", task.exception())

        self._auto_task.add_done_callback(_on_done)

    async def _stop_auto_sync(self) -> None:
        task, self._auto_task = self._auto_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _auto_sync_loop(self) -> None:
        """Sync every interval; double the delay after each failure."""
        delay_ms = self._config.auto_sync_interval_ms
        while True:
            await asyncio.sleep(delay_ms / 1000)
            if not (
                self._status.connected and self._config.real_time_sync_enabled
            ):
                continue
            run = asyncio.ensure_future(self.sync())
            run.add_done_callback(_consume_abandoned)
            try:
                await asyncio.shield(run)
            except Exception as e:
                delay_ms = max(
                    self._config.auto_sync_interval_ms,
                    min(delay_ms * 2, self._config.max_backoff_ms),
                )
                logger.warning(
                    "Auto-sync failed, retrying in %.1fs: %s",
                    delay_ms / 1000,
                    e,
                )
            else:
                delay_ms = self._config.auto_sync_interval_ms

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_connected(self) -> RepoRef:
        if self._repo is None or not self._status.connected:
            raise NotConnectedError()
        return self._repo

    @staticmethod
    def _check_branch(branch: str) -> None:
        is_valid, message = validate_branch_name(branch)
        if not is_valid:
            raise ValueError(message)

    def _set_status(self, **changes: Any) -> None:
        self._status = self._status.model_copy(update=changes)
        self._status_bus.publish(self.get_status())
