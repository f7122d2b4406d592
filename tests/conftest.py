"""Shared pytest fixtures for repo-sync-mcp-server tests."""

from __future__ import annotations

import hashlib
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from repo_sync.config import Config
from repo_sync.core.exceptions import (
    RemoteAPIError,
    RemoteNotFoundError,
    VersionMismatchError,
)

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live API and REPO_SYNC_TOKEN",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live API"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def _reset_semaphore():
    """The module semaphore binds to one event loop; never leak it."""
    import repo_sync.core.async_utils as mod

    original = mod._semaphore
    yield
    mod._semaphore = original


def blob_sha(content: bytes) -> str:
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


class FakeRepoClient:
    """In-memory stand-in for ``RepoClient`` with real CAS semantics.

    Files are stored per branch as ``{path: bytes}``; versions are git blob
    hashes, as on the real API.  Every mutating call is recorded in
    ``writes`` / ``deletes``.  Put paths in ``fail_list``, ``fail_fetch``
    or ``fail_write`` to make the matching call raise.
    """

    owner = "octo"
    repo = "notes"

    def __init__(self) -> None:
        self.branches: dict[str, dict[str, bytes]] = {"main": {}}
        self.heads: dict[str, str] = {"main": "c0"}
        self.writes: list[tuple[str, str | None, bytes, str]] = []
        self.deletes: list[tuple[str, str, str]] = []
        self.fail_list: set[str] = set()
        self.fail_fetch: set[str] = set()
        self.fail_write: set[str] = set()
        self.list_calls = 0
        self._commits = 0

    # -- seeding helpers --------------------------------------------------

    def put(self, path: str, content: bytes | str, branch: str = "main") -> str:
        if isinstance(content, str):
            content = content.encode()
        self.branches.setdefault(branch, {})[path] = content
        self._commit(branch)
        return blob_sha(content)

    def version_of(self, path: str, branch: str = "main") -> str:
        return blob_sha(self.branches[branch][path])

    def _commit(self, branch: str) -> None:
        self._commits += 1
        self.heads[branch] = f"c{self._commits}"

    def _files(self, branch: str) -> dict[str, bytes]:
        if branch not in self.branches:
            raise RemoteNotFoundError(f"Branch {branch} not found", 404)
        return self.branches[branch]

    # -- RepoClient surface ---------------------------------------------

    def validate_connection(self) -> str:
        return "tester"

    def get_branch(self, owner: str, repo: str, branch: str) -> dict:
        self._files(branch)
        return {"name": branch, "commit": {"sha": self.heads[branch]}}

    def get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        return self.get_branch(owner, repo, branch)["commit"]["sha"]

    def list_branches(self, owner: str, repo: str) -> list[dict]:
        return [
            {"name": name, "commit": {"sha": self.heads[name]}}
            for name in self.branches
        ]

    def create_branch_ref(
        self, owner: str, repo: str, branch: str, from_sha: str
    ) -> dict:
        if branch in self.branches:
            raise RemoteAPIError("Reference already exists", 422)
        source = next(
            (b for b, head in self.heads.items() if head == from_sha), None
        )
        if source is None:
            raise RemoteNotFoundError(f"Commit {from_sha} not found", 404)
        self.branches[branch] = dict(self.branches[source])
        self.heads[branch] = from_sha
        return {"ref": f"refs/heads/{branch}", "object": {"sha": from_sha}}

    def list_directory(
        self, owner: str, repo: str, path: str = "", branch: str = "main"
    ) -> list[dict]:
        self.list_calls += 1
        if path in self.fail_list:
            raise RemoteAPIError(f"Listing {path!r} failed", 500)
        files = self._files(branch)
        prefix = f"{path}/" if path else ""
        items: dict[str, dict] = {}
        for file_path, content in files.items():
            if not file_path.startswith(prefix):
                continue
            head, _, rest = file_path[len(prefix):].partition("/")
            child = prefix + head
            if rest:
                items.setdefault(
                    child, {"path": child, "type": "dir", "sha": f"tree:{child}"}
                )
            else:
                items[child] = {
                    "path": child,
                    "type": "file",
                    "sha": blob_sha(content),
                    "download_url": f"fake://{branch}/{child}",
                }
        return list(items.values())

    def get_raw_content(self, fetch_handle: str) -> bytes:
        branch, _, path = fetch_handle.removeprefix("fake://").partition("/")
        if path in self.fail_fetch:
            raise RemoteAPIError(f"Fetching {path} failed", 500)
        try:
            return self._files(branch)[path]
        except KeyError:
            raise RemoteNotFoundError(f"{path} not found", 404) from None

    def write_file(
        self,
        owner: str,
        repo: str,
        path: str,
        expected_version: str | None,
        content: bytes,
        message: str,
        branch: str = "main",
    ) -> str:
        if path in self.fail_write:
            raise RemoteAPIError(f"Writing {path} failed", 500)
        files = self._files(branch)
        current = blob_sha(files[path]) if path in files else None
        if current != expected_version:
            raise VersionMismatchError(path, expected_version, status_code=409)
        files[path] = content
        self._commit(branch)
        self.writes.append((path, expected_version, content, branch))
        return blob_sha(content)

    def delete_file(
        self,
        owner: str,
        repo: str,
        path: str,
        message: str,
        sha: str,
        branch: str = "main",
    ) -> dict:
        files = self._files(branch)
        if path not in files or blob_sha(files[path]) != sha:
            raise VersionMismatchError(path, sha, status_code=409)
        del files[path]
        self._commit(branch)
        self.deletes.append((path, sha, branch))
        return {"commit": {"sha": self.heads[branch]}}


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        token="test-token",
        api_url="https://api.example.com",
        insecure=False,
        max_retries=2,
    )


@pytest.fixture
def mock_repo_client(mock_config):
    """Create a mock RepoClient instance for testing."""
    from repo_sync.core.client import RepoClient

    client = MagicMock(spec=RepoClient)
    client.config = mock_config
    return client


@pytest.fixture
def fake_client():
    return FakeRepoClient()


@pytest.fixture
def repo_ref():
    from repo_sync.sync.models import RepoRef

    return RepoRef(owner=FakeRepoClient.owner, name=FakeRepoClient.repo)


@pytest.fixture
def orchestrator(fake_client):
    """An orchestrator over the fake client with the auto-sync timer off."""
    from repo_sync.sync.models import SyncConfig
    from repo_sync.sync.orchestrator import SyncOrchestrator

    return SyncOrchestrator(
        fake_client, SyncConfig(real_time_sync_enabled=False)
    )


@pytest.fixture
async def connected(orchestrator):
    await orchestrator.connect("octo/notes", "main")
    yield orchestrator
    await orchestrator.destroy()
