import base64
import logging
import random
import threading
import time
from typing import Any
from urllib.parse import quote

import requests

from ..config import Config
from ..validators import validate_branch_name, validate_file_path
from .exceptions import (
    RemoteAPIError,
    RemoteAuthError,
    RemoteNetworkError,
    RemoteNotFoundError,
    RemotePermissionError,
    RemoteRateLimitError,
    VersionMismatchError,
)

logger = logging.getLogger(__name__)

# Status codes the contents API uses to reject a write whose sha is stale
# (409) or missing for an existing file (422).
_CAS_REJECT_CODES = (409, 422)


class RepoClient:
    """Blocking client for a GitHub-compatible REST API.

    One ``requests.Session`` per thread, since calls arrive through
    ``asyncio.to_thread``.  Every request carries a ``(connect, read)``
    timeout and is retried with exponential backoff on 5xx, rate limiting
    and transport errors.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.api_url = config.api_url.rstrip("/")
        self.timeout = (10, config.request_timeout)

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        session.verify = not self.config.insecure
        return session

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.api_url}/{endpoint.lstrip('/')}"

    def _retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter."""
        base = 2**attempt
        return base + base * 0.25 * (2 * random.random() - 1)

    def _error_for(self, response: requests.Response) -> RemoteAPIError:
        status = response.status_code
        message = f"Request to {response.url} failed with status {status}"
        try:
            data = response.json()
            if isinstance(data, dict) and data.get("message"):
                message = f"{message}: {data['message']}"
        except ValueError:
            pass

        if status == 401:
            return RemoteAuthError(message, status)
        if status == 403:
            if response.headers.get("X-RateLimit-Remaining") == "0":
                return RemoteRateLimitError(message, status)
            return RemotePermissionError(message, status)
        if status == 404:
            return RemoteNotFoundError(message, status)
        if status == 429:
            return RemoteRateLimitError(message, status)
        return RemoteAPIError(message, status)

    def _request(
        self, method: str, endpoint: str, **kwargs: Any
    ) -> requests.Response:
        """Send one request, retrying transient failures.

        Raises:
            RemoteAPIError: (or a subclass) once retries are exhausted or
                the failure is not transient.
        """
        url = self._url(endpoint)
        session = self._get_session()

        for attempt in range(self.config.max_retries + 1):
            try:
                response = session.request(
                    method, url, timeout=self.timeout, **kwargs
                )
            except requests.RequestException as e:
                error: RemoteAPIError = RemoteNetworkError(
                    f"Network error on {method} {url}: {e}"
                )
                if attempt < self.config.max_retries:
                    logger.debug("Retrying %s %s after %s", method, url, e)
                    time.sleep(self._retry_delay(attempt))
                    continue
                raise error from e

            if response.ok:
                return response

            error = self._error_for(response)
            transient = isinstance(error, RemoteRateLimitError) or (
                500 <= response.status_code < 600
            )
            if transient and attempt < self.config.max_retries:
                retry_after = response.headers.get("Retry-After", "")
                delay = (
                    float(retry_after)
                    if retry_after.isdigit()
                    else self._retry_delay(attempt)
                )
                logger.debug(
                    "Retrying %s %s in %.1fs (status %d)",
                    method,
                    url,
                    delay,
                    response.status_code,
                )
                time.sleep(delay)
                continue
            raise error

        raise RemoteAPIError(f"{method} {url} failed after all retries")

    def _get_json(self, endpoint: str, **kwargs: Any) -> Any:
        return self._request("GET", endpoint, **kwargs).json()

    @staticmethod
    def _contents_path(owner: str, repo: str, path: str) -> str:
        return f"/repos/{owner}/{repo}/contents/{quote(path.strip('/'), safe='/')}"

    @staticmethod
    def _check_path(path: str) -> None:
        is_valid, message = validate_file_path(path)
        if not is_valid:
            raise ValueError(message)

    @staticmethod
    def _check_branch(branch: str) -> None:
        is_valid, message = validate_branch_name(branch)
        if not is_valid:
            raise ValueError(message)

    # ------------------------------------------------------------------
    # Account / repositories
    # ------------------------------------------------------------------

    def validate_connection(self) -> str:
        """
        Validate the token by fetching the authenticated user.
        Returns the user's login.
        """
        user = self._get_json("/user")
        return str(user.get("login", ""))

    def list_repositories(self) -> list[dict[str, Any]]:
        """List repositories of the authenticated user, most recently updated first."""
        return self._get_json(
            "/user/repos", params={"sort": "updated", "per_page": 100}
        )

    def get_repository(self, owner: str, repo: str) -> dict[str, Any]:
        return self._get_json(f"/repos/{owner}/{repo}")

    def create_repository(
        self, name: str, description: str = "", private: bool = False
    ) -> dict[str, Any]:
        """Create a repository for the authenticated user, initialised with a README."""
        return self._request(
            "POST",
            "/user/repos",
            json={
                "name": name,
                "description": description,
                "private": private,
                "auto_init": True,
            },
        ).json()

    # ------------------------------------------------------------------
    # Contents
    # ------------------------------------------------------------------

    def list_directory(
        self, owner: str, repo: str, path: str = "", branch: str = "main"
    ) -> list[dict[str, Any]]:
        """
        List one directory level at *path* on *branch*.

        A path that names a file yields a one-element list, so callers can
        treat both cases alike.
        """
        self._check_branch(branch)
        data = self._get_json(
            self._contents_path(owner, repo, path), params={"ref": branch}
        )
        return data if isinstance(data, list) else [data]

    def get_file(
        self, owner: str, repo: str, path: str, branch: str = "main"
    ) -> dict[str, Any]:
        """Fetch metadata (and base64 content) for a single file."""
        self._check_path(path)
        self._check_branch(branch)
        return self._get_json(
            self._contents_path(owner, repo, path), params={"ref": branch}
        )

    def get_raw_content(self, fetch_handle: str) -> bytes:
        """
        Download the raw bytes behind a fetch handle.

        The handle is either a ``download_url`` (raw bytes) or a blob API
        URL (JSON with base64 content).
        """
        response = self._request("GET", fetch_handle)
        if "/git/blobs/" in fetch_handle:
            data = response.json()
            return base64.b64decode(data.get("content", ""))
        return response.content

    def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: bytes,
        message: str,
        sha: str | None = None,
        branch: str = "main",
    ) -> dict[str, Any]:
        """
        Create or update a file.

        Args:
            sha: Version the caller believes is current.  ``None`` means the
                file is expected not to exist yet.

        Returns:
            The API response (``content`` and ``commit`` objects).

        Raises:
            VersionMismatchError: If the server rejects *sha* as stale.
            ValueError: If path or branch is invalid.
        """
        self._check_path(path)
        self._check_branch(branch)

        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha

        try:
            return self._request(
                "PUT", self._contents_path(owner, repo, path), json=body
            ).json()
        except RemoteAPIError as e:
            if e.status_code in _CAS_REJECT_CODES:
                raise VersionMismatchError(
                    path, sha, str(e), e.status_code
                ) from e
            raise

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
        """
        Compare-and-swap write: store *content* at *path* only if the
        current remote version equals *expected_version*.

        Returns:
            The new version (blob sha) of the file.

        Raises:
            VersionMismatchError: If *expected_version* is stale.
        """
        result = self.put_file(
            owner, repo, path, content, message, expected_version, branch
        )
        return str(result["content"]["sha"])

    def delete_file(
        self,
        owner: str,
        repo: str,
        path: str,
        message: str,
        sha: str,
        branch: str = "main",
    ) -> dict[str, Any]:
        """
        Delete a file, guarded by its current version *sha*.

        Raises:
            VersionMismatchError: If *sha* is stale.
        """
        self._check_path(path)
        self._check_branch(branch)
        try:
            return self._request(
                "DELETE",
                self._contents_path(owner, repo, path),
                json={"message": message, "sha": sha, "branch": branch},
            ).json()
        except RemoteAPIError as e:
            if e.status_code in _CAS_REJECT_CODES:
                raise VersionMismatchError(
                    path, sha, str(e), e.status_code
                ) from e
            raise

    # ------------------------------------------------------------------
    # Branches and refs
    # ------------------------------------------------------------------

    def list_branches(self, owner: str, repo: str) -> list[dict[str, Any]]:
        return self._get_json(
            f"/repos/{owner}/{repo}/branches", params={"per_page": 100}
        )

    def get_branch(
        self, owner: str, repo: str, branch: str
    ) -> dict[str, Any]:
        """
        Fetch a branch.

        Raises:
            RemoteNotFoundError: If the branch does not exist.
        """
        self._check_branch(branch)
        return self._get_json(
            f"/repos/{owner}/{repo}/branches/{quote(branch, safe='')}"
        )

    def get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        """Return the commit sha at the head of *branch*."""
        return str(self.get_branch(owner, repo, branch)["commit"]["sha"])

    def create_branch_ref(
        self, owner: str, repo: str, branch: str, from_sha: str
    ) -> dict[str, Any]:
        """Create ``refs/heads/<branch>`` pointing at *from_sha*."""
        self._check_branch(branch)
        return self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": from_sha},
        ).json()

    def get_commits(
        self, owner: str, repo: str, branch: str = "main", per_page: int = 10
    ) -> list[dict[str, Any]]:
        return self._get_json(
            f"/repos/{owner}/{repo}/commits",
            params={"sha": branch, "per_page": per_page},
        )

    def compare(
        self, owner: str, repo: str, base: str, head: str
    ) -> dict[str, Any]:
        """Compare two commits, branches or tags."""
        return self._get_json(f"/repos/{owner}/{repo}/compare/{base}...{head}")

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        head: str,
        base: str,
        body: str = "",
    ) -> dict[str, Any]:
        return self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "head": head, "base": base, "body": body},
        ).json()

    def merge_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        commit_title: str | None = None,
        commit_message: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"merge_method": "merge"}
        if commit_title:
            body["commit_title"] = commit_title
        if commit_message:
            body["commit_message"] = commit_message
        return self._request(
            "PUT", f"/repos/{owner}/{repo}/pulls/{number}/merge", json=body
        ).json()
