"""Exception hierarchy for remote repository API failures.

Every operational failure raised by ``RepoClient`` derives from
``RemoteAPIError`` so the sync engine can bucket it per file.  Detected
divergence is never reported through these classes; it is returned as
``SyncConflict`` records instead.
"""


class RemoteAPIError(Exception):
    """Base class for remote API failures.

    Attributes:
        status_code: HTTP status code, or ``None`` for transport errors.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteAuthError(RemoteAPIError):
    """The bearer token was rejected (401)."""


class RemotePermissionError(RemoteAPIError):
    """The token lacks access to the resource (403)."""


class RemoteNotFoundError(RemoteAPIError):
    """Repository, branch, path or ref does not exist (404)."""


class RemoteRateLimitError(RemoteAPIError):
    """Rate limit exceeded (429, or 403 with an exhausted quota)."""


class RemoteNetworkError(RemoteAPIError):
    """Connection failure or timeout before a response was received."""


class VersionMismatchError(RemoteAPIError):
    """A compare-and-swap write was rejected because the supplied version
    token does not match the version currently stored remotely.

    Attributes:
        path: Repository path of the rejected write.
        expected_version: The token the caller supplied (``None`` for a
            first write that collided with an existing file).
    """

    def __init__(
        self,
        path: str,
        expected_version: str | None,
        message: str = "",
        status_code: int | None = None,
    ):
        super().__init__(
            message
            or f"Stale write to {path}: expected version {expected_version or '<none>'}",
            status_code,
        )
        self.path = path
        self.expected_version = expected_version
