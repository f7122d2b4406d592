"""Remote repository client shared by the sync engine and the MCP server."""

from .async_utils import run_sync
from .client import RepoClient
from .exceptions import (
    RemoteAPIError,
    RemoteAuthError,
    RemoteNetworkError,
    RemoteNotFoundError,
    RemotePermissionError,
    RemoteRateLimitError,
    VersionMismatchError,
)

__all__ = [
    "RemoteAPIError",
    "RemoteAuthError",
    "RemoteNetworkError",
    "RemoteNotFoundError",
    "RemotePermissionError",
    "RemoteRateLimitError",
    "RepoClient",
    "VersionMismatchError",
    "run_sync",
]
