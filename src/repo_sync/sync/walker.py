"""Remote tree walker.

Lists every file under a path on a branch using an explicit worklist of
directories.  Each round lists all pending directories concurrently,
bounded by the request semaphore, then queues the subdirectories found.

Any listing failure aborts the walk: a directory that cannot be listed
must fail the sync rather than make its files look deleted.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from ..core.async_utils import gather_limited, run_sync_limited
from .models import RemoteEntry

if TYPE_CHECKING:
    from ..core.client import RepoClient

logger = logging.getLogger(__name__)


async def walk_remote_tree(
    client: RepoClient,
    owner: str,
    repo: str,
    branch: str,
    root: str = "",
) -> list[RemoteEntry]:
    """Return all file entries below *root* on *branch*.

    Raises:
        RemoteAPIError: If any directory listing fails.  No partial
            result is returned.
        asyncio.CancelledError: If the awaiting task is cancelled.
    """
    files: list[RemoteEntry] = []
    pending: deque[str] = deque([root])
    listed = 0

    while pending:
        batch = list(pending)
        pending.clear()

        listings = await gather_limited(
            [
                run_sync_limited(
                    client.list_directory, owner, repo, path, branch
                )
                for path in batch
            ]
        )
        listed += len(batch)

        for items in listings:
            for item in items:
                entry = RemoteEntry.from_api(item)
                if entry.type == "dir":
                    pending.append(entry.path)
                else:
                    files.append(entry)

    logger.debug(
        "Walked %s/%s@%s: %d directories, %d files",
        owner,
        repo,
        branch,
        listed,
        len(files),
    )
    return files
