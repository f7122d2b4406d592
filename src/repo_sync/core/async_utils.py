"""Bridge between the event loop and the blocking ``requests`` client.

Every remote call made from async code goes through ``run_sync_limited`` so
the walker's directory fan-out and the per-file fetches and writes of a sync
share one bound on in-flight HTTP requests (``max_parallel_requests``).
``run_sync`` skips the bound; it is meant for one-off calls such as the
startup token check.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Set by init_semaphore() once the event loop is running
_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int = 5) -> None:
    """Bound concurrent remote requests. Call once at server startup."""
    global _semaphore
    if max_parallel < 1:
        raise ValueError(
            f"max_parallel must be at least 1, got {max_parallel}"
        )
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.info("At most %d remote requests in flight", max_parallel)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Call *func* in the default thread pool, unbounded.

    Example:
        client = RepoClient(config)
        login = await run_sync(client.validate_connection)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Call *func* in the thread pool while holding a request slot.

    Without an initialized semaphore (tests, scripts) this is ``run_sync``.
    Cancelling the caller frees the slot at once; the worker thread runs to
    completion and its result is dropped.
    """
    semaphore = _semaphore
    if semaphore is None:
        return await run_sync(func, *args, **kwargs)
    async with semaphore:
        return await run_sync(func, *args, **kwargs)


async def gather_limited(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Await *aws* concurrently and return their results in input order.

    The first exception propagates and the awaitables still running are
    cancelled, so a failed directory listing stops its siblings.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
