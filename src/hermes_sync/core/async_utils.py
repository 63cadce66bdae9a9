"""Async utilities for running blocking git and HTTP work off the event loop."""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        synchronizer = RepositorySynchronizer(runner, inspector, base_dir, policy)
        result = await run_sync(synchronizer.sync, project)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    semaphore: asyncio.Semaphore | None,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a synchronous function in a thread pool, bounded by *semaphore*.

    Runs unbounded when *semaphore* is ``None``.

    Args:
        semaphore: Slot pool shared by the calls to be bounded together
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    if semaphore is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run coroutines concurrently and collect their results in order.

    Each coroutine should use run_sync_limited internally.
    Exceptions propagate from the first failure.

    Args:
        coros: Sequence of coroutines to run concurrently.

    Returns:
        List of results in the same order as input coroutines.
    """
    return list(await asyncio.gather(*coros))
