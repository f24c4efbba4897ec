"""
Async helpers for running blocking Google Earth Engine operations in thread pool.

Earth Engine's Python client blocks on every round trip (getInfo, getMapId,
getThumbURL) and has no deadline of its own. These helpers move such calls off
the event loop and race them against an explicit timeout so a hung request can
never hang the caller.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, TypeVar

from vegindex.services.exceptions import RemoteTimeout

logger = logging.getLogger(__name__)

# Global thread pool executor for blocking GEE operations
_executor: ThreadPoolExecutor | None = None
_executor_max_workers = 10

# Semaphore to limit concurrent GEE API calls (prevent rate limit issues)
_gee_semaphore: asyncio.Semaphore | None = None
_gee_max_concurrent = 15

T = TypeVar("T")


def get_executor() -> ThreadPoolExecutor:
    """
    Get or create the global thread pool executor.

    Returns:
        ThreadPoolExecutor: Shared executor for blocking operations
    """
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=_executor_max_workers,
            thread_name_prefix="gee_worker_"
        )
        logger.info(f"Created thread pool executor with {_executor_max_workers} workers")
    return _executor


def get_semaphore() -> asyncio.Semaphore:
    """
    Get or create the global GEE API semaphore for rate limiting.

    Returns:
        asyncio.Semaphore: Semaphore limiting concurrent GEE calls
    """
    global _gee_semaphore
    if _gee_semaphore is None:
        _gee_semaphore = asyncio.Semaphore(_gee_max_concurrent)
        logger.info(f"Created GEE semaphore with {_gee_max_concurrent} concurrent limit")
    return _gee_semaphore


async def run_in_executor(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a blocking function in the thread pool executor.

    Args:
        func: Blocking function to execute
        *args: Positional arguments for the function
        **kwargs: Keyword arguments for the function

    Returns:
        Result of the blocking function
    """
    loop = asyncio.get_running_loop()
    executor = get_executor()

    if kwargs:
        func_with_args = partial(func, *args, **kwargs)
        return await loop.run_in_executor(executor, func_with_args)
    else:
        return await loop.run_in_executor(executor, func, *args)


async def run_with_timeout(
    func: Callable[..., T],
    *args: Any,
    timeout: float,
    operation: str,
    **kwargs: Any,
) -> T:
    """
    Run a blocking remote call in the thread pool with a hard deadline.

    The semaphore slot is held only while waiting. On timeout the worker thread
    is abandoned (the remote service may keep processing server-side) and
    ``RemoteTimeout`` is raised; the call is never retried here.

    Args:
        func: Blocking function to execute
        *args: Positional arguments for the function
        timeout: Deadline in seconds
        operation: Name used in logs and in the raised error
        **kwargs: Keyword arguments for the function

    Returns:
        Result of the blocking function

    Raises:
        RemoteTimeout: If the call does not finish within ``timeout``

    Example:
        >>> count = await run_with_timeout(
        ...     collection.size().getInfo, timeout=30, operation="scene_count"
        ... )
    """
    semaphore = get_semaphore()
    async with semaphore:
        try:
            return await asyncio.wait_for(
                run_in_executor(func, *args, **kwargs), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"{operation} timed out after {timeout:g}s")
            raise RemoteTimeout(operation, timeout) from None


def shutdown_executor():
    """
    Shutdown the global thread pool executor.

    Should be called during application shutdown to clean up resources.
    Abandoned calls that already timed out are not waited for.
    """
    global _executor, _gee_semaphore
    if _executor is not None:
        logger.info("Shutting down thread pool executor")
        _executor.shutdown(wait=False, cancel_futures=True)
        _executor = None
    _gee_semaphore = None
