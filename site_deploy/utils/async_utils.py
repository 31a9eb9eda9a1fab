# site_deploy/utils/async_utils.py
"""Asynchronous operation utilities"""

import asyncio
import functools
from collections import deque
from typing import Any, Awaitable, Callable, Coroutine, Iterable, Optional, TypeVar

T = TypeVar('T')


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run async coroutine in sync context

    Args:
        coro: Coroutine to run

    Returns:
        Coroutine result
    """
    loop = None
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No running loop
        pass

    if loop and loop.is_running():
        # Already in async context, create new thread
        import threading

        result = None
        exception = None

        def run_in_thread():
            nonlocal result, exception
            try:
                result = asyncio.run(coro)
            except BaseException as e:
                exception = e

        thread = threading.Thread(target=run_in_thread)
        thread.start()
        thread.join()

        if exception:
            raise exception
        return result
    else:
        return asyncio.run(coro)


def sync_to_async(func: Callable[..., T]) -> Callable[..., Coroutine[Any, Any, T]]:
    """
    Decorator to convert sync function to async

    The wrapped call runs in the default executor, so blocking client
    libraries do not stall the event loop.

    Args:
        func: Sync function

    Returns:
        Async wrapper function
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    return wrapper


def clamp_concurrency(value: Optional[int], default: int, maximum: int) -> int:
    """Clamp a worker count to 1..maximum, falling back to default"""
    if not value:
        return default
    return max(1, min(int(value), maximum))


async def run_bounded(items: Iterable[Any],
                      worker: Callable[[Any], Awaitable[Any]],
                      concurrency: int,
                      callback: Optional[Callable[[Any, int, int], None]] = None) -> int:
    """
    Run worker over items with at most `concurrency` in flight

    Workers pull from one shared queue. After the first failure no new item
    is dispatched, in-flight items are allowed to finish and the first
    exception is re-raised.

    Args:
        items: Work items
        worker: Async callable processing one item
        concurrency: Maximum number of concurrent workers
        callback: Progress callback(item, completed, total)

    Returns:
        Number of completed items
    """
    queue = deque(items)
    total = len(queue)
    if total == 0:
        return 0

    completed = 0
    failure: Optional[BaseException] = None

    async def drain():
        nonlocal completed, failure
        while queue and failure is None:
            item = queue.popleft()
            try:
                await worker(item)
            except Exception as e:
                if failure is None:
                    failure = e
                return
            completed += 1
            if callback:
                callback(item, completed, total)

    workers = min(max(1, concurrency), total)
    await asyncio.gather(*(drain() for _ in range(workers)))

    if failure is not None:
        raise failure
    return completed
