"""Per-scan worker pool and cooperative cancellation."""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CancelToken:
    """Cancellation flag shared by every loop of one scan.

    Backed by a :class:`threading.Event` so it can be set from a signal
    handler or another thread while the scan runs on an event loop.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class WorkerPool:
    """Bounded concurrency for one scan.

    ``map`` limits how many coroutines are in flight at once; ``run_blocking``
    moves blocking calls (sockets, DNS, psutil) onto a thread pool of the
    same size. Create one per scan and call :meth:`shutdown` when done.
    """

    def __init__(self, size: int):
        if size <= 0:
            raise ValueError(f"Pool size must be positive, got {size}")
        self.size = size
        self._semaphore = asyncio.Semaphore(size)
        self._executor: ThreadPoolExecutor | None = None

    @property
    def executor(self) -> ThreadPoolExecutor:
        # Recreated if a previous stop shut it down
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.size, thread_name_prefix="netrecon")
        return self._executor

    async def run_blocking(self, func: Callable[..., R], *args: Any) -> R:
        """Run a blocking function on the pool's threads."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    async def map(
        self,
        func: Callable[[T], Awaitable[R]],
        items: Iterable[T],
        cancel: CancelToken | None = None,
    ) -> list[R | None]:
        """Apply ``func`` to every item with at most ``size`` running at once.

        Items not yet started when ``cancel`` is set are skipped and yield
        ``None``; items already running finish naturally.
        """

        async def worker(item: T) -> R | None:
            async with self._semaphore:
                if cancel is not None and cancel.cancelled:
                    return None
                return await func(item)

        return list(await asyncio.gather(*(worker(item) for item in items)))

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
