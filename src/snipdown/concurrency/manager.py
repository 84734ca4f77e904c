"""Thread pool for the CPU-heavy parts of a clip (parsing, conversion)."""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ConcurrencyManager:
    """
    Runs blocking work off the event loop of an execution context.

    Parsing a page with BeautifulSoup and running the rule engine can take
    hundreds of milliseconds on large documents; doing it in the pool keeps
    the context responsive to other messages (replies, download events).

    Example:
        async with ConcurrencyManager(max_workers=2) as manager:
            record = await manager.run_cpu_bound(extractor.extract, dom, options, url=url)
    """

    def __init__(self, max_workers: int = 2) -> None:
        self.max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending = 0

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="snipdown-cpu-",
            )
        return self._executor

    @property
    def pending(self) -> int:
        """Calls submitted and not yet finished."""
        return self._pending

    async def run_cpu_bound(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``func(*args, **kwargs)`` in the pool and await its result."""
        loop = asyncio.get_running_loop()
        call = functools.partial(func, *args, **kwargs) if kwargs else functools.partial(func, *args)
        self._pending += 1
        try:
            return await loop.run_in_executor(self.executor, call)
        finally:
            self._pending -= 1

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            if self._pending:
                logger.debug(f"Shutting down CPU pool with {self._pending} pending call(s)")
            self._executor.shutdown(wait=wait)
            self._executor = None

    async def __aenter__(self) -> ConcurrencyManager:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.shutdown(wait=True)
