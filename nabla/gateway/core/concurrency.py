"""
Build slot control and threadpool helpers.

Image builds are the expensive part of a load; BuildThrottle caps how many
run at once and queues the rest in arrival order. run_to_completion keeps
a cancelled request from outliving the worker thread it started.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Deque, Optional, TypeVar

from fastapi.concurrency import run_in_threadpool

from .exceptions import ResourceExhaustedError

logger = logging.getLogger("gateway.concurrency")

T = TypeVar("T")


class BuildThrottle:
    """
    Bounds the number of image builds running at once.
    Free slots are handed directly to the oldest waiter, so queued builds
    start in FIFO order and a newcomer never overtakes them.
    """

    def __init__(self, limit: int, default_timeout: float = 30.0):
        self.limit = limit
        self.default_timeout = default_timeout
        self._in_use = 0
        self._lock = asyncio.Lock()
        self.waiters: Deque[asyncio.Future] = deque()

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def queued(self) -> int:
        return len(self.waiters)

    async def acquire(self, timeout: Optional[float] = None) -> None:
        """
        Take a build slot, waiting up to timeout seconds for one.

        Raises:
            ResourceExhaustedError: no slot became free in time
        """
        wait_for = self.default_timeout if timeout is None else timeout

        async with self._lock:
            if self._in_use < self.limit and not self.waiters:
                self._in_use += 1
                return
            slot: asyncio.Future = asyncio.get_running_loop().create_future()
            self.waiters.append(slot)
            position = len(self.waiters)

        logger.debug(f"Build queued at position {position}", extra={"queued": position})
        try:
            await asyncio.wait_for(asyncio.shield(slot), wait_for)
        except asyncio.TimeoutError:
            await self._abandon(slot)
            raise ResourceExhaustedError("Timed out waiting for a build slot")
        except BaseException:
            await self._abandon(slot)
            raise

    async def _abandon(self, slot: asyncio.Future) -> None:
        async with self._lock:
            if slot in self.waiters:
                self.waiters.remove(slot)
                slot.cancel()
                return
        # Granted while we were giving up: the slot is ours, pass it on.
        await self.release()

    async def release(self) -> None:
        async with self._lock:
            while self.waiters:
                slot = self.waiters.popleft()
                if not slot.done():
                    # Ownership moves to the waiter; the in-use count stays.
                    slot.set_result(None)
                    return
            if self._in_use > 0:
                self._in_use -= 1

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()


async def run_to_completion(func: Callable[..., T], *args: Any) -> T:
    """
    Run a blocking call in the threadpool and wait for it even if cancelled.

    A worker thread cannot be interrupted, so a cancelled caller still waits
    for it to return before the CancelledError propagates. Whatever the call
    touches on disk is settled once this coroutine exits.
    """
    future = asyncio.ensure_future(run_in_threadpool(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        while not future.done():
            try:
                await asyncio.wait({future})
            except asyncio.CancelledError:
                continue
        if not future.cancelled() and future.exception() is not None:
            logger.debug(f"Cancelled worker call failed: {future.exception()!r}")
        raise
