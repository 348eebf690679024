"""
Client disconnect propagation.

Builds and runs can take minutes. When the HTTP client goes away, the
operation is cancelled so the engine adapter can kill the external process
instead of finishing work nobody will read.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import Request

from .exceptions import ClientDisconnectedError

logger = logging.getLogger("gateway.cancellation")

T = TypeVar("T")


async def run_until_disconnected(
    request: Request, operation: Awaitable[T], poll_interval: float = 0.5
) -> T:
    """
    Await operation, cancelling it if the client disconnects first.

    Raises:
        ClientDisconnectedError: the client disconnected before operation finished
    """
    task = asyncio.ensure_future(operation)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.warning(
                    f"Client disconnected, cancelling {request.method} {request.url.path}"
                )
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                raise ClientDisconnectedError("Client disconnected before completion")
    finally:
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
