import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from nabla.gateway.core.cancellation import run_until_disconnected
from nabla.gateway.core.exceptions import ClientDisconnectedError


def _request(disconnected):
    request = MagicMock()
    request.method = "POST"
    request.url.path = "/api/load"
    request.is_disconnected = AsyncMock(side_effect=disconnected)
    return request


@pytest.mark.asyncio
async def test_returns_result_when_client_stays():
    async def operation():
        await asyncio.sleep(0.05)
        return "done"

    request = _request(lambda: False)

    assert await run_until_disconnected(request, operation(), poll_interval=0.01) == "done"


@pytest.mark.asyncio
async def test_propagates_operation_errors():
    async def operation():
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await run_until_disconnected(_request(lambda: False), operation(), poll_interval=0.01)


@pytest.mark.asyncio
async def test_disconnect_cancels_operation():
    cancelled = asyncio.Event()

    async def operation():
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    polls = iter([False, True])
    request = _request(lambda: next(polls))

    with pytest.raises(ClientDisconnectedError) as excinfo:
        await run_until_disconnected(request, operation(), poll_interval=0.01)

    assert cancelled.is_set()
    assert excinfo.value.status_code == 499


@pytest.mark.asyncio
async def test_outer_cancel_cancels_operation():
    cancelled = asyncio.Event()

    async def operation():
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    task = asyncio.create_task(
        run_until_disconnected(_request(lambda: False), operation(), poll_interval=0.01)
    )
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert cancelled.is_set()
