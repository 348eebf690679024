import asyncio
import uuid

import pytest

from nabla.common.core.request_context import (
    MAX_REQUEST_ID_LENGTH,
    clear_request_id,
    generate_request_id,
    get_request_id,
    set_request_id,
)


@pytest.fixture(autouse=True)
def _reset():
    clear_request_id()
    yield
    clear_request_id()


def test_generate_sets_uuid():
    request_id = generate_request_id()

    assert get_request_id() == request_id
    assert uuid.UUID(request_id).version == 4


def test_set_strips_whitespace():
    assert set_request_id("  abc-123 ") == "abc-123"
    assert get_request_id() == "abc-123"


@pytest.mark.parametrize(
    "value",
    ["", "   ", "x" * (MAX_REQUEST_ID_LENGTH + 1), "bad\nvalue", "идентификатор"],
)
def test_set_rejects_invalid_values(value):
    with pytest.raises(ValueError):
        set_request_id(value)

    assert get_request_id() is None


def test_clear():
    generate_request_id()
    clear_request_id()

    assert get_request_id() is None


@pytest.mark.asyncio
async def test_context_is_isolated_between_tasks():
    async def handle(value):
        set_request_id(value)
        await asyncio.sleep(0.01)
        return get_request_id()

    results = await asyncio.gather(handle("req-a"), handle("req-b"))

    assert results == ["req-a", "req-b"]
