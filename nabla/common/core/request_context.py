"""
RequestContext management.
Use ContextVar to share the request id across async execution.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for Request ID (UUID or the client's X-Request-Id).
_request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Longest client-supplied request id we are willing to echo back.
MAX_REQUEST_ID_LENGTH = 128


def get_request_id() -> Optional[str]:
    """Get the current Request ID."""
    return _request_id_var.get()


def generate_request_id() -> str:
    """
    Generate and set a new Request ID (UUID) for the current context.
    """
    new_id = str(uuid.uuid4())
    _request_id_var.set(new_id)
    return new_id


def set_request_id(request_id: str) -> str:
    """
    Set the Request ID from an incoming header.

    Args:
        request_id: X-Request-Id header value

    Returns:
        The Request ID that was set

    Raises:
        ValueError: when the value is empty, too long or not printable ASCII
    """
    value = (request_id or "").strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH:
        raise ValueError(f"Invalid request id length: {len(value)}")
    if not value.isascii() or not value.isprintable():
        raise ValueError("Request id must be printable ASCII")
    _request_id_var.set(value)
    return value


def clear_request_id() -> None:
    """Clear the Request ID context."""
    _request_id_var.set(None)
