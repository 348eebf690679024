"""
Custom exception classes.

Every error the load/execute pipeline can surface derives from GatewayError,
which carries the HTTP status and the generic message shown to clients.
Diagnostic detail (underlying cause, engine output, exit codes) stays on the
exception for logging only.
"""

import logging
from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base exception class for the function gateway."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Internal Server Error"


# ===========================================
# Load path
# ===========================================


class ArchiveError(GatewayError):
    """Raised when an uploaded archive is malformed or unsafe."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid function archive"


class ArchiveTooLargeError(ArchiveError):
    """Raised when an archive exceeds the upload or extraction limits."""

    status_code = 413
    public_message = "Function archive too large"


class ArchiveWriteError(ArchiveError):
    """Raised when an archive entry cannot be written to the workspace."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Unable to extract function archive"


class DetectionError(GatewayError):
    """Raised when no recognised handler file exists."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "No supported handler file found"


class TemplateError(GatewayError):
    """Raised when a build template is missing or malformed."""

    public_message = "Build template unavailable"

    def __init__(self, language: str, reason: str):
        self.language = language
        self.reason = reason
        super().__init__(f"Build template for '{language}' unusable: {reason}")


class BuildError(GatewayError):
    """Raised when the container engine fails to build an image."""

    public_message = "Unable to build function image"

    def __init__(self, tag: str, reason: str, output: str = ""):
        self.tag = tag
        self.reason = reason
        self.output = output
        super().__init__(f"Image build failed for {tag}: {reason}")


class BuildTimeoutError(BuildError):
    """Raised when an image build exceeds its deadline."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    public_message = "Function image build timed out"


class ExtractionError(GatewayError):
    """Raised when the image id cannot be recovered from build output."""

    public_message = "Unable to determine built image"


# ===========================================
# Execute path
# ===========================================


class FunctionNotFoundError(GatewayError):
    """Raised when a function id is not registered."""

    status_code = status.HTTP_404_NOT_FOUND
    public_message = "Function not found"

    def __init__(self, function_id: str):
        self.function_id = function_id
        super().__init__(f"Function not found: {function_id}")


class RunError(GatewayError):
    """Raised when a function container fails to run to a clean exit."""

    public_message = "Function execution failed"

    def __init__(self, image_id: str, reason: str, exit_code: Optional[int] = None, output: str = ""):
        self.image_id = image_id
        self.reason = reason
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"Run of {image_id} failed: {reason}")


class RunTimeoutError(RunError):
    """Raised when a function run exceeds its deadline."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    public_message = "Function execution timed out"


# ===========================================
# Flow control
# ===========================================


class ResourceExhaustedError(GatewayError):
    """Raised when no build slot frees up in time."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    public_message = "Too Many Requests"

    def __init__(self, detail: str = "Request timed out in queue"):
        super().__init__(detail)


class ClientDisconnectedError(GatewayError):
    """Raised when the client went away while its request was being served."""

    # nginx's "Client Closed Request"; nobody is left to read it.
    status_code = 499
    public_message = "Client Closed Request"


# ===========================================
# Container engine
# ===========================================


class ContainerEngineError(Exception):
    """Raised when the container engine itself cannot be reached or launched."""


class EngineTimeoutError(ContainerEngineError):
    """Raised when an engine operation exceeds its deadline."""

    def __init__(self, operation: str, timeout: Optional[float], output: str = ""):
        self.operation = operation
        self.timeout = timeout
        self.output = output
        super().__init__(f"docker {operation} exceeded {timeout}s deadline")


# ===========================================
# Exception Handlers
# ===========================================


async def gateway_exception_handler(request: Request, exc: GatewayError):
    """
    Log the full diagnostic detail and answer with the generic message only.
    """
    extra = {
        "path": request.url.path,
        "method": request.method,
        "error_type": type(exc).__name__,
        "error_detail": str(exc),
        "status": exc.status_code,
    }
    for attr in ("output", "exit_code", "function_id", "image_id", "tag", "language"):
        value = getattr(exc, attr, None)
        if value not in (None, ""):
            extra[attr] = value

    if exc.status_code >= 500:
        logger.error(f"Request failed: {exc}", exc_info=exc, extra=extra)
    else:
        logger.warning(f"Request rejected: {exc}", extra=extra)

    return JSONResponse(status_code=exc.status_code, content={"message": exc.public_message})


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unhandled exceptions.
    """
    logger.error(
        f"Global exception handler caught: {exc}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal Server Error"},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Handler for HTTPException.
    """
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handler for validation errors.
    """
    return JSONResponse(
        status_code=422,
        content={"message": "Validation Error", "detail": str(exc.errors())},
    )
