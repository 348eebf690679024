"""
Nabla Functions Gateway

Accepts zipped function sources, builds them into container images and runs
them on demand by function id.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile

from nabla import __version__

from .api.deps import (
    FunctionInvokerDep,
    FunctionLoaderDep,
    FunctionRegistryDep,
    GatewayConfigDep,
)
from .config import config
from .core.cancellation import run_until_disconnected
from .core.exceptions import ArchiveTooLargeError
from .core.logging_config import setup_logging
from .exceptions import register_exception_handlers
from .lifecycle import manage_lifespan
from .middleware import request_id_middleware
from .models import ExecuteResponse, HealthResponse, LoadResponse

# Logger setup
setup_logging(config.VICTORIALOGS_URL)
logger = logging.getLogger("gateway.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with manage_lifespan(app, config):
        yield


app = FastAPI(
    title="Nabla Functions Gateway",
    version=__version__,
    lifespan=lifespan,
    root_path=config.root_path,
)

app.middleware("http")(request_id_middleware)
register_exception_handlers(app)


# ===========================================
# Endpoint definitions.
# ===========================================


@app.get("/health", response_model=HealthResponse)
async def health_check(registry: FunctionRegistryDep):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        functions=len(registry),
    )


@app.post("/api/load", response_model=LoadResponse)
async def load_function(
    request: Request,
    loader: FunctionLoaderDep,
    gateway_config: GatewayConfigDep,
    code: Optional[UploadFile] = File(None),
):
    """
    Load a function from a zip archive uploaded in the `code` form field.

    The archive is extracted, its handler file detected, and an image built;
    the returned functionId is what /api/execute takes.
    """
    if code is None:
        raise HTTPException(status_code=400, detail="Unable to get the zip file")

    limit = gateway_config.MAX_UPLOAD_BYTES
    data = await code.read(limit + 1)
    if len(data) > limit:
        raise ArchiveTooLargeError(f"Upload exceeds {limit} bytes")

    record = await run_until_disconnected(
        request, loader.load(data), gateway_config.DISCONNECT_POLL_INTERVAL
    )

    return LoadResponse(
        functionId=record.function_id,
        imageId=record.image_id,
        language=record.language,
        handler=record.handler,
        message=(
            "Function image built successfully for function with ID: "
            f"{record.function_id} and Image ID: {record.image_id}"
        ),
    )


@app.get("/api/execute", response_model=ExecuteResponse)
async def execute_function(
    request: Request,
    invoker: FunctionInvokerDep,
    gateway_config: GatewayConfigDep,
    functionId: Optional[str] = Query(None),
):
    """Run a loaded function and return its combined output."""
    if not functionId:
        raise HTTPException(status_code=400, detail="Function ID is required")

    result = await run_until_disconnected(
        request, invoker.invoke(functionId), gateway_config.DISCONNECT_POLL_INTERVAL
    )

    return ExecuteResponse(
        functionId=functionId,
        imageId=result.image_id,
        output=result.output,
        exitCode=result.exit_code,
    )


def run() -> None:
    """Console entry point: serve the gateway with uvicorn."""
    import uvicorn

    host, _, port = config.UVICORN_BIND_ADDR.rpartition(":")
    # Logging is already configured above; keep uvicorn from replacing it.
    uvicorn.run(app, host=host or "0.0.0.0", port=int(port), log_config=None)


if __name__ == "__main__":
    run()
