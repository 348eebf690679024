"""
Gateway startup/shutdown orchestration for shared resources.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .config import GatewayConfig
from .core.concurrency import BuildThrottle
from .services.container_engine import create_container_engine
from .services.function_registry import FunctionRegistry
from .services.image_builder import ImageBuilder
from .services.invoker import FunctionInvoker
from .services.loader import FunctionLoader
from .services.template_store import TemplateStore

logger = logging.getLogger("gateway.main")


@asynccontextmanager
async def manage_lifespan(app: FastAPI, gateway_config: GatewayConfig) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    engine = create_container_engine(gateway_config)
    logger.info(
        f"Initializing Gateway with {type(engine).__name__}",
        extra={"templates_dir": str(gateway_config.templates_path)},
    )

    # Registry lives exactly as long as the process; nothing is restored or saved.
    function_registry = FunctionRegistry()
    builder = ImageBuilder(
        engine=engine,
        templates=TemplateStore(gateway_config.templates_path),
        image_repository=gateway_config.IMAGE_REPOSITORY,
        timeout=gateway_config.BUILD_TIMEOUT_SECONDS,
    )
    throttle = BuildThrottle(
        gateway_config.MAX_CONCURRENT_BUILDS,
        default_timeout=gateway_config.BUILD_QUEUE_TIMEOUT_SECONDS,
    )

    app.state.config = gateway_config
    app.state.function_registry = function_registry
    app.state.function_loader = FunctionLoader(
        builder=builder,
        registry=function_registry,
        throttle=throttle,
        workspace_root=gateway_config.WORKSPACE_ROOT or None,
        max_extracted_bytes=gateway_config.MAX_EXTRACTED_BYTES,
        max_entries=gateway_config.MAX_ARCHIVE_ENTRIES,
    )
    app.state.function_invoker = FunctionInvoker(
        engine=engine,
        registry=function_registry,
        timeout=gateway_config.RUN_TIMEOUT_SECONDS,
    )

    logger.info("Gateway initialized with shared resources.")
    try:
        yield
    finally:
        logger.info(
            f"Gateway shutting down, dropping {len(function_registry)} registered functions."
        )
