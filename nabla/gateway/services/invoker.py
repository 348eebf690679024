"""
Function Invoker Service

Runs a previously built function image in an ephemeral container and returns
its combined output.
"""

import logging
from typing import Optional

from ..core.exceptions import ContainerEngineError, EngineTimeoutError, RunError, RunTimeoutError
from ..models.result import InvocationResult
from .container_engine import ContainerEngine
from .function_registry import FunctionRegistry

logger = logging.getLogger("gateway.invoker")


class FunctionInvoker:
    def __init__(
        self,
        engine: ContainerEngine,
        registry: FunctionRegistry,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            engine: container engine adapter
            registry: FunctionRegistry instance
            timeout: run deadline in seconds
        """
        self.engine = engine
        self.registry = registry
        self.timeout = timeout

    async def run_image(self, image_id: str) -> InvocationResult:
        """
        Run image_id to completion.

        Raises:
            RunError: engine unavailable, unknown image, or non-zero exit
            RunTimeoutError: run exceeded its deadline; the container was killed
        """
        logger.info(f"Running image {image_id}", extra={"image_id": image_id})
        try:
            result = await self.engine.run(image_id, self.timeout)
        except EngineTimeoutError as e:
            raise RunTimeoutError(image_id, str(e), output=e.output) from e
        except ContainerEngineError as e:
            raise RunError(image_id, str(e)) from e

        if not result.success:
            raise RunError(
                image_id,
                f"container exited with status {result.exit_code}",
                exit_code=result.exit_code,
                output=result.output,
            )

        return InvocationResult(image_id=image_id, output=result.output, exit_code=result.exit_code)

    async def invoke(self, function_id: str) -> InvocationResult:
        """
        Run the image registered for function_id.

        Raises:
            FunctionNotFoundError: function_id was never registered
            RunError: see run_image
        """
        image_id = self.registry.lookup(function_id)
        return await self.run_image(image_id)
