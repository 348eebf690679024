"""
Function Loader - Service Layer

Standardizes the load flow: archive -> workspace -> handler -> image -> registry.
Every step runs strictly after the previous one; nothing is registered unless
all of them succeed.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

from ..core.archive import extract_archive
from ..core.concurrency import BuildThrottle, run_to_completion
from ..core.detector import detect_handler
from ..core.workspace import function_workspace
from ..models.function import DetectedHandler, FunctionRecord
from .function_registry import FunctionRegistry
from .image_builder import ImageBuilder

logger = logging.getLogger("gateway.loader")

SOURCE_DIRNAME = "src"


class FunctionLoader:
    """
    Orchestrates the function load lifecycle.
    """

    def __init__(
        self,
        builder: ImageBuilder,
        registry: FunctionRegistry,
        throttle: BuildThrottle,
        workspace_root: Optional[str] = None,
        max_extracted_bytes: Optional[int] = None,
        max_entries: Optional[int] = None,
    ):
        self.builder = builder
        self.registry = registry
        self.throttle = throttle
        self.workspace_root = workspace_root
        self.max_extracted_bytes = max_extracted_bytes
        self.max_entries = max_entries

    async def load(self, archive: bytes) -> FunctionRecord:
        """
        Build and register a function from a zip archive.

        Raises:
            ArchiveError, DetectionError, TemplateError, BuildError,
            ExtractionError, ResourceExhaustedError
        """
        async with function_workspace(self.workspace_root) as workspace:
            source_dir = workspace / SOURCE_DIRNAME
            files, handler = await run_to_completion(self._prepare_source, archive, source_dir)
            logger.info(
                f"Detected {handler.language} handler {handler.filename} in {files} files",
                extra={"language": handler.language, "handler": handler.filename},
            )

            async with self.throttle:
                build = await self.builder.build(source_dir, handler.language, handler.filename)

        function_id = self.registry.register(
            build.image_id, language=handler.language, handler=handler.filename
        )
        return self.registry.get(function_id)

    def _prepare_source(self, archive: bytes, source_dir: Path) -> Tuple[int, DetectedHandler]:
        files = extract_archive(archive, source_dir, self.max_extracted_bytes, self.max_entries)
        return files, detect_handler(source_dir)
