"""
Image Builder

Renders the language's build template into a Dockerfile inside the function
workspace, asks the container engine to build it, and recovers the
content-addressed id of the resulting image.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from jinja2 import Environment, StrictUndefined, TemplateError as JinjaTemplateError

from ..core.exceptions import (
    BuildError,
    BuildTimeoutError,
    ContainerEngineError,
    EngineTimeoutError,
    ExtractionError,
    TemplateError,
)
from ..models.function import BuildTemplate
from ..models.result import BuildResult
from .container_engine import ContainerEngine
from .template_store import TemplateStore

logger = logging.getLogger("gateway.image_builder")

BUILD_DESCRIPTOR_FILENAME = "Dockerfile"

# BuildKit prints "#N writing image sha256:<digest> done" for the final image.
IMAGE_WRITE_MARKER = "writing image sha256"
CONTENT_ADDRESS_PREFIX = "sha256:"


def extract_image_id(output: str) -> str:
    """
    Extract the image id from `docker build` output.

    Raises:
        ExtractionError: no image-write line with a sha256 token exists
    """
    for line in output.splitlines():
        if IMAGE_WRITE_MARKER not in line:
            continue
        for token in line.split():
            if token.startswith(CONTENT_ADDRESS_PREFIX) and len(token) > len(CONTENT_ADDRESS_PREFIX):
                return token

    raise ExtractionError("Image ID not found in build output")


class ImageBuilder:
    def __init__(
        self,
        engine: ContainerEngine,
        templates: TemplateStore,
        image_repository: str = "nabla-function",
        timeout: Optional[float] = None,
        parse_image_id: Callable[[str], str] = extract_image_id,
    ):
        """
        Args:
            engine: container engine adapter
            templates: build template store
            image_repository: repository part of the image tag
            timeout: build deadline in seconds
            parse_image_id: recovers the image id from build output when the
                engine does not report it
        """
        self.engine = engine
        self.templates = templates
        self.image_repository = image_repository
        self.timeout = timeout
        self.parse_image_id = parse_image_id
        self._jinja = Environment(undefined=StrictUndefined, keep_trailing_newline=True)

    def image_tag(self, language: str) -> str:
        return f"{self.image_repository}:{language}"

    def render_build_descriptor(self, template: BuildTemplate, handler_file: str) -> str:
        """Render the Dockerfile text for a handler file."""
        if not template.parameterized:
            return template.dockerfile
        try:
            return self._jinja.from_string(template.dockerfile).render(handler=handler_file)
        except JinjaTemplateError as e:
            raise TemplateError(template.language, f"render failed: {e}") from e

    async def build(self, directory: Path, language: str, handler_file: str) -> BuildResult:
        """
        Build the function image for the workspace at directory.

        Returns:
            BuildResult with a non-empty content-addressed image id

        Raises:
            TemplateError: template missing, malformed, or not renderable
            BuildError: descriptor not writable, engine unavailable, or build failed
            BuildTimeoutError: build exceeded its deadline
            ExtractionError: build succeeded but no image id could be recovered
        """
        template = self.templates.get(language)
        descriptor = self.render_build_descriptor(template, handler_file)
        tag = self.image_tag(language)

        try:
            (directory / BUILD_DESCRIPTOR_FILENAME).write_text(descriptor, encoding="utf-8")
        except OSError as e:
            raise BuildError(tag, f"unable to write {BUILD_DESCRIPTOR_FILENAME}: {e}") from e

        logger.info(
            f"Building image {tag}",
            extra={"tag": tag, "language": language, "handler": handler_file},
        )
        try:
            result = await self.engine.build(directory, tag, self.timeout)
        except EngineTimeoutError as e:
            raise BuildTimeoutError(tag, str(e), e.output) from e
        except ContainerEngineError as e:
            raise BuildError(tag, str(e)) from e

        if not result.success:
            raise BuildError(tag, f"engine exited with status {result.exit_code}", result.output)

        image_id = result.image_id or self.parse_image_id(result.output)
        logger.info(f"Built image {image_id}", extra={"tag": tag, "image_id": image_id})
        return BuildResult(image_id=image_id, tag=tag, output=result.output)
