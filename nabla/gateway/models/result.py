"""
Container engine and pipeline result models.

CommandResult is what an engine adapter returns; BuildResult is the narrow
contract the rest of the gateway depends on, whatever way the image id was
obtained.
"""

from typing import Optional

from pydantic import BaseModel


class CommandResult(BaseModel):
    """Combined output and exit status of one engine operation."""

    output: str
    exit_code: int
    # Set by engines that report the built image id directly.
    image_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class BuildResult(BaseModel):
    image_id: str
    tag: str
    output: str = ""


class InvocationResult(BaseModel):
    image_id: str
    output: str
    exit_code: int = 0
