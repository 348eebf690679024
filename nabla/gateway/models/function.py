"""
Function domain models.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DetectedHandler(BaseModel):
    """Entry-point file of an uploaded function and its language tag."""

    model_config = ConfigDict(frozen=True)

    filename: str
    language: str


class FunctionRecord(BaseModel):
    """
    A loaded function.

    Created once per successful load and never updated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    function_id: str
    image_id: str = Field(min_length=1)
    language: Optional[str] = None
    handler: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BuildTemplate(BaseModel):
    """
    Per-language build descriptor template.

    When parameterized, dockerfile is a Jinja2 template rendered with the
    handler filename; otherwise it is used verbatim.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    language: str
    dockerfile: str = Field(min_length=1)
    parameterized: bool = False
