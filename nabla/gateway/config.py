"""
Gateway configuration definition.

Loads configuration from environment variables and provides a Pydantic model.
Uses pydantic-settings for type safety and defaults.
"""

import sys
from pathlib import Path
from typing import Literal

from pydantic import Field

from nabla.common.core.config import BaseAppConfig

BUNDLED_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


class GatewayConfig(BaseAppConfig):
    """
    Configuration management for the Gateway service.
    """

    # Server settings
    UVICORN_BIND_ADDR: str = Field(default="0.0.0.0:8080", description="Listen address")

    # Path settings
    TEMPLATES_DIR: str = Field(
        default="", description="Build template directory (bundled templates when empty)"
    )
    WORKSPACE_ROOT: str = Field(
        default="", description="Parent directory for per-request workspaces (system temp when empty)"
    )

    # Upload limits
    MAX_UPLOAD_BYTES: int = Field(
        default=10 * 1024 * 1024, gt=0, description="Max size of an uploaded archive"
    )
    MAX_EXTRACTED_BYTES: int = Field(
        default=100 * 1024 * 1024, gt=0, description="Max total uncompressed archive size"
    )
    MAX_ARCHIVE_ENTRIES: int = Field(default=10_000, gt=0, description="Max entries per archive")

    # Container engine
    CONTAINER_ENGINE: Literal["cli", "sdk"] = Field(
        default="cli", description="Engine adapter: docker CLI or docker SDK"
    )
    DOCKER_BINARY: str = Field(default="docker", description="Docker CLI executable")
    IMAGE_REPOSITORY: str = Field(
        default="nabla-function", description="Repository part of built image tags"
    )
    BUILD_TIMEOUT_SECONDS: float = Field(default=600.0, gt=0, description="Image build deadline")
    RUN_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0, description="Function run deadline")

    # Flow control
    MAX_CONCURRENT_BUILDS: int = Field(default=4, gt=0, description="Max parallel image builds")
    BUILD_QUEUE_TIMEOUT_SECONDS: float = Field(
        default=30.0, gt=0, description="Max wait for a free build slot"
    )
    DISCONNECT_POLL_INTERVAL: float = Field(
        default=0.5, gt=0, description="How often to check for client disconnects (seconds)"
    )

    # Logging
    VICTORIALOGS_URL: str = Field(default="", description="VictoriaLogs ingestion URL")

    # FastAPI settings
    root_path: str = Field(default="", description="API root path (for proxy)")

    @property
    def templates_path(self) -> Path:
        return Path(self.TEMPLATES_DIR) if self.TEMPLATES_DIR else BUNDLED_TEMPLATES_DIR


# Load config as a singleton.
# pydantic-settings reads environment variables during instantiation.
try:
    config = GatewayConfig()
except Exception as e:
    sys.stderr.write(f"Failed to load configuration: {e}\n")
    raise
