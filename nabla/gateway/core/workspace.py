"""
Per-request working directories.
"""

import logging
import shutil
import tempfile
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from .concurrency import run_to_completion

logger = logging.getLogger("gateway.workspace")

WORKSPACE_PREFIX = "nabla-"


def _create_workspace(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.mkdir(mode=0o700)


def _remove_workspace(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove workspace {path}: {e}", extra={"workspace": str(path)})


@asynccontextmanager
async def function_workspace(root: Optional[str] = None) -> AsyncIterator[Path]:
    """
    Create a uniquely named working directory and remove it on exit.

    Removal happens whether the body succeeds, raises or is cancelled.
    Filesystem work runs in the threadpool so a large tree never stalls
    the event loop.

    Args:
        root: parent directory; the system temp directory when empty
    """
    parent = Path(root) if root else Path(tempfile.gettempdir())
    path = parent / f"{WORKSPACE_PREFIX}{uuid.uuid4().hex}"
    try:
        await run_to_completion(_create_workspace, path)
        yield path
    finally:
        await run_to_completion(_remove_workspace, path)
