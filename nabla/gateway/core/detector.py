"""
Language Detector.

Finds the handler file of an extracted function and the language it is
written in. One handler file per function is supported.
"""

import logging
from pathlib import Path
from typing import Dict

from ..models.function import DetectedHandler
from .exceptions import DetectionError

logger = logging.getLogger("gateway.detector")

# Handler file extension -> language tag (also the build template name).
HANDLER_LANGUAGES: Dict[str, str] = {
    ".py": "python",
    ".go": "golang",
}


def detect_handler(directory: Path) -> DetectedHandler:
    """
    Detect the handler file among the immediate files of directory.

    Subdirectories and hidden files are ignored. Candidates are considered in
    sorted filename order, so the choice does not depend on the filesystem's
    listing order; when several candidates exist the first one wins and the
    rest are reported in a warning. Names containing control characters are
    never chosen.

    Raises:
        DetectionError: no file with a known handler extension exists
    """
    try:
        names = sorted(
            entry.name
            for entry in directory.iterdir()
            if entry.is_file() and not entry.name.startswith(".")
        )
    except OSError as e:
        raise DetectionError(f"Unable to read {directory}: {e}") from e

    candidates = [name for name in names if Path(name).suffix in HANDLER_LANGUAGES]
    unusable = [name for name in candidates if not name.isprintable()]
    if unusable:
        # Control characters cannot be carried into a build file.
        logger.warning(
            f"Ignoring {len(unusable)} handler candidates with control characters",
            extra={"ignored": unusable},
        )
        candidates = [name for name in candidates if name not in unusable]
    if not candidates:
        raise DetectionError(f"No handler file found among {len(names)} files")

    filename = candidates[0]
    if len(candidates) > 1:
        logger.warning(
            f"Multiple handler candidates, using {filename}",
            extra={"handler": filename, "ignored": candidates[1:]},
        )

    return DetectedHandler(filename=filename, language=HANDLER_LANGUAGES[Path(filename).suffix])
