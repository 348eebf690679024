"""
Archive Extractor.

Unpacks an uploaded function archive (zip) into a per-request workspace.
Every entry is validated before anything is written, so an archive with a
single unsafe entry leaves the destination untouched.
"""

import io
import logging
import os
import shutil
import stat
import zipfile
import zlib
from pathlib import Path
from typing import List, Optional, Tuple

from .exceptions import ArchiveError, ArchiveTooLargeError, ArchiveWriteError
from .security import is_unsafe_member_name, safe_join

logger = logging.getLogger("gateway.archive")

# ZipInfo.create_system value for archives made on Unix.
_UNIX_SYSTEM = 3


def _member_mode(info: zipfile.ZipInfo) -> int:
    """Permission bits recorded for a member, or 0 when the archive has none."""
    if info.create_system != _UNIX_SYSTEM:
        return 0
    return stat.S_IMODE(info.external_attr >> 16)


def _plan_extraction(
    members: List[zipfile.ZipInfo],
    destination: Path,
    max_total_bytes: Optional[int],
    max_entries: Optional[int],
) -> List[Tuple[zipfile.ZipInfo, Path]]:
    if max_entries is not None and len(members) > max_entries:
        raise ArchiveTooLargeError(f"Archive has {len(members)} entries (limit {max_entries})")

    total = sum(info.file_size for info in members)
    if max_total_bytes is not None and total > max_total_bytes:
        raise ArchiveTooLargeError(
            f"Archive expands to {total} bytes (limit {max_total_bytes})"
        )

    root = destination.resolve()
    plan = []
    for info in members:
        if is_unsafe_member_name(info.filename):
            raise ArchiveError(f"Unsafe path in archive: {info.filename!r}")
        try:
            target = safe_join(destination, info.filename)
        except ValueError as e:
            raise ArchiveError(f"Unsafe path in archive: {info.filename!r}") from e
        if target == root and not info.is_dir():
            raise ArchiveError(f"Archive entry {info.filename!r} names the extraction root")
        plan.append((info, target))
    return plan


def extract_archive(
    data: bytes,
    destination: Path,
    max_total_bytes: Optional[int] = None,
    max_entries: Optional[int] = None,
) -> int:
    """
    Extract a zip archive into destination.

    Directory structure and Unix permission bits recorded in the archive are
    preserved. Directories always keep owner rwx so the workspace can be
    populated and removed again.

    Args:
        data: raw archive bytes
        destination: extraction root (created if missing)
        max_total_bytes: cap on the declared uncompressed size
        max_entries: cap on the number of entries

    Returns:
        Number of files written

    Raises:
        ArchiveError: archive cannot be opened, is corrupt, or an entry escapes destination
        ArchiveTooLargeError: a size or entry-count limit is exceeded
        ArchiveWriteError: an entry cannot be written
    """
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, EOFError) as e:
        raise ArchiveError(f"Unable to open archive: {e}") from e

    with zf:
        plan = _plan_extraction(zf.infolist(), destination, max_total_bytes, max_entries)

        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveWriteError(f"Unable to create {destination}: {e}") from e

        files_written = 0
        directory_modes: List[Tuple[Path, int]] = []
        for info, target in plan:
            mode = _member_mode(info)
            try:
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    if mode:
                        directory_modes.append((target, mode))
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                if mode:
                    os.chmod(target, mode)
                files_written += 1
            except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError) as e:
                raise ArchiveError(f"Corrupt archive entry {info.filename!r}: {e}") from e
            except OSError as e:
                raise ArchiveWriteError(f"Unable to write {info.filename!r}: {e}") from e

        # Deepest first, once every child exists.
        for target, mode in reversed(directory_modes):
            try:
                os.chmod(target, mode | stat.S_IRWXU)
            except OSError as e:
                raise ArchiveWriteError(f"Unable to set mode on {target}: {e}") from e

    logger.debug(f"Extracted {files_written} files into {destination}")
    return files_written
