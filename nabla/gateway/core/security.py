"""
Path safety helpers.

Archive entry names are user-controlled; everything written to a workspace
goes through safe_join first.
"""

from pathlib import Path, PurePosixPath


def is_unsafe_member_name(name: str) -> bool:
    """Return True for archive names that cannot be a relative path inside the root."""
    if not name or not name.strip():
        return True
    if name.startswith(("/", "\\")):
        return True
    if ":" in name:
        # Drive letters and URL-like schemes.
        return True
    parts = PurePosixPath(name.replace("\\", "/")).parts
    return ".." in parts


def safe_join(base_dir: Path, *parts: str) -> Path:
    """
    Join paths and ensure the result stays within base_dir.

    Symlinks are resolved before the check, so a link planted in the tree
    cannot be used to step outside it either.

    Raises:
        ValueError: when the joined path escapes base_dir
    """
    base_dir = base_dir.resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if resolved == base_dir:
        return resolved
    if base_dir not in resolved.parents:
        raise ValueError("Path traversal attempt")
    return resolved
