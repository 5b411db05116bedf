"""Path helpers for project-relative posix paths."""

import os
from pathlib import Path, PurePosixPath


def to_posix(path: str) -> str:
    """Normalize separators to forward slashes."""
    return str(path).replace("\\", "/")


def ensure_relative(path: str, project_path: str) -> str:
    """Make a path relative to the project root.

    Paths already relative are normalized and returned as-is.
    """
    candidate = Path(path)
    if candidate.is_absolute():
        try:
            candidate = candidate.relative_to(Path(project_path))
        except ValueError:
            candidate = Path(os.path.relpath(candidate, project_path))
    normalized = os.path.normpath(str(candidate))
    return to_posix(normalized)


def path_is_in_folder(path: str, folder: str) -> bool:
    """Check whether a relative path is the folder or lives below it."""
    file_parts = PurePosixPath(to_posix(path)).parts
    folder_parts = PurePosixPath(to_posix(folder).rstrip("/")).parts
    if not folder_parts:
        return True
    return file_parts[: len(folder_parts)] == folder_parts
