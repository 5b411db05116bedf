"""Ignore rules applied to project-relative file paths."""

from fnmatch import fnmatchcase
from pathlib import PurePosixPath
from typing import List

from source_tracking.config_loader import Config
from source_tracking.paths import to_posix


class IgnoreRules:
    """Decides whether a project file is excluded from tracking."""

    def __init__(
        self,
        ignore_extensions: List[str] | None = None,
        ignore_filenames_prefix: List[str] | None = None,
        ignore_filenames_exact: List[str] | None = None,
        ignore_directories: List[str] | None = None,
        ignore_patterns: List[str] | None = None,
    ):
        """Initialize ignore rules.

        Args:
            ignore_extensions: Extensions to ignore (e.g., ['.tmp', '.bak'])
            ignore_filenames_prefix: Filename prefixes to ignore
            ignore_filenames_exact: Exact filenames to ignore
            ignore_directories: Directory names to ignore anywhere in the path
            ignore_patterns: Glob patterns matched against the whole relative path
        """
        self.ignore_extensions = set(f for f in (ignore_extensions or []) if f)
        self.ignore_filenames_prefix = set(f for f in (ignore_filenames_prefix or []) if f)
        self.ignore_filenames_exact = set(f for f in (ignore_filenames_exact or []) if f)
        self.ignore_directories = set(d.lower() for d in (ignore_directories or []) if d)
        self.ignore_patterns = [p for p in (ignore_patterns or []) if p]

    @classmethod
    def from_config(cls, config: Config) -> "IgnoreRules":
        """Build ignore rules from a project config."""
        return cls(
            ignore_extensions=config.ignore_extensions,
            ignore_filenames_prefix=config.ignore_filenames_prefix,
            ignore_filenames_exact=config.ignore_filenames_exact,
            ignore_directories=config.ignore_directories,
            ignore_patterns=config.ignore_patterns,
        )

    def _should_ignore_filename(self, filename: str) -> bool:
        """Check if a bare filename should be ignored."""
        if filename in self.ignore_filenames_exact:
            return True

        for prefix in self.ignore_filenames_prefix:
            if filename.startswith(prefix):
                return True

        for ext in self.ignore_extensions:
            if filename.endswith(ext):
                return True

        return False

    def denies(self, path: str) -> bool:
        """Check if a project-relative path is ignored."""
        posix_path = to_posix(path)
        parts = PurePosixPath(posix_path).parts
        if not parts:
            return False

        for part in parts[:-1]:
            if part.lower() in self.ignore_directories:
                return True

        if self._should_ignore_filename(parts[-1]):
            return True

        return any(fnmatchcase(posix_path, pattern) for pattern in self.ignore_patterns)

    def accepts(self, path: str) -> bool:
        """Check if a project-relative path is tracked."""
        return not self.denies(path)
