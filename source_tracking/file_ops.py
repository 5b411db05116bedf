"""File operations for applying remote deletes locally."""

import asyncio
from pathlib import Path

from source_tracking.logging_setup import get_logger

logger = get_logger("file_ops")


class FileOpsError(Exception):
    """Raised when file operation fails."""

    pass


class FileOps:
    """Deletes project files."""

    def __init__(self, project_path: str):
        """Initialize file operations handler.

        Args:
            project_path: Root that relative paths are resolved against
        """
        self.project_path = Path(project_path)

    def delete_file(self, path: str) -> None:
        """Delete one file.

        Args:
            path: File to delete, absolute or relative to the project

        Raises:
            FileOpsError: If delete fails
        """
        try:
            file_path = self.project_path / path

            if not file_path.exists():
                logger.warning(f"File does not exist: {path}")
                return

            file_path.unlink()
            logger.info(f"Deleted file: {path}")
        except OSError as e:
            logger.error(f"Failed to delete file {path}: {e}")
            raise FileOpsError(f"Delete failed: {e}") from e

    async def delete_files(self, paths: list) -> None:
        """Delete files concurrently.

        A failure propagates once every delete has finished; files deleted
        before it stay deleted.
        """
        results = await asyncio.gather(
            *(asyncio.to_thread(self.delete_file, path) for path in paths),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
