"""Local baseline store: which project files changed since the last commit."""

import asyncio
import hashlib
import sqlite3
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from source_tracking.logging_setup import get_logger
from source_tracking.paths import path_is_in_folder, to_posix

logger = get_logger("local_store")

ADDED = "added"
MODIFIED = "modified"
DELETED = "deleted"

LOCAL_DB_NAME = "local.db"


def _hash_file(path: Path) -> str:
    digest = hashlib.sha1()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ShadowStore:
    """SQLite baseline manifest of the project's package directories.

    The baseline maps each relative file path to the hash it had when it was
    last committed. Status is the difference between that manifest and the
    files currently on disk.
    """

    def __init__(self, project_path: str, package_dirs: Iterable[str], db_path: str):
        """Initialize the store.

        Args:
            project_path: Project root
            package_dirs: Package directories, relative to the project root
            db_path: Path to the SQLite database file
        """
        self.project_path = Path(project_path)
        self.package_dirs = [to_posix(d).rstrip("/") for d in package_dirs]
        self.db_path = db_path
        self._status: Optional[Dict[str, str]] = None
        self._init_db()

    @classmethod
    async def get_instance(
        cls, project_path: str, package_dirs: Iterable[str], state_dir: str, org_id: str
    ) -> "ShadowStore":
        """Create the store for an org, under the project's state directory."""
        db_dir = Path(project_path) / state_dir / org_id
        db_path = str(db_dir / LOCAL_DB_NAME)

        def _create() -> "ShadowStore":
            db_dir.mkdir(parents=True, exist_ok=True)
            return cls(project_path, package_dirs, db_path)

        return await asyncio.to_thread(_create)

    def _init_db(self) -> None:
        """Initialize database schema and run migrations."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS files (
                    path TEXT PRIMARY KEY,
                    sha1 TEXT NOT NULL,
                    size INTEGER
                )
                """
            )
            conn.commit()

            self._migrate_schema(conn)

            logger.info(f"Initialized local tracking at {self.db_path}")
        finally:
            conn.close()

    def _get_schema_version(self, conn: sqlite3.Connection) -> int:
        try:
            cursor = conn.execute("SELECT MAX(version) FROM schema_version")
            result = cursor.fetchone()
            if result and result[0]:
                return result[0]
            return 1
        except sqlite3.Error:
            return 1

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute("DELETE FROM schema_version")
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
        conn.commit()

    def _migrate_schema(self, conn: sqlite3.Connection) -> None:
        """Run all pending schema migrations."""
        current_version = self._get_schema_version(conn)

        if current_version < 2:
            self._migrate_to_v2(conn)

    def _migrate_to_v2(self, conn: sqlite3.Connection) -> None:
        """Migrate schema to v2: add the commits log."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS commits (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                message TEXT,
                deployed_count INTEGER,
                deleted_count INTEGER,
                committed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        self._set_schema_version(conn, 2)
        logger.info("Migrated local tracking schema to v2")

    def _load_baseline(self) -> Dict[str, str]:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute("SELECT path, sha1 FROM files")
            return {row[0]: row[1] for row in cursor.fetchall()}
        finally:
            conn.close()

    def _state_dir(self) -> Optional[str]:
        """Get the database directory relative to the project, if inside it."""
        try:
            return to_posix(str(Path(self.db_path).parent.relative_to(self.project_path)))
        except ValueError:
            return None

    def _scan(self) -> Dict[str, Tuple[str, int]]:
        """Hash every file in the package directories."""
        state_dir = self._state_dir()
        result: Dict[str, Tuple[str, int]] = {}
        for package_dir in self.package_dirs:
            root = self.project_path / package_dir
            if not root.exists():
                logger.warning(f"Package directory does not exist: {root}")
                continue
            for file_path in root.rglob("*"):
                if not file_path.is_file():
                    continue
                relative = to_posix(str(file_path.relative_to(self.project_path)))
                if state_dir and path_is_in_folder(relative, state_dir):
                    continue
                try:
                    result[relative] = (_hash_file(file_path), file_path.stat().st_size)
                except OSError as e:
                    logger.warning(f"Could not read file {relative}: {e}")
        return result

    def _compute_status(self) -> Dict[str, str]:
        baseline = self._load_baseline()
        current = self._scan()
        status: Dict[str, str] = {}
        for path, (sha1, _) in current.items():
            if path not in baseline:
                status[path] = ADDED
            elif baseline[path] != sha1:
                status[path] = MODIFIED
        for path in baseline:
            if path not in current:
                status[path] = DELETED
        logger.debug(f"Local status: {len(status)} changed files")
        return status

    async def get_status(self) -> List[Tuple[str, str]]:
        """Get (path, added|modified|deleted) pairs, computed once until the next commit."""
        if self._status is None:
            self._status = await asyncio.to_thread(self._compute_status)
        return sorted(self._status.items())

    async def _filenames(self, *states: str) -> List[str]:
        return [path for path, state in await self.get_status() if state in states]

    async def get_non_delete_filenames(self) -> List[str]:
        return await self._filenames(ADDED, MODIFIED)

    async def get_delete_filenames(self) -> List[str]:
        return await self._filenames(DELETED)

    async def get_add_filenames(self) -> List[str]:
        return await self._filenames(ADDED)

    async def get_modify_filenames(self) -> List[str]:
        return await self._filenames(MODIFIED)

    def _commit(
        self, deployed_files: Sequence[str], deleted_files: Sequence[str], message: Optional[str]
    ) -> None:
        rows = []
        removed = list(deleted_files)
        for relative in deployed_files:
            file_path = self.project_path / relative
            if file_path.is_file():
                rows.append((relative, _hash_file(file_path), file_path.stat().st_size))
            else:
                removed.append(relative)

        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.executemany(
                "INSERT OR REPLACE INTO files (path, sha1, size) VALUES (?, ?, ?)", rows
            )
            conn.executemany("DELETE FROM files WHERE path = ?", [(p,) for p in removed])
            conn.execute(
                "INSERT INTO commits (message, deployed_count, deleted_count) VALUES (?, ?, ?)",
                (message or "source tracking commit", len(rows), len(removed)),
            )
            conn.commit()
            logger.info(f"Committed {len(rows)} files and {len(removed)} deletions to local tracking")
        except sqlite3.Error as e:
            logger.error(f"Error committing local tracking: {e}")
            raise
        finally:
            if conn:
                conn.close()

    async def commit_changes(
        self,
        deployed_files: Sequence[str] = (),
        deleted_files: Sequence[str] = (),
        message: Optional[str] = None,
    ) -> None:
        """Record files as the new baseline and forget deleted ones."""
        if not deployed_files and not deleted_files:
            logger.debug("Nothing to commit to local tracking")
            return
        await asyncio.to_thread(
            self._commit, [to_posix(f) for f in deployed_files], [to_posix(f) for f in deleted_files], message
        )
        self._status = None

    async def delete(self) -> str:
        """Delete the baseline database and return its path."""
        path = Path(self.db_path)
        await asyncio.to_thread(lambda: path.unlink(missing_ok=True))
        self._status = None
        logger.info(f"Deleted local tracking at {self.db_path}")
        return str(path)
