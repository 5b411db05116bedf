"""Remote revision store: which org elements changed since they were last synced."""

import asyncio
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from source_tracking.logging_setup import get_logger
from source_tracking.models import ComponentStatus, RemoteChangeElement, RemoteSyncInput

logger = get_logger("remote_store")

REMOTE_DB_NAME = "remote.db"


@dataclass(frozen=True)
class SourceMember:
    """One element as reported by the org, with its current server revision."""

    type: str
    name: str
    revision: int
    is_deleted: bool = False


SourceMemberQuery = Callable[[int], Awaitable[List[SourceMember]]]


class RemoteTrackingStore:
    """SQLite revision cursor for one org.

    Each member row keeps the latest server revision seen and the revision
    last synced locally. A member is changed while the two differ.
    """

    def __init__(
        self,
        org_id: str,
        db_path: str,
        query: SourceMemberQuery,
        poll_timeout: float = 120.0,
        poll_interval: float = 1.0,
    ):
        """Initialize the store.

        Args:
            org_id: Org the cursor belongs to
            db_path: Path to the SQLite database file
            query: Async callable returning members changed after a revision
            poll_timeout: Max seconds to wait for expected revisions
            poll_interval: Seconds between polls
        """
        self.org_id = org_id
        self.db_path = db_path
        self.query = query
        self.poll_timeout = poll_timeout
        self.poll_interval = poll_interval
        self._init_db()

    @classmethod
    async def get_instance(
        cls,
        org_id: str,
        state_dir: str,
        query: SourceMemberQuery,
        poll_timeout: float = 120.0,
        poll_interval: float = 1.0,
    ) -> "RemoteTrackingStore":
        """Create the store for an org under a state directory."""
        db_path = cls.db_path_for(org_id, state_dir)

        def _create() -> "RemoteTrackingStore":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            return cls(org_id, db_path, query, poll_timeout, poll_interval)

        return await asyncio.to_thread(_create)

    @staticmethod
    def db_path_for(org_id: str, state_dir: str) -> str:
        return str(Path(state_dir) / org_id / REMOTE_DB_NAME)

    @staticmethod
    async def delete(org_id: str, state_dir: str) -> str:
        """Delete an org's remote tracking database and return its path."""
        path = Path(RemoteTrackingStore.db_path_for(org_id, state_dir))
        await asyncio.to_thread(lambda: path.unlink(missing_ok=True))
        logger.info(f"Deleted remote tracking at {path}")
        return str(path)

    def _init_db(self) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cursor (
                    org_id TEXT PRIMARY KEY,
                    server_max_revision INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS members (
                    org_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    server_revision INTEGER NOT NULL,
                    last_retrieved_revision INTEGER,
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (org_id, type, name)
                )
                """
            )
            conn.execute(
                "INSERT OR IGNORE INTO cursor (org_id, server_max_revision) VALUES (?, 0)",
                (self.org_id,),
            )
            conn.commit()
            logger.info(f"Initialized remote tracking for {self.org_id} at {self.db_path}")
        finally:
            conn.close()

    def _max_revision(self) -> int:
        conn = sqlite3.connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT server_max_revision FROM cursor WHERE org_id = ?", (self.org_id,)
            ).fetchone()
            return row[0] if row else 0
        finally:
            conn.close()

    def _upsert_members(self, members: Sequence[SourceMember], max_revision: Optional[int] = None) -> None:
        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.executemany(
                """
                INSERT INTO members (org_id, type, name, server_revision, is_deleted)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (org_id, type, name) DO UPDATE SET
                    server_revision = excluded.server_revision,
                    is_deleted = excluded.is_deleted
                """,
                [(self.org_id, m.type, m.name, m.revision, int(m.is_deleted)) for m in members],
            )
            if max_revision is None:
                max_revision = max((m.revision for m in members), default=0)
            conn.execute(
                """
                UPDATE cursor SET server_max_revision = MAX(server_max_revision, ?)
                WHERE org_id = ?
                """,
                (max_revision, self.org_id),
            )
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Error saving remote members: {e}")
            raise
        finally:
            if conn:
                conn.close()

    def _changed_elements(self) -> List[RemoteChangeElement]:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                """
                SELECT type, name, server_revision, last_retrieved_revision, is_deleted
                FROM members
                WHERE org_id = ?
                  AND (last_retrieved_revision IS NULL OR server_revision > last_retrieved_revision)
                ORDER BY type, name
                """,
                (self.org_id,),
            )
            result = []
            for type_name, name, server_revision, last_retrieved, is_deleted in cursor.fetchall():
                deleted = bool(is_deleted)
                result.append(
                    RemoteChangeElement(
                        type=type_name,
                        name=name,
                        deleted=deleted,
                        modified=not deleted and last_retrieved is not None,
                        revision=server_revision,
                    )
                )
            return result
        finally:
            conn.close()

    async def retrieve_updates(self) -> List[RemoteChangeElement]:
        """Query the org for members past the cursor and return all unsynced changes."""
        from_revision = await asyncio.to_thread(self._max_revision)
        members = await self.query(from_revision)
        logger.debug(f"Org returned {len(members)} members after revision {from_revision}")
        if members:
            await asyncio.to_thread(self._upsert_members, members)
        return await asyncio.to_thread(self._changed_elements)

    def _pending_keys(self, expected: Set[Tuple[str, str]], deleted: Set[Tuple[str, str]]) -> Set[Tuple[str, str]]:
        conn = sqlite3.connect(self.db_path)
        try:
            rows = conn.execute(
                """
                SELECT type, name, server_revision, last_retrieved_revision, is_deleted
                FROM members WHERE org_id = ?
                """,
                (self.org_id,),
            ).fetchall()
        finally:
            conn.close()
        confirmed = set()
        for type_name, name, server_revision, last_retrieved, is_deleted in rows:
            key = (type_name, name)
            if key not in expected:
                continue
            if key in deleted:
                if is_deleted:
                    confirmed.add(key)
            elif last_retrieved is None or server_revision > last_retrieved:
                confirmed.add(key)
        return expected - confirmed

    async def poll_for_source_tracking(self, elements: Sequence[RemoteSyncInput]) -> None:
        """Wait until the org reports a new revision for every deployed element.

        Gives up after `poll_timeout` seconds with a warning; elements still
        missing are then left unsynced.
        """
        relevant = [e for e in elements if e.state != ComponentStatus.UNCHANGED]
        expected = {(e.type, e.full_name) for e in relevant}
        deleted = {(e.type, e.full_name) for e in relevant if e.state == ComponentStatus.DELETED}
        if not expected:
            return

        deadline = time.monotonic() + self.poll_timeout
        while True:
            await self.retrieve_updates()
            pending = await asyncio.to_thread(self._pending_keys, expected, deleted)
            if not pending:
                logger.debug(f"All {len(expected)} elements found in remote tracking")
                return
            if time.monotonic() >= deadline:
                logger.warning(
                    f"Polling for source tracking timed out after {self.poll_timeout}s; "
                    f"{len(pending)} elements not found: "
                    + ", ".join(f"{t}:{n}" for t, n in sorted(pending))
                )
                return
            logger.debug(f"Waiting on {len(pending)} elements in remote tracking")
            await asyncio.sleep(self.poll_interval)

    def _mark_synced(self, keys: Sequence[Tuple[str, str]]) -> int:
        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            updated = 0
            for type_name, name in keys:
                cursor = conn.execute(
                    """
                    UPDATE members SET last_retrieved_revision = server_revision
                    WHERE org_id = ? AND type = ? AND name = ?
                    """,
                    (self.org_id, type_name, name),
                )
                if cursor.rowcount == 0:
                    logger.debug(f"{type_name}:{name} is not in remote tracking yet")
                updated += cursor.rowcount
            conn.commit()
            return updated
        except sqlite3.Error as e:
            logger.error(f"Error syncing remote tracking: {e}")
            raise
        finally:
            if conn:
                conn.close()

    async def sync_specified_elements(self, elements: Sequence[RemoteSyncInput]) -> None:
        """Advance the cursor of exactly these elements to their server revision."""
        keys = list(dict.fromkeys((e.type, e.full_name) for e in elements))
        if not keys:
            return
        updated = await asyncio.to_thread(self._mark_synced, keys)
        logger.info(f"Synced {updated} of {len(keys)} elements in remote tracking")

    def _reset_to(self, revision: Optional[int]) -> List[RemoteChangeElement]:
        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            params: Tuple = (self.org_id,)
            condition = ""
            if revision is not None:
                condition = " AND server_revision <= ?"
                params = (self.org_id, revision)
            rows = conn.execute(
                f"SELECT type, name, server_revision, is_deleted FROM members WHERE org_id = ?{condition}",
                params,
            ).fetchall()
            conn.execute(
                f"UPDATE members SET last_retrieved_revision = server_revision WHERE org_id = ?{condition}",
                params,
            )
            conn.commit()
            return [
                RemoteChangeElement(type=t, name=n, deleted=bool(d), revision=r) for t, n, r, d in rows
            ]
        except sqlite3.Error as e:
            logger.error(f"Error resetting remote tracking: {e}")
            raise
        finally:
            if conn:
                conn.close()

    async def reset(self, revision: Optional[int] = None) -> List[RemoteChangeElement]:
        """Mark members as synced, all of them or those at or below a revision.

        Re-queries the org from revision 0 first so members missing locally
        are included.
        """
        members = await self.query(0)
        if members:
            await asyncio.to_thread(self._upsert_members, members, revision)
        reset_members = await asyncio.to_thread(self._reset_to, revision)
        logger.info(f"Reset {len(reset_members)} members in remote tracking")
        return reset_members

    def tracked_revisions(self) -> Dict[Tuple[str, str], int]:
        """Get the last synced revision per element."""
        conn = sqlite3.connect(self.db_path)
        try:
            rows = conn.execute(
                """
                SELECT type, name, last_retrieved_revision FROM members
                WHERE org_id = ? AND last_retrieved_revision IS NOT NULL
                """,
                (self.org_id,),
            ).fetchall()
            return {(t, n): r for t, n, r in rows}
        finally:
            conn.close()
