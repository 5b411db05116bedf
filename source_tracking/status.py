"""Status report: local and remote changes as flat rows."""

import asyncio
from typing import List

from source_tracking.classifier import ChangeClassifier
from source_tracking.conflicts import ConflictDetector
from source_tracking.ignore import IgnoreRules
from source_tracking.logging_setup import get_logger
from source_tracking.models import ChangeFormat, ChangeResult, ChangeState, Origin, StatusOutputRow
from source_tracking.stores import StoreHandles

logger = get_logger("status")


class StatusRowError(Exception):
    """Raised when a local change has no filenames to report."""

    pass


class StatusReporter:
    """Builds StatusOutputRows for local and/or remote changes."""

    def __init__(
        self,
        stores: StoreHandles,
        classifier: ChangeClassifier,
        conflicts: ConflictDetector,
        ignore: IgnoreRules,
    ):
        self.stores = stores
        self.classifier = classifier
        self.conflicts = conflicts
        self.ignore = ignore

    async def get_status(self, local: bool, remote: bool) -> List[StatusOutputRow]:
        """Get status rows.

        When both sides are requested, each row is flagged with whether its
        file is part of a conflict.
        """
        results: List[StatusOutputRow] = []
        if local:
            results.extend(await self._local_status_rows())
        if remote:
            await self.stores.remote(initialize_with_query=True)
            remote_deletes, remote_modifies = await asyncio.gather(
                self.classifier.get_changes(
                    Origin.REMOTE, ChangeState.DELETE, ChangeFormat.CHANGE_RESULT
                ),
                self.classifier.get_changes(
                    Origin.REMOTE,
                    ChangeState.NONDELETE,
                    ChangeFormat.CHANGE_RESULT_WITH_PATHS,
                    include_ignored=True,
                ),
            )
            for item in remote_deletes + remote_modifies:
                results.extend(self._remote_rows(item))
        if local and remote:
            conflict_files = {
                filename
                for conflict in await self.conflicts.get_conflicts()
                for filename in conflict.filenames
            }
            for row in results:
                row.conflict = bool(row.file_path) and row.file_path in conflict_files
        return results

    async def _local_status_rows(self) -> List[StatusOutputRow]:
        await self.stores.local()

        adds, modifies, deletes = await asyncio.gather(
            self.classifier.get_changes(
                Origin.LOCAL, ChangeState.ADD, ChangeFormat.CHANGE_RESULT, include_ignored=True
            ),
            self.classifier.get_changes(
                Origin.LOCAL, ChangeState.MODIFY, ChangeFormat.CHANGE_RESULT, include_ignored=True
            ),
            self.classifier.get_changes(
                Origin.LOCAL, ChangeState.DELETE, ChangeFormat.CHANGE_RESULT, include_ignored=True
            ),
        )

        rows: List[StatusOutputRow] = []
        for items, state, resolve_deleted in (
            (adds, "add", False),
            (modifies, "modify", False),
            (deletes, "delete", True),
        ):
            typed = self.classifier.populate_types_and_names(
                items, resolve_deleted=resolve_deleted, exclude_unresolvable=True
            )
            for item in typed:
                rows.extend(self._local_rows(item, state))
        return rows

    def _local_rows(self, change: ChangeResult, state: str) -> List[StatusOutputRow]:
        logger.debug(f"converting ChangeResult to a row: {change}")
        if not change.filenames:
            raise StatusRowError("no filenames found for local ChangeResult")
        return [
            StatusOutputRow(
                type=change.type or "",
                origin=Origin.LOCAL.value,
                state=state,
                full_name=change.name or "",
                file_path=filename,
                ignored=change.ignored,
            )
            for filename in change.filenames
        ]

    def _remote_rows(self, change: ChangeResult) -> List[StatusOutputRow]:
        logger.debug(f"converting ChangeResult to a row: {change}")
        base = dict(
            type=change.type or "",
            origin=change.origin.value,
            state=change.state,
            full_name=change.name or "",
        )
        if change.filenames:
            return [
                StatusOutputRow(**base, file_path=filename, ignored=self.ignore.denies(filename))
                for filename in change.filenames
            ]
        # without local files there is no path to check against the ignore rules
        return [StatusOutputRow(**base)]


class StatusFormatter:
    """Formats status rows as a text table."""

    COLUMNS = ("STATE", "FULL NAME", "TYPE", "PROJECT PATH")

    STATE_LABELS = {
        ("local", "add"): "Local Add",
        ("local", "modify"): "Local Changed",
        ("local", "delete"): "Local Deleted",
        ("remote", "add"): "Remote Add",
        ("remote", "modify"): "Remote Changed",
        ("remote", "delete"): "Remote Deleted",
    }

    def format_status(self, rows: List[StatusOutputRow]) -> str:
        """Format rows, sorted by state then path, with conflict and ignore markers."""
        if not rows:
            return "No local or remote changes found."

        table = []
        for row in sorted(rows, key=lambda r: (r.origin, r.state, r.file_path or "", r.full_name)):
            label = self.STATE_LABELS.get((row.origin, row.state), f"{row.origin} {row.state}")
            if row.conflict:
                label += " (Conflict)"
            if row.ignored:
                label += " (Ignored)"
            table.append((label, row.full_name, row.type, row.file_path or ""))

        widths = [
            max(len(column), *(len(line[i]) for line in table))
            for i, column in enumerate(self.COLUMNS)
        ]
        lines = ["  ".join(col.ljust(widths[i]) for i, col in enumerate(self.COLUMNS)).rstrip()]
        lines.append("  ".join("-" * width for width in widths))
        for line in table:
            lines.append("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(line)).rstrip())
        return "\n".join(lines)
