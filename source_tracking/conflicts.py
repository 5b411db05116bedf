"""Conflict detection between local and remote changes."""

import asyncio
from typing import Dict, List, Tuple

from source_tracking.classifier import ChangeClassifier
from source_tracking.component_set import ComponentSet
from source_tracking.ignore import IgnoreRules
from source_tracking.logging_setup import get_logger
from source_tracking.models import ChangeFormat, ChangeResult, ChangeState, Conflict, Origin
from source_tracking.stores import StoreHandles

logger = get_logger("conflicts")


class ConflictError(Exception):
    """Raised when components changed on both sides since the last sync."""

    def __init__(self, conflicts: List[Conflict]):
        self.conflicts = conflicts
        lines = [
            f"  {conflict.type} {conflict.name}: {', '.join(sorted(conflict.filenames))}"
            for conflict in conflicts
        ]
        super().__init__(
            f"{len(conflicts)} conflict(s) detected between local and remote changes:\n"
            + "\n".join(lines)
        )


class ConflictDetector:
    """Compares local and remote non-delete changes."""

    def __init__(self, stores: StoreHandles, classifier: ChangeClassifier, ignore: IgnoreRules):
        self.stores = stores
        self.classifier = classifier
        self.ignore = ignore

    async def get_conflicts(self) -> List[Conflict]:
        """Get components with non-delete changes on both sides.

        Local changes are read first; the remote store is only queried when
        there are local changes to compare against.
        """
        await asyncio.gather(self.stores.remote(), self.stores.local())

        local_changes = await self.classifier.get_changes(
            Origin.LOCAL, ChangeState.NONDELETE, ChangeFormat.CHANGE_RESULT
        )
        if not local_changes:
            return []

        # remote adds have no filename yet, so ask for them to be resolved
        remote_changes = await self.classifier.get_changes(
            Origin.REMOTE, ChangeState.NONDELETE, ChangeFormat.CHANGE_RESULT_WITH_PATHS
        )
        if not remote_changes:
            return []

        local_typed = self.classifier.populate_types_and_names(
            local_changes, exclude_unresolvable=True
        )
        conflicts = dedupe_conflicts(local_typed, remote_changes, self.ignore)
        logger.info(f"Detected {len(conflicts)} conflicts")
        return conflicts


def dedupe_conflicts(
    local_changes: List[ChangeResult],
    remote_changes: List[ChangeResult],
    ignore: IgnoreRules,
) -> List[Conflict]:
    """Intersect typed local changes with remote changes.

    A local change conflicts when its identity matches a remote change, or
    when one of its files is among a remote change's resolved files. A
    conflict holds the local files plus every file of the remote component,
    merged per identity with ignored files dropped, sorted by (type, name).
    """
    by_key: Dict[Tuple[str, str], ChangeResult] = {
        (change.type, change.name): change
        for change in remote_changes
        if change.type and change.name
    }
    by_filename: Dict[str, ChangeResult] = {
        filename: change for change in remote_changes for filename in change.filenames
    }

    merged: Dict[Tuple[str, str], Conflict] = {}
    for change in local_changes:
        matches = []
        if (change.type, change.name) in by_key:
            matches.append(by_key[(change.type, change.name)])
        matches.extend(by_filename[f] for f in change.filenames if f in by_filename)

        for remote in matches:
            key = (remote.type, remote.name)
            conflict = merged.setdefault(key, Conflict(type=remote.type, name=remote.name))
            conflict.filenames.update(
                f for f in (*change.filenames, *remote.filenames) if ignore.accepts(f)
            )

    return [merged[key] for key in sorted(merged)]


def find_conflicts_in_component_set(
    component_set: ComponentSet, conflicts: List[Conflict]
) -> List[Conflict]:
    """Narrow conflicts to those whose component is in the set."""
    return [c for c in conflicts if component_set.has(c.type, c.name)]


def throw_if_conflicts(conflicts: List[Conflict]) -> None:
    """Raise ConflictError if there are any conflicts."""
    if conflicts:
        raise ConflictError(conflicts)
