"""Change classification: local files and remote elements as ChangeResults."""

from typing import Callable, Dict, List

from source_tracking.component_set import SourceComponent
from source_tracking.ignore import IgnoreRules
from source_tracking.logging_setup import get_logger
from source_tracking.models import (
    ChangeFormat,
    ChangeResult,
    ChangeState,
    Origin,
    Project,
    RemoteChangeElement,
)
from source_tracking.registry import FilesystemTree, MetadataRegistry, ResolutionError, VirtualTree
from source_tracking.stores import StoreHandles

logger = get_logger("classifier")


class ChangeStateError(Exception):
    """Raised for a change state the stores cannot answer."""

    pass


class UnsupportedRequestError(Exception):
    """Raised for an origin/format combination that is not implemented."""

    pass


REMOTE_FILTER_BY_STATE: Dict[ChangeState, Callable[[RemoteChangeElement], bool]] = {
    ChangeState.ADD: lambda change: not change.deleted and not change.modified,
    ChangeState.MODIFY: lambda change: change.modified,
    ChangeState.DELETE: lambda change: change.deleted,
    ChangeState.NONDELETE: lambda change: not change.deleted,
}


class ChangeClassifier:
    """Answers "what changed" for one origin and state, in a chosen shape."""

    def __init__(
        self,
        stores: StoreHandles,
        registry: MetadataRegistry,
        project: Project,
        ignore: IgnoreRules,
    ):
        self.stores = stores
        self.registry = registry
        self.project = project
        self.ignore = ignore
        self.filesystem = FilesystemTree(project.path)

    async def get_changes(
        self,
        origin: Origin,
        state: ChangeState,
        fmt: ChangeFormat,
        include_ignored: bool = False,
    ) -> list:
        """Get changes for an origin and state.

        Args:
            origin: Local or remote
            state: add, modify, delete or nondelete
            fmt: Output shape; every shape derives from the same filtered changes
            include_ignored: Keep ignored files, flagged via ChangeResult.ignored

        Returns:
            List of filenames, ChangeResults or SourceComponents, depending on fmt

        Raises:
            ChangeStateError: If the state is not recognized
            UnsupportedRequestError: If the origin/format combination is not implemented
        """
        if not isinstance(state, ChangeState):
            raise ChangeStateError(f"unable to get changes for state {state!r}")

        match origin:
            case Origin.LOCAL:
                filenames = await self.local_filenames(state, include_ignored)
                return self._shape_local(filenames, state, fmt)
            case Origin.REMOTE:
                elements = await self.remote_elements(state)
                return self._shape_remote(elements, fmt, include_ignored)
        raise UnsupportedRequestError(f"unsupported options: origin={origin!r} format={fmt!r}")

    async def local_filenames(self, state: ChangeState, include_ignored: bool = False) -> List[str]:
        """Get changed local filenames for a state, ignore-filtered unless asked otherwise."""
        store = await self.stores.local()
        match state:
            case ChangeState.MODIFY:
                filenames = await store.get_modify_filenames()
            case ChangeState.NONDELETE:
                filenames = await store.get_non_delete_filenames()
            case ChangeState.DELETE:
                filenames = await store.get_delete_filenames()
            case ChangeState.ADD:
                filenames = await store.get_add_filenames()
            case _:
                raise ChangeStateError(f"unable to get local changes for state {state!r}")
        if include_ignored:
            return list(filenames)
        return [f for f in filenames if self.ignore.accepts(f)]

    async def remote_elements(self, state: ChangeState) -> List[RemoteChangeElement]:
        """Get remote elements for a state, skipping types the registry doesn't know."""
        store = await self.stores.remote()
        remote_changes = await store.retrieve_updates()
        logger.debug(f"remoteChanges: {remote_changes}")

        result = []
        for change in remote_changes:
            if not REMOTE_FILTER_BY_STATE[state](change):
                continue
            if not self.registry.supports_type(change.type):
                logger.warning(f"Unsupported remote type {change.type} for {change.name}; skipping")
                continue
            result.append(change)
        return result

    def _shape_local(self, filenames: List[str], state: ChangeState, fmt: ChangeFormat) -> list:
        match fmt:
            case ChangeFormat.FILENAMES:
                return filenames
            case ChangeFormat.CHANGE_RESULT | ChangeFormat.CHANGE_RESULT_WITH_PATHS:
                return [
                    ChangeResult(
                        origin=Origin.LOCAL,
                        filenames=[filename],
                        ignored=self.ignore.denies(filename),
                    )
                    for filename in filenames
                ]
            case ChangeFormat.COMPONENTS:
                return self.resolve_filenames(filenames, deleted=state == ChangeState.DELETE)
        raise UnsupportedRequestError(f"unsupported options: origin=local format={fmt!r}")

    def _shape_remote(
        self, elements: List[RemoteChangeElement], fmt: ChangeFormat, include_ignored: bool
    ) -> list:
        match fmt:
            case ChangeFormat.CHANGE_RESULT:
                return [element.to_change_result() for element in elements]
            case ChangeFormat.CHANGE_RESULT_WITH_PATHS:
                return self.populate_file_paths(
                    [element.to_change_result() for element in elements], include_ignored
                )
            case ChangeFormat.FILENAMES:
                return [
                    filename
                    for component in self._local_components_for(elements)
                    for filename in self.registry.component_files(component, self.filesystem)
                    if include_ignored or self.ignore.accepts(filename)
                ]
            case ChangeFormat.COMPONENTS:
                return self._local_components_for(elements)
        raise UnsupportedRequestError(f"unsupported options: origin=remote format={fmt!r}")

    def resolve_filenames(self, filenames: List[str], deleted: bool = False) -> List[SourceComponent]:
        """Resolve filenames to components, deduplicated by identity.

        Deleted files resolve against a path-only tree; everything else against
        the filesystem. Unresolvable files are logged and skipped.
        """
        tree = VirtualTree.from_file_paths(filenames) if deleted else self.filesystem
        found: Dict[tuple, SourceComponent] = {}
        for filename in filenames:
            try:
                components = self.registry.resolve(filename, tree)
            except ResolutionError as e:
                logger.warning(f"unable to resolve {filename}: {e}")
                continue
            for component in components:
                found.setdefault(component.key, component)
        return list(found.values())

    def _local_components_for(self, elements: List[RemoteChangeElement]) -> List[SourceComponent]:
        """Find the local source components backing remote elements."""
        return self.registry.components_in(
            self.project.package_names(),
            self.filesystem,
            [(element.type, element.name) for element in elements],
        )

    def populate_file_paths(
        self, results: List[ChangeResult], include_ignored: bool = False
    ) -> List[ChangeResult]:
        """Fill in local file paths for remote ChangeResults.

        Results whose component has no local files keep an empty filename list.
        """
        if not results:
            return results
        components = self.registry.components_in(
            self.project.package_names(),
            self.filesystem,
            [(r.type, r.name) for r in results if r.type and r.name],
        )
        by_key = {component.key: component for component in components}
        populated = []
        for result in results:
            component = by_key.get((result.type, result.name))
            filenames: List[str] = []
            if component is not None:
                filenames = [
                    filename
                    for filename in self.registry.component_files(component, self.filesystem)
                    if include_ignored or self.ignore.accepts(filename)
                ]
            populated.append(
                ChangeResult(
                    origin=result.origin,
                    type=result.type,
                    name=result.name,
                    filenames=filenames,
                    deleted=result.deleted,
                    modified=result.modified,
                )
            )
        return populated

    def populate_types_and_names(
        self,
        results: List[ChangeResult],
        resolve_deleted: bool = False,
        exclude_unresolvable: bool = False,
    ) -> List[ChangeResult]:
        """Fill in type and name of local ChangeResults from their filenames.

        Args:
            results: Local ChangeResults with filenames
            resolve_deleted: Resolve against a path-only tree of the filenames
            exclude_unresolvable: Drop results that resolve to nothing

        Returns:
            ChangeResults with type, name and the ignored flag set
        """
        if not results:
            return results
        filenames = [f for result in results for f in result.filenames]
        tree = VirtualTree.from_file_paths(filenames) if resolve_deleted else self.filesystem

        populated = []
        for result in results:
            component = None
            for filename in result.filenames:
                try:
                    resolved = self.registry.resolve(filename, tree)
                except ResolutionError as e:
                    logger.debug(f"unable to resolve {filename}: {e}")
                    continue
                if resolved:
                    component = resolved[0]
                    break
            if component is None and exclude_unresolvable:
                continue
            populated.append(
                ChangeResult(
                    origin=result.origin,
                    type=component.type if component else result.type,
                    name=component.full_name if component else result.name,
                    filenames=list(result.filenames),
                    ignored=any(self.ignore.denies(f) for f in result.filenames),
                    deleted=result.deleted,
                    modified=result.modified,
                )
            )
        return populated
