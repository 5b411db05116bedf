"""Component set assembly for deploy and retrieve."""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from source_tracking.classifier import ChangeClassifier
from source_tracking.component_set import ComponentSet, SourceComponent
from source_tracking.logging_setup import get_logger
from source_tracking.models import ChangeFormat, ChangeState, Origin, Project
from source_tracking.paths import path_is_in_folder
from source_tracking.registry import MetadataRegistry, ResolutionError, VirtualTree

logger = get_logger("assembler")


@dataclass
class FileGrouping:
    """Changed files of one package directory (or of the whole project)."""

    path: str
    non_deletes: List[str] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)


class ComponentSetAssembler:
    """Groups classified changes into component sets."""

    def __init__(
        self,
        classifier: ChangeClassifier,
        registry: MetadataRegistry,
        project: Project,
        push_sequentially: bool = False,
        source_api_version: Optional[str] = None,
    ):
        """Initialize the assembler.

        Args:
            classifier: Source of local and remote changes
            registry: Resolves files to components
            project: Project with its package directories
            push_sequentially: Project default for one set per package directory
            source_api_version: Stamped on every component set built
        """
        self.classifier = classifier
        self.registry = registry
        self.project = project
        self.push_sequentially = push_sequentially
        self.source_api_version = source_api_version

    def _groupings(
        self, non_deletes: List[str], deletes: List[str], by_package_dir: Optional[bool]
    ) -> List[FileGrouping]:
        # an explicit argument overrides the project default
        split = self.push_sequentially if by_package_dir is None else by_package_dir
        if split:
            groupings = [
                FileGrouping(
                    path=package_dir.name,
                    non_deletes=[f for f in non_deletes if path_is_in_folder(f, package_dir.name)],
                    deletes=[f for f in deletes if path_is_in_folder(f, package_dir.name)],
                )
                for package_dir in self.project.package_directories
            ]
        else:
            groupings = [
                FileGrouping(
                    path=";".join(self.project.package_names()),
                    non_deletes=non_deletes,
                    deletes=deletes,
                )
            ]
        return [g for g in groupings if g.deletes or g.non_deletes]

    async def local_changes_as_component_sets(
        self, by_package_dir: Optional[bool] = None
    ) -> List[ComponentSet]:
        """Build component sets from local changes.

        Args:
            by_package_dir: True for one set per package directory with changes,
                False for a single set, None to follow the project setting

        Returns:
            Non-empty component sets
        """
        all_non_deletes, all_deletes = await asyncio.gather(
            self.classifier.local_filenames(ChangeState.NONDELETE),
            self.classifier.local_filenames(ChangeState.DELETE),
        )

        groupings = self._groupings(all_non_deletes, all_deletes, by_package_dir)
        logger.debug(f"will build array of {len(groupings)} componentSet(s)")

        component_sets = []
        for grouping in groupings:
            logger.debug(
                f"building componentSet for {grouping.path} "
                f"(deletes: {len(grouping.deletes)} nonDeletes: {len(grouping.non_deletes)})"
            )
            component_set = self._build_component_set(grouping)
            if len(component_set) > 0:
                component_sets.append(component_set)
        return component_sets

    def _build_component_set(self, grouping: FileGrouping) -> ComponentSet:
        component_set = ComponentSet(source_api_version=self.source_api_version)
        filesystem = self.classifier.filesystem
        deletes_tree = VirtualTree.from_file_paths(grouping.deletes)

        for filename in grouping.deletes:
            try:
                components = self.registry.resolve(filename, deletes_tree)
            except ResolutionError as e:
                logger.warning(f"unable to resolve deleted file {filename}: {e}")
                continue
            for component in components:
                self._add_deleted(component_set, component)

        for filename in grouping.non_deletes:
            try:
                components = self.registry.resolve(filename, filesystem)
            except ResolutionError as e:
                logger.warning(f"unable to resolve {filename}: {e}")
                continue
            for component in components:
                component_set.add(component)

        return component_set

    def _add_deleted(self, component_set: ComponentSet, component: SourceComponent) -> None:
        """Add a deleted component, redeploying bundles that still have files on disk."""
        filesystem = self.classifier.filesystem
        content = self.registry.component_content_path(component)
        if self.registry.is_bundle(component) and content and filesystem.list_files(content):
            try:
                for remaining in self.registry.resolve(content, filesystem):
                    component_set.add(remaining)
            except ResolutionError:
                logger.warning(
                    f"unable to find component at {content}.  That's ok if it was supposed to be deleted"
                )
            return
        component_set.add(component, destructive=True)

    async def remote_non_deletes_as_component_set(self) -> ComponentSet:
        """Build a component set of remote adds and modifies.

        Components with local files come from the registry; remote adds with no
        local file yet are added by identity alone.
        """
        change_results, source_backed = await asyncio.gather(
            self.classifier.get_changes(Origin.REMOTE, ChangeState.NONDELETE, ChangeFormat.CHANGE_RESULT),
            self.classifier.get_changes(Origin.REMOTE, ChangeState.NONDELETE, ChangeFormat.COMPONENTS),
        )
        component_set = ComponentSet(source_backed, source_api_version=self.source_api_version)
        for result in change_results:
            if result.type and result.name and not self.registry.has(component_set, result.type, result.name):
                component_set.add(SourceComponent(type=result.type, full_name=result.name))
        return component_set
