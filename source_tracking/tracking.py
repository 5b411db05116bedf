"""Tracking updates after a deploy, retrieve or local delete."""

import asyncio
from typing import Awaitable, Dict, List, Optional, Sequence

from source_tracking.component_set import ComponentKey, SourceComponent
from source_tracking.file_ops import FileOps
from source_tracking.logging_setup import get_logger
from source_tracking.models import (
    ComponentStatus,
    DeployResult,
    FileResponse,
    Project,
    RemoteSyncInput,
    RetrieveResult,
)
from source_tracking.paths import ensure_relative, path_is_in_folder
from source_tracking.registry import FilesystemTree, MetadataRegistry, ResolutionError, VirtualTree
from source_tracking.stores import StoreHandles

logger = get_logger("tracking")


class TrackingUpdateError(Exception):
    """Raised when the paired local/remote tracking update did not fully succeed.

    No rollback is attempted: the side named as succeeded has already
    advanced.
    """

    def __init__(self, local_error: Optional[BaseException], remote_error: Optional[BaseException]):
        self.local_error = local_error
        self.remote_error = remote_error
        if local_error and remote_error:
            message = f"Local and remote tracking updates both failed: {local_error}; {remote_error}"
        elif local_error:
            message = f"Local tracking update failed after remote tracking succeeded: {local_error}"
        else:
            message = f"Remote tracking update failed after local tracking succeeded: {remote_error}"
        super().__init__(message)

    @property
    def succeeded(self) -> Optional[str]:
        """Name the side that advanced, if any."""
        if self.local_error and not self.remote_error:
            return "remote"
        if self.remote_error and not self.local_error:
            return "local"
        return None


class TrackingTransaction:
    """Advances both tracking stores to reflect a completed operation."""

    def __init__(
        self,
        stores: StoreHandles,
        registry: MetadataRegistry,
        project: Project,
        file_ops: Optional[FileOps] = None,
    ):
        self.stores = stores
        self.registry = registry
        self.project = project
        self.filesystem = FilesystemTree(project.path)
        self.file_ops = file_ops or FileOps(project.path)

    async def update_local_tracking(
        self, files: Sequence[str] = (), deleted_files: Sequence[str] = ()
    ) -> None:
        """Commit files and deletions as the new local baseline.

        A deploy of part of a bundle does not report the bundle's other
        deleted members, so pending deletes inside any bundle that has a file
        in `files` are committed as deletions too.
        """
        store = await self.stores.local()

        relative_files = [ensure_relative(f, self.project.path) for f in files]
        relative_deleted = [ensure_relative(f, self.project.path) for f in deleted_files]

        pending_deletes = await store.get_delete_filenames()
        inferred = self._bundle_implied_deletes(relative_files, pending_deletes)
        if inferred:
            logger.debug(f"Inferred {len(inferred)} bundle member deletions: {inferred}")

        await store.commit_changes(
            deployed_files=relative_files,
            deleted_files=list(dict.fromkeys(relative_deleted + inferred)),
        )

    def _bundle_implied_deletes(self, files: List[str], pending_deletes: List[str]) -> List[str]:
        if not files or not pending_deletes:
            return []

        deployed_tree = VirtualTree.from_file_paths(files)
        deployed_keys = set()
        for filename in files:
            try:
                deployed_keys.update(c.key for c in self.registry.resolve(filename, deployed_tree))
            except ResolutionError:
                continue

        deletes_tree = VirtualTree.from_file_paths(pending_deletes)
        bundle_paths = set()
        for filename in pending_deletes:
            try:
                components = self.registry.resolve(filename, deletes_tree)
            except ResolutionError:
                continue
            for component in components:
                content = self.registry.component_content_path(component)
                if self.registry.is_bundle(component) and component.key in deployed_keys and content:
                    bundle_paths.add(content)

        deployed = set(files)
        return [
            filename
            for filename in pending_deletes
            if filename not in deployed
            and any(path_is_in_folder(filename, bundle_path) for bundle_path in bundle_paths)
        ]

    async def update_remote_tracking(
        self, elements: Sequence[RemoteSyncInput], skip_polling: bool = False
    ) -> None:
        """Advance the remote cursor for exactly these elements.

        Args:
            elements: Elements the operation touched
            skip_polling: Skip waiting for the org to report the new revisions
                (retrieves and local deletes already reflect the server state)
        """
        # don't query the org until polling does
        store = await self.stores.remote(initialize_with_query=False)
        if not skip_polling:
            await store.poll_for_source_tracking(elements)
        await store.sync_specified_elements(elements)

    async def _run_paired(self, local_update: Awaitable[None], remote_update: Awaitable[None]) -> None:
        local_result, remote_result = await asyncio.gather(
            local_update, remote_update, return_exceptions=True
        )
        local_error = local_result if isinstance(local_result, BaseException) else None
        remote_error = remote_result if isinstance(remote_result, BaseException) else None
        if local_error or remote_error:
            error = TrackingUpdateError(local_error, remote_error)
            logger.error(str(error))
            raise error from (local_error or remote_error)

    async def delete_files_and_update_tracking(
        self, components: Sequence[SourceComponent]
    ) -> List[FileResponse]:
        """Delete the local files of components and record the deletes on both sides.

        Returns:
            One Deleted FileResponse per file removed
        """
        if not components:
            return []

        component_by_filename: Dict[str, SourceComponent] = {}
        for component in components:
            for filename in self.registry.component_files(component, self.filesystem):
                component_by_filename[filename] = component
        filenames = list(component_by_filename)

        await self.file_ops.delete_files(filenames)

        seen: Dict[ComponentKey, SourceComponent] = {c.key: c for c in components}
        await self._run_paired(
            self.update_local_tracking(deleted_files=filenames),
            self.update_remote_tracking(
                [
                    RemoteSyncInput(type=c.type, full_name=c.full_name, state=ComponentStatus.DELETED)
                    for c in seen.values()
                ],
                skip_polling=True,
            ),
        )
        return [
            FileResponse(
                full_name=component_by_filename[filename].full_name,
                type=component_by_filename[filename].type,
                state=ComponentStatus.DELETED,
                file_path=filename,
            )
            for filename in filenames
        ]

    async def update_tracking_from_deploy(self, deploy_result: DeployResult) -> None:
        """Update both stores for the successful files of a deploy."""
        successes = [
            response
            for response in deploy_result.get_file_responses()
            if response.state != ComponentStatus.FAILED and response.file_path
        ]
        if not successes:
            logger.debug("No successful deploy responses; tracking unchanged")
            return

        await self._run_paired(
            self.update_local_tracking(
                files=[r.file_path for r in successes if r.state != ComponentStatus.DELETED],
                deleted_files=[r.file_path for r in successes if r.state == ComponentStatus.DELETED],
            ),
            self.update_remote_tracking(_sync_inputs(successes)),
        )

    async def update_tracking_from_retrieve(self, retrieve_result: RetrieveResult) -> None:
        """Update both stores for the successful files of a retrieve."""
        successes = [
            response
            for response in retrieve_result.file_responses
            if response.state != ComponentStatus.FAILED
        ]
        if not successes:
            logger.debug("No successful retrieve responses; tracking unchanged")
            return

        await self._run_paired(
            self.update_local_tracking(files=[r.file_path for r in successes if r.file_path]),
            self.update_remote_tracking(_sync_inputs(successes), skip_polling=True),
        )


def _sync_inputs(responses: List[FileResponse]) -> List[RemoteSyncInput]:
    return [
        RemoteSyncInput(type=r.type, full_name=r.full_name, state=r.state, file_path=r.file_path)
        for r in responses
    ]
