"""Source tracking session for one (org, project) pair."""

from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

from source_tracking.assembler import ComponentSetAssembler
from source_tracking.classifier import ChangeClassifier
from source_tracking.component_set import ComponentSet, SourceComponent
from source_tracking.config_loader import Config, load_config
from source_tracking.conflicts import ConflictDetector
from source_tracking.ignore import IgnoreRules
from source_tracking.lifecycle import LifecycleGateway, OperationHooks
from source_tracking.local_store import ShadowStore
from source_tracking.logging_setup import get_logger, setup_logging
from source_tracking.models import (
    ChangeFormat,
    ChangeState,
    Conflict,
    DeployResult,
    FileResponse,
    Org,
    Origin,
    Project,
    RemoteSyncInput,
    RetrieveResult,
    StatusOutputRow,
)
from source_tracking.registry import MetadataRegistry
from source_tracking.remote_store import RemoteTrackingStore, SourceMemberQuery
from source_tracking.status import StatusReporter
from source_tracking.stores import LocalChangeStore, RemoteChangeStore, StoreHandles
from source_tracking.tracking import TrackingTransaction

logger = get_logger("session")


class TrackingSetupError(Exception):
    """Raised when a tracking store cannot be created."""

    pass


class SourceTracking:
    """Local and remote tracking for one org and project.

    Build instances with `create_source_tracking`.
    """

    def __init__(
        self,
        org: Org,
        project: Project,
        stores: StoreHandles,
        classifier: ChangeClassifier,
        assembler: ComponentSetAssembler,
        conflicts: ConflictDetector,
        tracking: TrackingTransaction,
        status: StatusReporter,
        gateway: LifecycleGateway,
        remote_store_deleter: Callable[[], Awaitable[str]],
    ):
        self.org = org
        self.project = project
        self.stores = stores
        self.classifier = classifier
        self.assembler = assembler
        self.conflicts = conflicts
        self.tracking = tracking
        self.status = status
        self.gateway = gateway
        self._remote_store_deleter = remote_store_deleter

    async def local_changes_as_component_sets(
        self, by_package_dir: Optional[bool] = None
    ) -> List[ComponentSet]:
        return await self.assembler.local_changes_as_component_sets(by_package_dir)

    async def remote_non_deletes_as_component_set(self) -> ComponentSet:
        return await self.assembler.remote_non_deletes_as_component_set()

    async def get_status(self, local: bool = True, remote: bool = True) -> List[StatusOutputRow]:
        return await self.status.get_status(local=local, remote=remote)

    async def get_changes(
        self, origin: Origin, state: ChangeState, fmt: ChangeFormat = ChangeFormat.CHANGE_RESULT
    ) -> list:
        return await self.classifier.get_changes(origin, state, fmt)

    async def maybe_apply_remote_deletes_to_local(self) -> ComponentSet:
        """Delete files of remotely deleted components, then get what's left to retrieve.

        Returns:
            Component set of remote non-deletes
        """
        to_delete = await self.classifier.get_changes(
            Origin.REMOTE, ChangeState.DELETE, ChangeFormat.COMPONENTS
        )
        await self.tracking.delete_files_and_update_tracking(to_delete)
        return await self.remote_non_deletes_as_component_set()

    async def delete_files_and_update_tracking(
        self, components: Sequence[SourceComponent]
    ) -> List[FileResponse]:
        return await self.tracking.delete_files_and_update_tracking(components)

    async def update_local_tracking(
        self, files: Sequence[str] = (), deleted_files: Sequence[str] = ()
    ) -> None:
        await self.tracking.update_local_tracking(files, deleted_files)

    async def update_remote_tracking(
        self, elements: Sequence[RemoteSyncInput], skip_polling: bool = False
    ) -> None:
        await self.tracking.update_remote_tracking(elements, skip_polling)

    async def update_tracking_from_deploy(self, deploy_result: DeployResult) -> None:
        await self.tracking.update_tracking_from_deploy(deploy_result)

    async def update_tracking_from_retrieve(self, retrieve_result: RetrieveResult) -> None:
        await self.tracking.update_tracking_from_retrieve(retrieve_result)

    async def ensure_local_tracking(self) -> LocalChangeStore:
        """Create the local store if needed; a no-op once it exists."""
        return await self.stores.local()

    async def ensure_remote_tracking(self, initialize_with_query: bool = False) -> RemoteChangeStore:
        """Create the remote store if needed; a no-op once it exists."""
        return await self.stores.remote(initialize_with_query)

    async def clear_local_tracking(self) -> str:
        """Delete the local baseline and return where it was."""
        store = await self.stores.local()
        path = await store.delete()
        self.stores.forget_local()
        return path

    async def reset_local_tracking(self) -> List[str]:
        """Commit every pending local change so status shows none.

        Returns:
            The files that were pending, deletes first
        """
        store = await self.stores.local()
        deletes = await store.get_delete_filenames()
        non_deletes = await store.get_non_delete_filenames()
        await store.commit_changes(
            deployed_files=non_deletes,
            deleted_files=deletes,
            message="via reset_local_tracking",
        )
        return [*deletes, *non_deletes]

    async def clear_remote_tracking(self) -> str:
        """Delete the remote cursor and return where it was."""
        path = await self._remote_store_deleter()
        self.stores.forget_remote()
        return path

    async def reset_remote_tracking(self, server_revision: Optional[int] = None) -> int:
        """Mark remote members as synced, optionally only up to a revision.

        Returns:
            Number of members reset
        """
        store = await self.stores.remote()
        reset_members = await store.reset(server_revision)
        return len(reset_members)

    async def get_conflicts(self) -> List[Conflict]:
        return await self.conflicts.get_conflicts()

    def set_ignore_conflicts(self, value: bool) -> None:
        """Change the conflict setting after construction."""
        self.gateway.ignore_conflicts = value


def create_source_tracking(
    config: Config,
    org: Org,
    *,
    query: Optional[SourceMemberQuery] = None,
    registry: Optional[MetadataRegistry] = None,
    local_store_factory: Optional[Callable[[], Awaitable[LocalChangeStore]]] = None,
    remote_store_factory: Optional[Callable[[], Awaitable[RemoteChangeStore]]] = None,
    remote_store_deleter: Optional[Callable[[], Awaitable[str]]] = None,
    hooks: Optional[OperationHooks] = None,
    subscribe_events: Optional[bool] = None,
    ignore_conflicts: Optional[bool] = None,
) -> SourceTracking:
    """Build a fully wired tracking session.

    Stores are created lazily on first use. Without a `remote_store_factory`,
    the default remote store needs `query` to reach the org.

    Args:
        config: Project configuration
        org: Target org
        query: Async callable returning org members changed after a revision
        registry: Metadata registry; defaults to built-in types plus configured ones
        local_store_factory: Replaces the default ShadowStore
        remote_store_factory: Replaces the default RemoteTrackingStore
        remote_store_deleter: Clears remote tracking for a replaced remote store
        hooks: Orchestrator hooks to attach to, if events are subscribed
        subscribe_events: Overrides the configured setting
        ignore_conflicts: Overrides the configured setting

    Raises:
        ConfigError: If configured metadata types are invalid
    """
    project = Project.from_config(config)
    ignore = IgnoreRules.from_config(config)
    registry = registry or MetadataRegistry.from_definitions(config.metadata_types)
    state_dir = str(Path(project.path) / config.state_dir)

    async def _default_local() -> LocalChangeStore:
        return await ShadowStore.get_instance(
            project.path, project.package_names(), config.state_dir, org.org_id
        )

    async def _default_remote() -> RemoteChangeStore:
        if query is None:
            raise TrackingSetupError(f"No org query configured for remote tracking of {org.org_id}")
        return await RemoteTrackingStore.get_instance(
            org.org_id,
            state_dir,
            query,
            poll_timeout=config.poll_timeout_seconds,
            poll_interval=config.poll_interval_seconds,
        )

    async def _default_remote_deleter() -> str:
        return await RemoteTrackingStore.delete(org.org_id, state_dir)

    stores = StoreHandles(
        local_store_factory or _default_local,
        remote_store_factory or _default_remote,
    )
    classifier = ChangeClassifier(stores, registry, project, ignore)
    assembler = ComponentSetAssembler(
        classifier,
        registry,
        project,
        push_sequentially=config.push_package_directories_sequentially,
        source_api_version=config.source_api_version,
    )
    conflicts = ConflictDetector(stores, classifier, ignore)
    tracking = TrackingTransaction(stores, registry, project)
    status = StatusReporter(stores, classifier, conflicts, ignore)
    gateway = LifecycleGateway(
        org,
        conflicts,
        tracking,
        subscribe_events=config.subscribe_events if subscribe_events is None else subscribe_events,
        ignore_conflicts=config.ignore_conflicts if ignore_conflicts is None else ignore_conflicts,
    )
    if hooks is not None and gateway.attach(hooks):
        logger.info(f"Source tracking attached to deploy/retrieve events for {org.org_id}")

    return SourceTracking(
        org,
        project,
        stores,
        classifier,
        assembler,
        conflicts,
        tracking,
        status,
        gateway,
        remote_store_deleter or _default_remote_deleter,
    )


def open_source_tracking(config_path: str, org: Org, **kwargs) -> SourceTracking:
    """Load a config file, set up logging from it and build a session.

    Args:
        config_path: Path to the tracking config file
        org: Target org
        **kwargs: Passed to `create_source_tracking`

    Raises:
        ConfigError: If the config file is missing or invalid
    """
    config = load_config(config_path)
    setup_logging(
        config.log_file_path,
        config.log_level,
        max_bytes=config.log_max_size_mb * 1024 * 1024,
        backup_count=config.log_backup_count,
        rotation_enabled=config.log_rotation_enabled,
    )
    return create_source_tracking(config, org, **kwargs)
