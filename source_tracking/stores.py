"""Interfaces of the two tracking stores and their lazy initialization."""

import asyncio
from typing import Awaitable, Callable, Generic, List, Optional, Protocol, Sequence, TypeVar

from source_tracking.logging_setup import get_logger
from source_tracking.models import RemoteChangeElement, RemoteSyncInput

logger = get_logger("stores")

T = TypeVar("T")


class LocalChangeStore(Protocol):
    """File-level diff of the workspace against the last committed baseline."""

    async def get_status(self) -> List[tuple]: ...

    async def get_non_delete_filenames(self) -> List[str]: ...

    async def get_delete_filenames(self) -> List[str]: ...

    async def get_add_filenames(self) -> List[str]: ...

    async def get_modify_filenames(self) -> List[str]: ...

    async def commit_changes(
        self,
        deployed_files: Sequence[str] = (),
        deleted_files: Sequence[str] = (),
        message: Optional[str] = None,
    ) -> None: ...

    async def delete(self) -> str: ...


class RemoteChangeStore(Protocol):
    """Revision cursor over the remote org's changed elements."""

    async def retrieve_updates(self) -> List[RemoteChangeElement]: ...

    async def poll_for_source_tracking(self, elements: Sequence[RemoteSyncInput]) -> None: ...

    async def sync_specified_elements(self, elements: Sequence[RemoteSyncInput]) -> None: ...

    async def reset(self, revision: Optional[int] = None) -> List[RemoteChangeElement]: ...


class LazyStore(Generic[T]):
    """A store that is Uninitialized until first requested, then Ready.

    The factory runs at most once; concurrent callers wait on the same lock
    and receive the same instance.
    """

    def __init__(self, name: str, factory: Callable[[], Awaitable[T]]):
        self.name = name
        self._factory = factory
        self._store: Optional[T] = None
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._store is not None

    async def get(self, on_create: Optional[Callable[[T], Awaitable[object]]] = None) -> T:
        """Get the store, constructing it on first use.

        Args:
            on_create: Awaited once with the new store, only when this call created it
        """
        if self._store is not None:
            logger.debug(f"{self.name} tracking already exists")
            return self._store
        async with self._lock:
            if self._store is None:
                logger.debug(f"{self.name} tracking does not exist yet; getting instance")
                store = await self._factory()
                if on_create is not None:
                    await on_create(store)
                self._store = store
        return self._store

    def forget(self) -> None:
        """Return to Uninitialized, e.g. after the underlying files were deleted."""
        self._store = None


class StoreHandles:
    """Owns the local and remote stores of one (org, project) pair."""

    def __init__(
        self,
        local_factory: Callable[[], Awaitable[LocalChangeStore]],
        remote_factory: Callable[[], Awaitable[RemoteChangeStore]],
    ):
        self._local: LazyStore[LocalChangeStore] = LazyStore("local", local_factory)
        self._remote: LazyStore[RemoteChangeStore] = LazyStore("remote", remote_factory)

    async def local(self) -> LocalChangeStore:
        """Get the local store, loading its status the first time."""

        async def _load_status(store: LocalChangeStore) -> None:
            await store.get_status()

        return await self._local.get(_load_status)

    async def remote(self, initialize_with_query: bool = False) -> RemoteChangeStore:
        """Get the remote store, optionally querying the org when first created."""

        async def _query(store: RemoteChangeStore) -> None:
            await store.retrieve_updates()

        return await self._remote.get(_query if initialize_with_query else None)

    def forget_local(self) -> None:
        self._local.forget()

    def forget_remote(self) -> None:
        self._remote.forget()
