"""Deploy/retrieve notifications and the tracking handlers registered on them.

The deploy/retrieve orchestrator owns an `OperationHooks` instance and
dispatches to it before and after each operation. A tracking session attaches
itself to those hooks through `LifecycleGateway`.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List

from source_tracking.component_set import ComponentSet
from source_tracking.conflicts import (
    ConflictDetector,
    find_conflicts_in_component_set,
    throw_if_conflicts,
)
from source_tracking.logging_setup import get_logger
from source_tracking.models import DeployResult, Org, RetrieveResult
from source_tracking.tracking import TrackingTransaction

logger = get_logger("lifecycle")

PRE_DEPLOY = "pre_deploy"
PRE_RETRIEVE = "pre_retrieve"
POST_DEPLOY = "post_deploy"
POST_RETRIEVE = "post_retrieve"


@dataclass
class PreOperationEvent:
    """Sent before a deploy or retrieve starts."""

    org_id: str
    component_set: ComponentSet


@dataclass
class PostDeployEvent:
    """Sent after a deploy reported success."""

    org_id: str
    deploy_result: DeployResult


@dataclass
class PostRetrieveEvent:
    """Sent after a retrieve reported success."""

    org_id: str
    retrieve_result: RetrieveResult


Handler = Callable[[object], Awaitable[None]]


class OperationHooks:
    """Notification sink passed to a deploy/retrieve orchestrator.

    Handlers run in registration order; an exception from a pre-operation
    handler aborts the operation.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {
            PRE_DEPLOY: [],
            PRE_RETRIEVE: [],
            POST_DEPLOY: [],
            POST_RETRIEVE: [],
        }

    def register(self, event_name: str, handler: Handler) -> None:
        if event_name not in self._handlers:
            raise ValueError(f"Unknown operation event: {event_name}")
        self._handlers[event_name].append(handler)

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))

    async def _dispatch(self, event_name: str, event: object) -> None:
        for handler in self._handlers[event_name]:
            await handler(event)

    async def pre_deploy(self, event: PreOperationEvent) -> None:
        await self._dispatch(PRE_DEPLOY, event)

    async def pre_retrieve(self, event: PreOperationEvent) -> None:
        await self._dispatch(PRE_RETRIEVE, event)

    async def post_deploy(self, event: PostDeployEvent) -> None:
        await self._dispatch(POST_DEPLOY, event)

    async def post_retrieve(self, event: PostRetrieveEvent) -> None:
        await self._dispatch(POST_RETRIEVE, event)


class LifecycleGateway:
    """Gates operations on conflicts and updates tracking after them."""

    def __init__(
        self,
        org: Org,
        conflicts: ConflictDetector,
        tracking: TrackingTransaction,
        subscribe_events: bool = False,
        ignore_conflicts: bool = False,
    ):
        self.org = org
        self.conflicts = conflicts
        self.tracking = tracking
        self.subscribe_events = subscribe_events
        self.ignore_conflicts = ignore_conflicts

    def attach(self, hooks: OperationHooks) -> bool:
        """Register handlers on an orchestrator's hooks.

        Nothing is registered unless event subscription was requested and the
        org tracks source. Pre-operation handlers exist only to check
        conflicts, so they are skipped when conflicts are ignored.

        Returns:
            True if any handler was registered
        """
        if not (self.subscribe_events and self.org.tracks_source):
            return False

        if not self.ignore_conflicts:
            logger.debug("subscribing to predeploy/retrieve events")
            hooks.register(PRE_DEPLOY, self._on_pre_operation)
            hooks.register(PRE_RETRIEVE, self._on_pre_operation)

        logger.debug("subscribing to postdeploy/retrieve events")
        hooks.register(POST_DEPLOY, self._on_post_deploy)
        hooks.register(POST_RETRIEVE, self._on_post_retrieve)
        return True

    async def _on_pre_operation(self, event: PreOperationEvent) -> None:
        if event.org_id != self.org.org_id or self.ignore_conflicts:
            return
        conflicts = await self.conflicts.get_conflicts()
        throw_if_conflicts(find_conflicts_in_component_set(event.component_set, conflicts))

    async def _on_post_deploy(self, event: PostDeployEvent) -> None:
        if event.org_id != self.org.org_id:
            return
        await self.tracking.update_tracking_from_deploy(event.deploy_result)

    async def _on_post_retrieve(self, event: PostRetrieveEvent) -> None:
        if event.org_id != self.org.org_id:
            return
        await self.tracking.update_tracking_from_retrieve(event.retrieve_result)
