"""
Watch event handlers that translate change notifications into queue keys.

Each handler is a named object holding explicit references to the queue it
feeds (and, where needed, the store it reads), so the path from a change
to a reconciliation can be followed and tested without a running store.
"""

from typing import List, Optional

from fleetsync.api.types import (
    LABEL_SERVICE_NAME,
    EndpointSlice,
    Resource,
    Service,
)
from fleetsync.controllers.workqueue import WorkQueue
from fleetsync.store.base import EventType, ObjectStore, WatchEvent
from fleetsync.utils.logging import get_logger

logger = get_logger(__name__)


class EventHandler:
    """
    Base handler: dispatches an event and enqueues the keys it maps to.

    Subclasses override on_add / on_update / on_delete; by default every
    event enqueues the key of the changed object.
    """

    def __init__(self, queue: WorkQueue):
        self.queue = queue

    async def __call__(self, event: WatchEvent) -> None:
        if event.type == EventType.ADDED:
            keys = await self.on_add(event.object)
        elif event.type == EventType.MODIFIED:
            keys = await self.on_update(event.old_object, event.object)
        else:
            keys = await self.on_delete(event.object)

        for key in keys:
            self.queue.add(key)

    async def on_add(self, obj: Resource) -> List[str]:
        return [obj.key()]

    async def on_update(self, old: Optional[Resource], new: Resource) -> List[str]:
        return [new.key()]

    async def on_delete(self, obj: Resource) -> List[str]:
        return [obj.key()]


class EnqueueRequestForObject(EventHandler):
    """Enqueue the changed object itself on every event."""
    pass


class ServiceExportEventHandler(EventHandler):
    """
    Enqueue ServiceExports for the export controller.

    Updates are only interesting once deletion has been requested; other
    updates are mostly this controller's own status writes. Delete events
    are ignored because a ServiceExport that was ever exported carries a
    finalizer and is reconciled when its deletion timestamp appears.
    """

    async def on_update(self, old: Optional[Resource], new: Resource) -> List[str]:
        if new.metadata.is_deleting():
            return [new.key()]
        return []

    async def on_delete(self, obj: Resource) -> List[str]:
        return []


def is_service_changed(old: Service, new: Service) -> bool:
    """
    Check whether a Service changed in a way that affects its export.

    Only the fields that feed eligibility or the exported port list count.
    """
    return (
        old.spec.type != new.spec.type
        or old.spec.cluster_ip != new.spec.cluster_ip
        or old.spec.ports != new.spec.ports
    )


class ServiceEventHandler(EventHandler):
    """
    Enqueue the ServiceExport named after a changed Service.

    A Service and its ServiceExport share namespace and name, so the
    Service's own key addresses the export.
    """

    async def on_update(self, old: Optional[Resource], new: Resource) -> List[str]:
        if old is None or new.metadata.is_deleting() or is_service_changed(old, new):
            return [new.key()]
        return []


class EnqueueEndpointSlicesForServiceExport(EventHandler):
    """
    Fan a ServiceExport change out to the EndpointSlices of its Service.

    The validity of a ServiceExport decides whether its EndpointSlices may be
    exported, so every change to it re-enqueues all slices labelled with the
    Service's name, including slices that have not changed themselves.
    """

    def __init__(self, queue: WorkQueue, member_store: ObjectStore):
        super().__init__(queue)
        self.member_store = member_store

    async def _endpoint_slice_keys(self, obj: Resource) -> List[str]:
        meta = obj.metadata
        try:
            slices = await self.member_store.list(
                EndpointSlice,
                namespace=meta.namespace,
                label_selector={LABEL_SERVICE_NAME: meta.name},
            )
        except Exception as e:
            logger.error(
                "Failed to list endpoint slices in use by a service",
                service_export=meta.key(),
                error=str(e),
            )
            return []
        return [endpoint_slice.key() for endpoint_slice in slices]

    async def on_add(self, obj: Resource) -> List[str]:
        return await self._endpoint_slice_keys(obj)

    async def on_update(self, old: Optional[Resource], new: Resource) -> List[str]:
        return await self._endpoint_slice_keys(new)

    async def on_delete(self, obj: Resource) -> List[str]:
        return await self._endpoint_slice_keys(obj)
