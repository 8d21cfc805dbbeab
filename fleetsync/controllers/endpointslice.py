"""
EndpointSlice controller: exports the EndpointSlices of exported Services.

An EndpointSlice may be exported only while the ServiceExport of the
Service it belongs to is valid, and only until the slice itself is
deleted. Its export decision therefore depends on two objects; the
controller is re-triggered by changes to either (see
EnqueueEndpointSlicesForServiceExport).

Bookkeeping lives in a single label on the slice: the fleet unique name.
It is set before the first hub write, names the EndpointSliceExport on the
hub, and is removed only after that EndpointSliceExport has been deleted.
"""

import copy
import time
from enum import Enum
from typing import Callable, List, Optional

from fleetsync.api.meta import CONDITION_TRUE, ObjectMeta, find_status_condition, is_status_condition_true
from fleetsync.api.types import (
    ADDRESS_TYPE_IPV4,
    LABEL_FLEET_UNIQUE_NAME,
    LABEL_SERVICE_NAME,
    SERVICE_EXPORT_CONFLICT,
    SERVICE_EXPORT_VALID,
    EndpointSlice,
    EndpointSliceExport,
    EndpointSliceExportSpec,
    ExportedEndpoint,
    ExportedObjectReference,
    ServiceExport,
)
from fleetsync.controllers.controller import Reconciler, Request
from fleetsync.controllers.projection import create_or_update, delete_ignore_not_found
from fleetsync.controllers.uniquename import fleet_unique_name
from fleetsync.errors import NotFoundError
from fleetsync.store.base import ObjectStore
from fleetsync.utils.logging import get_logger

logger = get_logger(__name__)

UnexportablePolicy = Callable[[EndpointSlice], bool]


class ExportAction(str, Enum):
    """What to do with an EndpointSlice on this pass."""

    SKIP = "skip"            # Leave it alone
    UNEXPORT = "unexport"    # Delete its hub projection and unique name label
    CONTINUE = "continue"    # Export it or refresh its hub projection


def is_endpoint_slice_permanently_unexportable(endpoint_slice: EndpointSlice) -> bool:
    """
    Default policy for slices that can never be exported.

    Only IPv4 slices are exported; the hub projection carries a fixed IPv4
    address type.
    """
    return endpoint_slice.address_type != ADDRESS_TYPE_IPV4


def is_service_export_valid(svc_export: ServiceExport) -> bool:
    """
    Check a ServiceExport is valid with no conflict.

    A missing Conflict condition means no conflict has been reported. A
    ServiceExport being deleted is never valid: its Service projection is
    torn down before the deletion completes, whatever its Valid condition
    still says.
    """
    if svc_export.metadata.is_deleting():
        return False

    conditions = svc_export.status.conditions
    if not is_status_condition_true(conditions, SERVICE_EXPORT_VALID):
        return False
    conflict = find_status_condition(conditions, SERVICE_EXPORT_CONFLICT)
    return conflict is None or conflict.status != CONDITION_TRUE


def decide_export_action(
    permanently_unexportable: bool,
    has_service_name_label: bool,
    has_unique_name_label: bool,
    service_export_found: bool,
    service_export_valid: bool,
    deleting: bool,
) -> ExportAction:
    """
    Decide what to do with an EndpointSlice.

    Precedence, first match wins:

    1. Permanently unexportable slices are skipped.
    2. A slice not in use by a Service is unexported if it carries a unique
       name (it may have been exported), skipped otherwise.
    3. A slice whose Service has no ServiceExport, or whose ServiceExport is
       not valid, is likewise unexported if labelled, skipped otherwise.
    4. A slice of a validly exported Service that is being deleted is
       unexported if labelled and skipped otherwise, since it was never
       exported.
    5. Anything else is exported.

    Args:
        permanently_unexportable: The unexportable policy rejected the slice
        has_service_name_label: The slice names the Service using it
        has_unique_name_label: The slice carries a fleet unique name
        service_export_found: The Service's ServiceExport exists
        service_export_valid: That ServiceExport is valid with no conflict
        deleting: The slice has a deletion timestamp

    Returns:
        The action to take
    """
    if permanently_unexportable:
        return ExportAction.SKIP

    if not has_service_name_label or not service_export_found or not service_export_valid:
        return ExportAction.UNEXPORT if has_unique_name_label else ExportAction.SKIP

    if deleting:
        return ExportAction.UNEXPORT if has_unique_name_label else ExportAction.SKIP

    return ExportAction.CONTINUE


def extract_endpoints(endpoint_slice: EndpointSlice) -> List[ExportedEndpoint]:
    """
    Extract the endpoints to export.

    Endpoints explicitly marked not ready are left out; an unknown
    readiness counts as ready.
    """
    return [
        ExportedEndpoint(addresses=list(endpoint.addresses))
        for endpoint in endpoint_slice.endpoints
        if endpoint.conditions.ready is None or endpoint.conditions.ready
    ]


class EndpointSliceReconciler(Reconciler):
    """
    Reconciles the export of one EndpointSlice.

    Reads EndpointSlices and ServiceExports from the member store and writes
    EndpointSliceExports to the member's reserved namespace in the hub store.
    """

    def __init__(
        self,
        member_cluster_id: str,
        member_store: ObjectStore,
        hub_store: ObjectStore,
        hub_namespace: str,
        is_permanently_unexportable: Optional[UnexportablePolicy] = None,
    ):
        """
        Initialize reconciler.

        Args:
            member_cluster_id: Member cluster ID, part of every unique name
            member_store: Member cluster store
            hub_store: Hub cluster store
            hub_namespace: Hub namespace reserved for this member cluster
            is_permanently_unexportable: Policy for slices that are never
                exported; defaults to is_endpoint_slice_permanently_unexportable
        """
        self.member_cluster_id = member_cluster_id
        self.member_store = member_store
        self.hub_store = hub_store
        self.hub_namespace = hub_namespace
        self.is_permanently_unexportable = (
            is_permanently_unexportable or is_endpoint_slice_permanently_unexportable
        )

    async def reconcile(self, request: Request) -> None:
        start = time.monotonic()
        logger.debug("Reconciliation starts", endpoint_slice=request.key)
        try:
            await self._reconcile(request)
        finally:
            logger.debug(
                "Reconciliation ends",
                endpoint_slice=request.key,
                latency_ms=round((time.monotonic() - start) * 1000, 3),
            )

    async def _reconcile(self, request: Request) -> None:
        try:
            endpoint_slice = await self.member_store.get(EndpointSlice, request.namespace, request.name)
        except NotFoundError:
            # A slice removed before it could be unexported leaves its
            # projection behind; cleaning that up is not this controller's job.
            logger.debug("Endpoint slice not found", endpoint_slice=request.key)
            return

        action = await self.decide(endpoint_slice)

        if action == ExportAction.SKIP:
            logger.debug("Endpoint slice skipped", endpoint_slice=request.key)
            return

        if action == ExportAction.UNEXPORT:
            await self._unexport(endpoint_slice)
            return

        await self._export(endpoint_slice)

    async def decide(self, endpoint_slice: EndpointSlice) -> ExportAction:
        """
        Gather the inputs of decide_export_action and apply it.

        The ServiceExport is only read when the outcome depends on it.

        Raises:
            StoreError: If reading the ServiceExport fails for any reason
                other than absence
        """
        meta = endpoint_slice.metadata
        permanently_unexportable = self.is_permanently_unexportable(endpoint_slice)
        svc_name = meta.labels.get(LABEL_SERVICE_NAME)

        found = False
        valid = False
        if not permanently_unexportable and svc_name:
            try:
                svc_export = await self.member_store.get(ServiceExport, meta.namespace, svc_name)
            except NotFoundError:
                svc_export = None
            found = svc_export is not None
            valid = found and is_service_export_valid(svc_export)

        return decide_export_action(
            permanently_unexportable=permanently_unexportable,
            has_service_name_label=bool(svc_name),
            has_unique_name_label=LABEL_FLEET_UNIQUE_NAME in meta.labels,
            service_export_found=found,
            service_export_valid=valid,
            deleting=meta.is_deleting(),
        )

    async def _export(self, endpoint_slice: EndpointSlice) -> None:
        unique_name = endpoint_slice.metadata.labels.get(LABEL_FLEET_UNIQUE_NAME)
        if not unique_name:
            endpoint_slice = await self._assign_unique_name(endpoint_slice)
            unique_name = endpoint_slice.metadata.labels[LABEL_FLEET_UNIQUE_NAME]

        endpoint_slice_export = EndpointSliceExport(
            metadata=ObjectMeta(namespace=self.hub_namespace, name=unique_name),
        )
        endpoints = extract_endpoints(endpoint_slice)
        meta = endpoint_slice.metadata

        def mutate(obj: EndpointSliceExport) -> None:
            obj.spec = EndpointSliceExportSpec(
                address_type=ADDRESS_TYPE_IPV4,
                endpoints=endpoints,
                ports=copy.deepcopy(endpoint_slice.ports),
                endpoint_slice_reference=ExportedObjectReference(
                    cluster_id=self.member_cluster_id,
                    api_version=endpoint_slice.api_version,
                    kind=endpoint_slice.kind,
                    namespace=meta.namespace,
                    name=meta.name,
                    resource_version=meta.resource_version,
                    generation=meta.generation,
                    uid=meta.uid,
                ),
            )

        op = await create_or_update(self.hub_store, endpoint_slice_export, mutate)

        logger.info(
            "Endpoint slice exported",
            endpoint_slice=endpoint_slice.key(),
            endpoint_slice_export=f"{self.hub_namespace}/{unique_name}",
            endpoints=len(endpoints),
            op=op,
        )

    async def _assign_unique_name(self, endpoint_slice: EndpointSlice) -> EndpointSlice:
        """
        Label the slice with its fleet unique name and persist it.

        Returns:
            The slice as persisted
        """
        meta = endpoint_slice.metadata
        unique_name = fleet_unique_name(self.member_cluster_id, meta.namespace, meta.name)

        updated = copy.deepcopy(endpoint_slice)
        updated.metadata.labels[LABEL_FLEET_UNIQUE_NAME] = unique_name
        persisted = await self.member_store.update(updated)

        logger.info(
            "Assigned fleet unique name",
            endpoint_slice=endpoint_slice.key(),
            unique_name=unique_name,
        )
        return persisted

    async def _unexport(self, endpoint_slice: EndpointSlice) -> EndpointSlice:
        """
        Delete the hub projection, then drop the unique name label.

        Returns:
            The slice as persisted after the label removal
        """
        unique_name = endpoint_slice.metadata.labels[LABEL_FLEET_UNIQUE_NAME]

        # The label is set before the first hub write, so the projection may
        # never have been created.
        deleted = await delete_ignore_not_found(
            self.hub_store, EndpointSliceExport, self.hub_namespace, unique_name,
        )

        updated = copy.deepcopy(endpoint_slice)
        del updated.metadata.labels[LABEL_FLEET_UNIQUE_NAME]
        persisted = await self.member_store.update(updated)

        logger.info(
            "Endpoint slice unexported",
            endpoint_slice=endpoint_slice.key(),
            endpoint_slice_export=f"{self.hub_namespace}/{unique_name}",
            already_absent=not deleted,
        )
        return persisted
