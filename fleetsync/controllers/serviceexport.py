"""
ServiceExport controller: exports a member cluster Service to the hub.

For every ServiceExport the controller decides whether the same-named
Service may be exported, keeps an InternalServiceExport on the hub in line
with it, and tears that projection down when the Service goes away, becomes
ineligible, or the ServiceExport is deleted.

Ordering guarantees:
- The cleanup finalizer is added before the first hub write
- The cleanup finalizer is removed only after the hub projection is gone
"""

import copy
import time
from typing import Callable, Optional

from fleetsync.api.meta import CONDITION_FALSE, CONDITION_TRUE, Condition, ObjectMeta, set_status_condition
from fleetsync.api.types import (
    CLUSTER_IP_NONE,
    GROUP,
    SERVICE_EXPORT_VALID,
    SERVICE_TYPE_EXTERNAL_NAME,
    ExportedObjectReference,
    ExportedServicePort,
    InternalServiceExport,
    InternalServiceExportSpec,
    Service,
    ServiceExport,
    ServicePort,
)
from fleetsync.controllers.controller import Reconciler, Request
from fleetsync.controllers.projection import create_or_update, delete_ignore_not_found
from fleetsync.controllers.uniquename import internal_service_export_name
from fleetsync.errors import NotFoundError
from fleetsync.store.base import ObjectStore
from fleetsync.utils.logging import get_logger

logger = get_logger(__name__)

SERVICE_EXPORT_CLEANUP_FINALIZER = f"{GROUP}/svc-export-cleanup"

REASON_SOURCE_NOT_FOUND = "SourceNotFound"
REASON_SOURCE_INELIGIBLE = "SourceIneligible"
REASON_SERVICE_IS_VALID = "ServiceIsValid"

ServiceEligibilityPolicy = Callable[[Service], bool]


def is_service_eligible_for_export(svc: Service) -> bool:
    """
    Default eligibility policy.

    ExternalName Services have no endpoints to export and headless Services
    have no cluster IP to balance across, so neither can be exported.
    """
    if svc.spec.type == SERVICE_TYPE_EXTERNAL_NAME:
        return False
    if svc.spec.cluster_ip == CLUSTER_IP_NONE:
        return False
    return True


def has_cleanup_finalizer(svc_export: ServiceExport) -> bool:
    return svc_export.metadata.has_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)


def is_cleanup_needed(svc_export: ServiceExport) -> bool:
    """
    Check whether a deleted ServiceExport still has a projection to tear down.

    Without the cleanup finalizer the Service has never been exported.
    """
    return has_cleanup_finalizer(svc_export) and svc_export.metadata.is_deleting()


def export_service_port(port: ServicePort) -> ExportedServicePort:
    """Project a Service port; an unset target port defaults to the port itself."""
    target_port = port.target_port
    if target_port is None or target_port == "" or target_port == 0:
        target_port = port.port

    return ExportedServicePort(
        name=port.name,
        protocol=port.protocol or "TCP",
        app_protocol=port.app_protocol,
        port=port.port,
        target_port=target_port,
    )


class ServiceExportReconciler(Reconciler):
    """
    Reconciles the export of one Service.

    Reads ServiceExports and Services from the member store and writes
    InternalServiceExports to the member's reserved namespace in the hub
    store.
    """

    def __init__(
        self,
        member_store: ObjectStore,
        hub_store: ObjectStore,
        hub_namespace: str,
        member_cluster_id: str = "",
        is_eligible: Optional[ServiceEligibilityPolicy] = None,
    ):
        """
        Initialize reconciler.

        Args:
            member_store: Member cluster store
            hub_store: Hub cluster store
            hub_namespace: Hub namespace reserved for this member cluster
            member_cluster_id: Member cluster ID, recorded in provenance
            is_eligible: Eligibility policy; defaults to
                is_service_eligible_for_export
        """
        self.member_store = member_store
        self.hub_store = hub_store
        self.hub_namespace = hub_namespace
        self.member_cluster_id = member_cluster_id
        self.is_eligible = is_eligible or is_service_eligible_for_export

    async def reconcile(self, request: Request) -> None:
        start = time.monotonic()
        logger.debug("Reconciliation starts", service_export=request.key)
        try:
            await self._reconcile(request)
        finally:
            logger.debug(
                "Reconciliation ends",
                service_export=request.key,
                latency_ms=round((time.monotonic() - start) * 1000, 3),
            )

    async def _reconcile(self, request: Request) -> None:
        try:
            svc_export = await self.member_store.get(ServiceExport, request.namespace, request.name)
        except NotFoundError:
            # Deleted before it was ever exported; with the cleanup finalizer
            # it could not have been removed yet.
            logger.debug("Service export not found", service_export=request.key)
            return

        if is_cleanup_needed(svc_export):
            await self._unexport(svc_export)
            return

        if svc_export.metadata.is_deleting():
            # Held by someone else's finalizer and never exported.
            return

        try:
            svc: Optional[Service] = await self.member_store.get(Service, request.namespace, request.name)
        except NotFoundError:
            svc = None

        if svc is None or svc.metadata.is_deleting():
            if has_cleanup_finalizer(svc_export):
                svc_export = await self._unexport(svc_export)
            await self._mark_invalid(
                svc_export,
                REASON_SOURCE_NOT_FOUND,
                f"service {request.key} is not found",
            )
            return

        if not self.is_eligible(svc):
            if has_cleanup_finalizer(svc_export):
                svc_export = await self._unexport(svc_export)
            await self._mark_invalid(
                svc_export,
                REASON_SOURCE_INELIGIBLE,
                f"service {request.key} is not eligible for export",
            )
            return

        if not has_cleanup_finalizer(svc_export):
            svc_export = await self._add_cleanup_finalizer(svc_export)

        await self._export(svc_export, svc)
        await self._mark_valid(svc_export)

    async def _export(self, svc_export: ServiceExport, svc: Service) -> None:
        name = internal_service_export_name(svc_export.metadata.namespace, svc_export.metadata.name)
        internal_export = InternalServiceExport(
            metadata=ObjectMeta(namespace=self.hub_namespace, name=name),
        )

        def mutate(obj: InternalServiceExport) -> None:
            obj.spec = InternalServiceExportSpec(
                ports=[export_service_port(port) for port in svc.spec.ports],
                service_reference=ExportedObjectReference(
                    cluster_id=self.member_cluster_id,
                    api_version=svc.api_version,
                    kind=svc.kind,
                    namespace=svc.metadata.namespace,
                    name=svc.metadata.name,
                    resource_version=svc.metadata.resource_version,
                    generation=svc.metadata.generation,
                    uid=svc.metadata.uid,
                ),
            )

        op = await create_or_update(self.hub_store, internal_export, mutate)

        logger.info(
            "Service exported",
            service_export=svc_export.key(),
            internal_service_export=f"{self.hub_namespace}/{name}",
            op=op,
        )

    async def _unexport(self, svc_export: ServiceExport) -> ServiceExport:
        """
        Delete the hub projection, then drop the cleanup finalizer.

        A projection that is already gone counts as deleted: the finalizer
        is added before the first hub write, so it can be present for a
        projection that was never created or was deleted by a pass that
        crashed before removing the finalizer.

        Returns:
            The ServiceExport as persisted after the finalizer removal
        """
        meta = svc_export.metadata
        name = internal_service_export_name(meta.namespace, meta.name)

        deleted = await delete_ignore_not_found(
            self.hub_store, InternalServiceExport, self.hub_namespace, name,
        )

        logger.info(
            "Service unexported",
            service_export=svc_export.key(),
            internal_service_export=f"{self.hub_namespace}/{name}",
            already_absent=not deleted,
        )

        return await self._remove_cleanup_finalizer(svc_export)

    async def _add_cleanup_finalizer(self, svc_export: ServiceExport) -> ServiceExport:
        updated = copy.deepcopy(svc_export)
        updated.metadata.add_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)
        return await self.member_store.update(updated)

    async def _remove_cleanup_finalizer(self, svc_export: ServiceExport) -> ServiceExport:
        updated = copy.deepcopy(svc_export)
        updated.metadata.remove_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)
        return await self.member_store.update(updated)

    async def _set_valid_condition(
        self,
        svc_export: ServiceExport,
        status: str,
        reason: str,
        message: str,
    ) -> ServiceExport:
        updated = copy.deepcopy(svc_export)
        changed = set_status_condition(
            updated.status.conditions,
            Condition(
                type=SERVICE_EXPORT_VALID,
                status=status,
                reason=reason,
                message=message,
                observed_generation=updated.metadata.generation,
            ),
        )
        if not changed:
            return svc_export
        return await self.member_store.update(updated)

    async def _mark_invalid(self, svc_export: ServiceExport, reason: str, message: str) -> ServiceExport:
        logger.info(
            "Service export marked invalid",
            service_export=svc_export.key(),
            reason=reason,
        )
        return await self._set_valid_condition(svc_export, CONDITION_FALSE, reason, message)

    async def _mark_valid(self, svc_export: ServiceExport) -> ServiceExport:
        return await self._set_valid_condition(
            svc_export,
            CONDITION_TRUE,
            REASON_SERVICE_IS_VALID,
            f"service {svc_export.key()} is valid for export",
        )
