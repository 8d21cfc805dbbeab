"""Tests for the ServiceExport controller."""

import pytest

from fleetsync.api import CONDITION_FALSE, CONDITION_TRUE, ServicePort, find_status_condition
from fleetsync.api.types import (
    SERVICE_EXPORT_VALID,
    SERVICE_TYPE_EXTERNAL_NAME,
    InternalServiceExport,
    Service,
    ServiceExport,
)
from fleetsync.controllers.controller import Request
from fleetsync.controllers.serviceexport import (
    REASON_SERVICE_IS_VALID,
    REASON_SOURCE_INELIGIBLE,
    REASON_SOURCE_NOT_FOUND,
    SERVICE_EXPORT_CLEANUP_FINALIZER,
    ServiceExportReconciler,
    export_service_port,
    is_service_eligible_for_export,
)
from fleetsync.controllers.uniquename import internal_service_export_name
from fleetsync.errors import ConflictError, NotFoundError, TransientStoreError

REQUEST = Request(namespace="work", name="svc-1")


async def get_projection(reconciler, hub_store):
    return await hub_store.get(
        InternalServiceExport,
        reconciler.hub_namespace,
        internal_service_export_name("work", "svc-1"),
    )


async def projection_exists(reconciler, hub_store):
    try:
        await get_projection(reconciler, hub_store)
    except NotFoundError:
        return False
    return True


def valid_condition(svc_export):
    return find_status_condition(svc_export.status.conditions, SERVICE_EXPORT_VALID)


class TestEligibility:
    """Test the default eligibility policy and port projection."""

    def test_eligible(self, make_service):
        """Test ClusterIP Services are eligible."""
        assert is_service_eligible_for_export(make_service())

    def test_headless_ineligible(self, make_service):
        """Test headless Services are not eligible."""
        assert not is_service_eligible_for_export(make_service(cluster_ip="None"))

    def test_external_name_ineligible(self, make_service):
        """Test ExternalName Services are not eligible."""
        assert not is_service_eligible_for_export(
            make_service(service_type=SERVICE_TYPE_EXTERNAL_NAME, cluster_ip="")
        )

    def test_export_port_defaults(self):
        """Test an unset target port falls back to the port."""
        exported = export_service_port(ServicePort(name="http", protocol="", port=80))

        assert exported.target_port == 80
        assert exported.protocol == "TCP"

    def test_export_named_target_port(self):
        """Test a named target port is kept."""
        exported = export_service_port(ServicePort(name="dns", protocol="UDP", port=53, target_port="dns"))

        assert exported.target_port == "dns"
        assert exported.protocol == "UDP"


class TestServiceExportReconciler:
    """Test ServiceExportReconciler."""

    @pytest.mark.asyncio
    async def test_missing_intent(self, service_export_reconciler, hub_store):
        """Test a missing ServiceExport is a no-op."""
        await service_export_reconciler.reconcile(REQUEST)

        assert await hub_store.list(InternalServiceExport) == []

    @pytest.mark.asyncio
    async def test_source_not_found(self, service_export_reconciler, member_store, hub_store, make_service_export):
        """Test a ServiceExport without a Service is marked invalid."""
        await member_store.create(make_service_export())

        await service_export_reconciler.reconcile(REQUEST)

        svc_export = await member_store.get(ServiceExport, "work", "svc-1")
        condition = valid_condition(svc_export)
        assert condition.status == CONDITION_FALSE
        assert condition.reason == REASON_SOURCE_NOT_FOUND
        assert not svc_export.metadata.has_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)
        assert await hub_store.list(InternalServiceExport) == []

    @pytest.mark.asyncio
    async def test_export(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test an eligible Service is exported."""
        svc = await member_store.create(make_service())
        await member_store.create(make_service_export())

        await service_export_reconciler.reconcile(REQUEST)

        svc_export = await member_store.get(ServiceExport, "work", "svc-1")
        assert svc_export.metadata.has_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)
        condition = valid_condition(svc_export)
        assert condition.status == CONDITION_TRUE
        assert condition.reason == REASON_SERVICE_IS_VALID

        projection = await get_projection(service_export_reconciler, hub_store)
        assert projection.metadata.namespace == "fleet-member-member-1"
        assert [(p.name, p.protocol, p.port, p.target_port) for p in projection.spec.ports] == [
            ("http", "TCP", 80, 8080),
            ("dns", "UDP", 53, "dns"),
        ]
        reference = projection.spec.service_reference
        assert reference.cluster_id == "member-1"
        assert reference.kind == "Service"
        assert (reference.namespace, reference.name) == ("work", "svc-1")
        assert reference.uid == svc.metadata.uid
        assert reference.resource_version == svc.metadata.resource_version

    @pytest.mark.asyncio
    async def test_export_idempotent(
        self, service_export_reconciler, member_store, hub_store, scheme, make_service, make_service_export,
    ):
        """Test a second pass with no changes writes nothing."""
        await member_store.create(make_service())
        await member_store.create(make_service_export())

        await service_export_reconciler.reconcile(REQUEST)
        first_projection = await get_projection(service_export_reconciler, hub_store)
        first_export = await member_store.get(ServiceExport, "work", "svc-1")

        await service_export_reconciler.reconcile(REQUEST)
        second_projection = await get_projection(service_export_reconciler, hub_store)
        second_export = await member_store.get(ServiceExport, "work", "svc-1")

        assert scheme.encode(second_projection) == scheme.encode(first_projection)
        assert second_export.metadata.resource_version == first_export.metadata.resource_version

    @pytest.mark.asyncio
    async def test_port_change_updates_projection(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test the projection follows Service port changes."""
        await member_store.create(make_service())
        await member_store.create(make_service_export())
        await service_export_reconciler.reconcile(REQUEST)

        svc = await member_store.get(Service, "work", "svc-1")
        svc.spec.ports = [ServicePort(name="grpc", protocol="TCP", port=9090)]
        await member_store.update(svc)
        await service_export_reconciler.reconcile(REQUEST)

        projection = await get_projection(service_export_reconciler, hub_store)
        assert [(p.name, p.port, p.target_port) for p in projection.spec.ports] == [("grpc", 9090, 9090)]
        assert projection.spec.service_reference.generation == 2

    @pytest.mark.asyncio
    async def test_intent_deleted_after_export(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test deleting an exported ServiceExport tears the projection down."""
        await member_store.create(make_service())
        await member_store.create(make_service_export())
        await service_export_reconciler.reconcile(REQUEST)

        await member_store.delete(ServiceExport, "work", "svc-1")
        deleting = await member_store.get(ServiceExport, "work", "svc-1")
        assert deleting.metadata.is_deleting()

        await service_export_reconciler.reconcile(REQUEST)

        assert not await projection_exists(service_export_reconciler, hub_store)
        with pytest.raises(NotFoundError):
            await member_store.get(ServiceExport, "work", "svc-1")

    @pytest.mark.asyncio
    async def test_intent_deleted_never_exported(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test a ServiceExport held by another finalizer is left alone."""
        await member_store.create(make_service())
        svc_export = make_service_export()
        svc_export.metadata.finalizers = ["test/hold"]
        await member_store.create(svc_export)
        await member_store.delete(ServiceExport, "work", "svc-1")

        await service_export_reconciler.reconcile(REQUEST)

        deleting = await member_store.get(ServiceExport, "work", "svc-1")
        assert deleting.metadata.finalizers == ["test/hold"]
        assert deleting.status.conditions == []
        assert await hub_store.list(InternalServiceExport) == []

    @pytest.mark.asyncio
    async def test_service_deleted_after_export(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test a Service removed after export is unexported and marked not found."""
        await member_store.create(make_service())
        await member_store.create(make_service_export())
        await service_export_reconciler.reconcile(REQUEST)

        await member_store.delete(Service, "work", "svc-1")
        await service_export_reconciler.reconcile(REQUEST)

        svc_export = await member_store.get(ServiceExport, "work", "svc-1")
        assert not svc_export.metadata.has_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)
        assert valid_condition(svc_export).reason == REASON_SOURCE_NOT_FOUND
        assert not await projection_exists(service_export_reconciler, hub_store)

    @pytest.mark.asyncio
    async def test_ineligible_service(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test a headless Service is not exported."""
        await member_store.create(make_service(cluster_ip="None"))
        await member_store.create(make_service_export())

        await service_export_reconciler.reconcile(REQUEST)

        svc_export = await member_store.get(ServiceExport, "work", "svc-1")
        condition = valid_condition(svc_export)
        assert condition.status == CONDITION_FALSE
        assert condition.reason == REASON_SOURCE_INELIGIBLE
        assert not svc_export.metadata.has_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)
        assert await hub_store.list(InternalServiceExport) == []

    @pytest.mark.asyncio
    async def test_service_becomes_ineligible(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test a Service that turns ineligible is unexported."""
        await member_store.create(make_service())
        await member_store.create(make_service_export())
        await service_export_reconciler.reconcile(REQUEST)

        svc = await member_store.get(Service, "work", "svc-1")
        svc.spec.type = SERVICE_TYPE_EXTERNAL_NAME
        await member_store.update(svc)
        await service_export_reconciler.reconcile(REQUEST)

        svc_export = await member_store.get(ServiceExport, "work", "svc-1")
        assert valid_condition(svc_export).reason == REASON_SOURCE_INELIGIBLE
        assert not svc_export.metadata.has_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)
        assert not await projection_exists(service_export_reconciler, hub_store)

    @pytest.mark.asyncio
    async def test_custom_eligibility_policy(self, member_store, hub_store, make_service, make_service_export):
        """Test an injected eligibility policy replaces the default."""
        reconciler = ServiceExportReconciler(
            member_store=member_store,
            hub_store=hub_store,
            hub_namespace="fleet-member-member-1",
            member_cluster_id="member-1",
            is_eligible=lambda svc: svc.metadata.labels.get("export") == "yes",
        )
        await member_store.create(make_service())
        await member_store.create(make_service_export())

        await reconciler.reconcile(REQUEST)

        svc_export = await member_store.get(ServiceExport, "work", "svc-1")
        assert valid_condition(svc_export).reason == REASON_SOURCE_INELIGIBLE

    @pytest.mark.asyncio
    async def test_hub_create_failure(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test a failed hub write leaves the finalizer and no projection, then recovers."""
        await member_store.create(make_service())
        await member_store.create(make_service_export())
        hub_store.fail_next("create", TransientStoreError("hub unavailable"), kind=InternalServiceExport)

        with pytest.raises(TransientStoreError):
            await service_export_reconciler.reconcile(REQUEST)

        svc_export = await member_store.get(ServiceExport, "work", "svc-1")
        assert svc_export.metadata.has_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)
        assert valid_condition(svc_export) is None
        assert not await projection_exists(service_export_reconciler, hub_store)

        await service_export_reconciler.reconcile(REQUEST)

        assert await projection_exists(service_export_reconciler, hub_store)

    @pytest.mark.asyncio
    async def test_unexport_after_failed_first_export(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test deletion completes when the projection was never created."""
        await member_store.create(make_service())
        await member_store.create(make_service_export())
        hub_store.fail_next("create", TransientStoreError("hub unavailable"), kind=InternalServiceExport)
        with pytest.raises(TransientStoreError):
            await service_export_reconciler.reconcile(REQUEST)

        await member_store.delete(ServiceExport, "work", "svc-1")
        await service_export_reconciler.reconcile(REQUEST)

        with pytest.raises(NotFoundError):
            await member_store.get(ServiceExport, "work", "svc-1")

    @pytest.mark.asyncio
    async def test_crash_after_hub_delete(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test a pass interrupted after the hub delete is completed by the retry."""
        await member_store.create(make_service())
        await member_store.create(make_service_export())
        await service_export_reconciler.reconcile(REQUEST)
        await member_store.delete(ServiceExport, "work", "svc-1")
        member_store.fail_next("update", TransientStoreError("member unavailable"), kind=ServiceExport)

        with pytest.raises(TransientStoreError):
            await service_export_reconciler.reconcile(REQUEST)

        assert not await projection_exists(service_export_reconciler, hub_store)
        deleting = await member_store.get(ServiceExport, "work", "svc-1")
        assert deleting.metadata.has_finalizer(SERVICE_EXPORT_CLEANUP_FINALIZER)

        await service_export_reconciler.reconcile(REQUEST)

        with pytest.raises(NotFoundError):
            await member_store.get(ServiceExport, "work", "svc-1")

    @pytest.mark.asyncio
    async def test_conflict_propagates(
        self, service_export_reconciler, member_store, hub_store, make_service, make_service_export,
    ):
        """Test a write conflict fails the pass without touching the hub."""
        await member_store.create(make_service())
        await member_store.create(make_service_export())
        member_store.fail_next("update", ConflictError("stale"), kind=ServiceExport)

        with pytest.raises(ConflictError):
            await service_export_reconciler.reconcile(REQUEST)

        assert await hub_store.list(InternalServiceExport) == []
