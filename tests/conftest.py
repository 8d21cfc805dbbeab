"""Shared fixtures for fleetsync tests."""

from typing import Dict, List, Optional

import pytest

from fleetsync.api import (
    Condition,
    Endpoint,
    EndpointConditions,
    EndpointPort,
    EndpointSlice,
    ObjectMeta,
    Service,
    ServiceExport,
    ServicePort,
    ServiceSpec,
    default_scheme,
)
from fleetsync.api.types import LABEL_FLEET_UNIQUE_NAME, LABEL_SERVICE_NAME
from fleetsync.controllers import EndpointSliceReconciler, ServiceExportReconciler
from fleetsync.store import InMemoryObjectStore

MEMBER_CLUSTER_ID = "member-1"
HUB_NAMESPACE = "fleet-member-member-1"
NAMESPACE = "work"


@pytest.fixture
def scheme():
    """Create a scheme with every kind registered."""
    return default_scheme()


@pytest.fixture
def member_store(scheme):
    """Create member cluster store."""
    return InMemoryObjectStore(scheme, name="member")


@pytest.fixture
def hub_store(scheme):
    """Create hub cluster store."""
    return InMemoryObjectStore(scheme, name="hub")


@pytest.fixture
def make_service():
    """Factory for Services."""
    def factory(
        name: str = "svc-1",
        namespace: str = NAMESPACE,
        ports: Optional[List[ServicePort]] = None,
        service_type: str = "ClusterIP",
        cluster_ip: str = "10.0.0.10",
    ) -> Service:
        if ports is None:
            ports = [
                ServicePort(name="http", protocol="TCP", port=80, target_port=8080),
                ServicePort(name="dns", protocol="UDP", port=53, target_port="dns"),
            ]
        return Service(
            metadata=ObjectMeta(namespace=namespace, name=name),
            spec=ServiceSpec(type=service_type, cluster_ip=cluster_ip, ports=ports),
        )
    return factory


@pytest.fixture
def make_service_export():
    """Factory for ServiceExports."""
    def factory(
        name: str = "svc-1",
        namespace: str = NAMESPACE,
        conditions: Optional[List[Condition]] = None,
    ) -> ServiceExport:
        svc_export = ServiceExport(metadata=ObjectMeta(namespace=namespace, name=name))
        svc_export.status.conditions = list(conditions or [])
        return svc_export
    return factory


@pytest.fixture
def make_endpoint_slice():
    """Factory for EndpointSlices."""
    def factory(
        name: str = "svc-1-abcde",
        namespace: str = NAMESPACE,
        service_name: Optional[str] = "svc-1",
        unique_name: Optional[str] = None,
        address_type: str = "IPv4",
    ) -> EndpointSlice:
        labels: Dict[str, str] = {}
        if service_name is not None:
            labels[LABEL_SERVICE_NAME] = service_name
        if unique_name is not None:
            labels[LABEL_FLEET_UNIQUE_NAME] = unique_name
        return EndpointSlice(
            metadata=ObjectMeta(namespace=namespace, name=name, labels=labels),
            address_type=address_type,
            endpoints=[
                Endpoint(addresses=["10.1.0.1"], conditions=EndpointConditions(ready=True)),
                Endpoint(addresses=["10.1.0.2"], conditions=EndpointConditions(ready=False)),
                Endpoint(addresses=["10.1.0.3"]),
            ],
            ports=[EndpointPort(name="http", protocol="TCP", port=8080)],
        )
    return factory


@pytest.fixture
def service_export_reconciler(member_store, hub_store):
    """Create ServiceExport reconciler."""
    return ServiceExportReconciler(
        member_store=member_store,
        hub_store=hub_store,
        hub_namespace=HUB_NAMESPACE,
        member_cluster_id=MEMBER_CLUSTER_ID,
    )


@pytest.fixture
def endpoint_slice_reconciler(member_store, hub_store):
    """Create EndpointSlice reconciler."""
    return EndpointSliceReconciler(
        member_cluster_id=MEMBER_CLUSTER_ID,
        member_store=member_store,
        hub_store=hub_store,
        hub_namespace=HUB_NAMESPACE,
    )
