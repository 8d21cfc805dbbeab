"""
Resource kinds exchanged between member and hub clusters.

Member-side kinds:
- Service: the workload-facing object being exported
- ServiceExport: a user's request to export the same-named Service
- EndpointSlice: a set of endpoints backing a Service

Hub-side projections, written only by this package:
- InternalServiceExport: the exported Service's ports
- EndpointSliceExport: the exported EndpointSlice's endpoints and ports
"""

from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Union

from fleetsync.api.meta import Condition, ObjectMeta

GROUP = "networking.fleetsync.io"
FLEET_API_VERSION = f"{GROUP}/v1alpha1"

# Condition types on a ServiceExport.
SERVICE_EXPORT_VALID = "Valid"
SERVICE_EXPORT_CONFLICT = "Conflict"

# Well-known labels.
LABEL_SERVICE_NAME = "kubernetes.io/service-name"
LABEL_FLEET_UNIQUE_NAME = f"{GROUP}/fleet-unique-name"

# Service types.
SERVICE_TYPE_CLUSTER_IP = "ClusterIP"
SERVICE_TYPE_EXTERNAL_NAME = "ExternalName"
CLUSTER_IP_NONE = "None"

# EndpointSlice address types.
ADDRESS_TYPE_IPV4 = "IPv4"


@dataclass
class Resource:
    """Base for every stored kind."""
    KIND: ClassVar[str] = ""
    API_VERSION: ClassVar[str] = ""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)

    @property
    def kind(self) -> str:
        return self.KIND

    @property
    def api_version(self) -> str:
        return self.API_VERSION

    def key(self) -> str:
        return self.metadata.key()


@dataclass
class ExportedObjectReference:
    """
    Provenance of a hub projection.

    Downstream consumers compare resource_version and generation against
    earlier projections of the same object to detect stale data.
    """
    cluster_id: str = field(default="", metadata={"json": "clusterID"})
    api_version: str = ""
    kind: str = ""
    namespace: str = ""
    name: str = ""
    resource_version: str = ""
    generation: int = 0
    uid: str = ""


# Member-side kinds


@dataclass
class ServicePort:
    name: str = ""
    protocol: str = "TCP"
    app_protocol: Optional[str] = None
    port: int = 0
    target_port: Optional[Union[int, str]] = None
    node_port: int = 0


@dataclass
class ServiceSpec:
    type: str = SERVICE_TYPE_CLUSTER_IP
    cluster_ip: str = field(default="", metadata={"json": "clusterIP"})
    ports: List[ServicePort] = field(default_factory=list)


@dataclass
class Service(Resource):
    KIND: ClassVar[str] = "Service"
    API_VERSION: ClassVar[str] = "v1"

    spec: ServiceSpec = field(default_factory=ServiceSpec)


@dataclass
class ServiceExportStatus:
    conditions: List[Condition] = field(default_factory=list)


@dataclass
class ServiceExport(Resource):
    """
    Request to export the Service with the same namespace and name.

    The status condition list holds at most one condition per type.
    """
    KIND: ClassVar[str] = "ServiceExport"
    API_VERSION: ClassVar[str] = FLEET_API_VERSION

    status: ServiceExportStatus = field(default_factory=ServiceExportStatus)


@dataclass
class EndpointConditions:
    ready: Optional[bool] = None
    serving: Optional[bool] = None
    terminating: Optional[bool] = None


@dataclass
class Endpoint:
    addresses: List[str] = field(default_factory=list)
    conditions: EndpointConditions = field(default_factory=EndpointConditions)
    hostname: Optional[str] = None
    node_name: Optional[str] = None
    zone: Optional[str] = None


@dataclass
class EndpointPort:
    name: Optional[str] = None
    protocol: str = "TCP"
    port: Optional[int] = None
    app_protocol: Optional[str] = None


@dataclass
class EndpointSlice(Resource):
    KIND: ClassVar[str] = "EndpointSlice"
    API_VERSION: ClassVar[str] = "discovery.k8s.io/v1"

    address_type: str = ADDRESS_TYPE_IPV4
    endpoints: List[Endpoint] = field(default_factory=list)
    ports: List[EndpointPort] = field(default_factory=list)


# Hub-side projections


@dataclass
class ExportedServicePort:
    """A Service port as published to the hub."""
    name: str = ""
    protocol: str = "TCP"
    app_protocol: Optional[str] = None
    port: int = 0
    target_port: Union[int, str] = 0


@dataclass
class InternalServiceExportSpec:
    ports: List[ExportedServicePort] = field(default_factory=list)
    service_reference: ExportedObjectReference = field(default_factory=ExportedObjectReference)


@dataclass
class InternalServiceExportStatus:
    conditions: List[Condition] = field(default_factory=list)


@dataclass
class InternalServiceExport(Resource):
    KIND: ClassVar[str] = "InternalServiceExport"
    API_VERSION: ClassVar[str] = FLEET_API_VERSION

    spec: InternalServiceExportSpec = field(default_factory=InternalServiceExportSpec)
    status: InternalServiceExportStatus = field(default_factory=InternalServiceExportStatus)


@dataclass
class ExportedEndpoint:
    addresses: List[str] = field(default_factory=list)


@dataclass
class EndpointSliceExportSpec:
    address_type: str = ADDRESS_TYPE_IPV4
    endpoints: List[ExportedEndpoint] = field(default_factory=list)
    ports: List[EndpointPort] = field(default_factory=list)
    endpoint_slice_reference: ExportedObjectReference = field(default_factory=ExportedObjectReference)


@dataclass
class EndpointSliceExport(Resource):
    KIND: ClassVar[str] = "EndpointSliceExport"
    API_VERSION: ClassVar[str] = FLEET_API_VERSION

    spec: EndpointSliceExportSpec = field(default_factory=EndpointSliceExportSpec)


ALL_KINDS = (
    Service,
    ServiceExport,
    EndpointSlice,
    InternalServiceExport,
    EndpointSliceExport,
)
