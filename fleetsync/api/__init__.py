"""
Resource kinds, metadata and the kind registry.
"""

from fleetsync.api.meta import (
    CONDITION_FALSE,
    CONDITION_TRUE,
    CONDITION_UNKNOWN,
    Condition,
    ObjectMeta,
    find_status_condition,
    is_status_condition_true,
    set_status_condition,
)
from fleetsync.api.scheme import Scheme, default_scheme, load_manifests
from fleetsync.api.types import (
    Endpoint,
    EndpointConditions,
    EndpointPort,
    EndpointSlice,
    EndpointSliceExport,
    EndpointSliceExportSpec,
    ExportedEndpoint,
    ExportedObjectReference,
    ExportedServicePort,
    InternalServiceExport,
    InternalServiceExportSpec,
    Resource,
    Service,
    ServiceExport,
    ServicePort,
    ServiceSpec,
)

__all__ = [
    # Metadata
    "ObjectMeta",
    "Condition",
    "CONDITION_TRUE",
    "CONDITION_FALSE",
    "CONDITION_UNKNOWN",
    "find_status_condition",
    "is_status_condition_true",
    "set_status_condition",
    # Registry
    "Scheme",
    "default_scheme",
    "load_manifests",
    # Member-side kinds
    "Resource",
    "Service",
    "ServiceSpec",
    "ServicePort",
    "ServiceExport",
    "EndpointSlice",
    "Endpoint",
    "EndpointConditions",
    "EndpointPort",
    # Hub-side projections
    "InternalServiceExport",
    "InternalServiceExportSpec",
    "ExportedServicePort",
    "EndpointSliceExport",
    "EndpointSliceExportSpec",
    "ExportedEndpoint",
    "ExportedObjectReference",
]
