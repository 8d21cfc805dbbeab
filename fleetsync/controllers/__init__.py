"""
Export controllers and their runtime.

Two reconcilers share one runtime:
- ServiceExportReconciler publishes Services as InternalServiceExports
- EndpointSliceReconciler publishes EndpointSlices as EndpointSliceExports
"""

from fleetsync.controllers.controller import Controller, Reconciler, Request
from fleetsync.controllers.endpointslice import (
    EndpointSliceReconciler,
    ExportAction,
    decide_export_action,
    is_endpoint_slice_permanently_unexportable,
    is_service_export_valid,
)
from fleetsync.controllers.handlers import (
    EnqueueEndpointSlicesForServiceExport,
    EnqueueRequestForObject,
    EventHandler,
    ServiceEventHandler,
    ServiceExportEventHandler,
)
from fleetsync.controllers.retry import RetryConfig
from fleetsync.controllers.serviceexport import (
    SERVICE_EXPORT_CLEANUP_FINALIZER,
    ServiceExportReconciler,
    is_service_eligible_for_export,
)
from fleetsync.controllers.uniquename import fleet_unique_name, internal_service_export_name
from fleetsync.controllers.workqueue import WorkQueue

__all__ = [
    # Runtime
    "Controller",
    "Reconciler",
    "Request",
    "RetryConfig",
    "WorkQueue",
    # Event handlers
    "EventHandler",
    "EnqueueRequestForObject",
    "ServiceExportEventHandler",
    "ServiceEventHandler",
    "EnqueueEndpointSlicesForServiceExport",
    # ServiceExport export
    "ServiceExportReconciler",
    "SERVICE_EXPORT_CLEANUP_FINALIZER",
    "is_service_eligible_for_export",
    # EndpointSlice export
    "EndpointSliceReconciler",
    "ExportAction",
    "decide_export_action",
    "is_endpoint_slice_permanently_unexportable",
    "is_service_export_valid",
    # Naming
    "fleet_unique_name",
    "internal_service_export_name",
]
