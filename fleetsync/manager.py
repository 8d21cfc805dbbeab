"""
Manager wiring the export controllers to the member and hub stores.

Process bootstrapping (building store clients, signal handling) is left to
the embedding program; the manager takes ready stores and a Config.
"""

from typing import List, Optional

from fleetsync.api.types import EndpointSlice, Service, ServiceExport
from fleetsync.controllers.controller import Controller
from fleetsync.controllers.endpointslice import EndpointSliceReconciler, UnexportablePolicy
from fleetsync.controllers.handlers import (
    EnqueueEndpointSlicesForServiceExport,
    EnqueueRequestForObject,
    ServiceEventHandler,
    ServiceExportEventHandler,
)
from fleetsync.controllers.retry import RetryConfig
from fleetsync.controllers.serviceexport import ServiceEligibilityPolicy, ServiceExportReconciler
from fleetsync.store.base import ObjectStore
from fleetsync.utils.config import Config, ConfigError
from fleetsync.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")


class Manager:
    """
    Owns the ServiceExport and EndpointSlice controllers of one member cluster.

    Watches:
    - ServiceExport controller: ServiceExports (creation, deletion) and
      Services (export-relevant changes)
    - EndpointSlice controller: EndpointSlices (every change) and
      ServiceExports (fanned out to the slices of the same Service)
    """

    def __init__(
        self,
        config: Config,
        member_store: ObjectStore,
        hub_store: ObjectStore,
        is_service_eligible: Optional[ServiceEligibilityPolicy] = None,
        is_endpoint_slice_unexportable: Optional[UnexportablePolicy] = None,
    ):
        """
        Initialize manager.

        Args:
            config: Configuration; member.cluster_id and hub.namespace are required
                and the logging section configures structured logging
            member_store: Member cluster store
            hub_store: Hub cluster store
            is_service_eligible: Service eligibility policy override
            is_endpoint_slice_unexportable: EndpointSlice unexportable policy override

        Raises:
            ConfigError: If required configuration is missing or invalid
        """
        self.member_cluster_id = config.require("member.cluster_id")
        self.hub_namespace = config.require("hub.namespace")
        self.member_store = member_store
        self.hub_store = hub_store

        log_level = str(config.get("logging.level", "INFO")).upper()
        log_format = str(config.get("logging.format", "json")).lower()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"invalid logging.level: {log_level}")
        if log_format not in LOG_FORMATS:
            raise ConfigError(f"invalid logging.format: {log_format}")
        configure_logging(log_level=log_level, log_format=log_format, cluster_id=self.member_cluster_id)

        try:
            workers = int(config.get("controller.workers", 1))
            retry_config = RetryConfig(
                retry_backoff_ms=int(config.get("controller.retry_backoff_ms", 5)),
                retry_backoff_max_ms=int(config.get("controller.retry_backoff_max_ms", 1000000)),
                retry_jitter_ms=int(config.get("controller.retry_jitter_ms", 20)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid controller configuration: {e}") from e

        self.service_export_controller = Controller(
            "serviceexport",
            ServiceExportReconciler(
                member_store=member_store,
                hub_store=hub_store,
                hub_namespace=self.hub_namespace,
                member_cluster_id=self.member_cluster_id,
                is_eligible=is_service_eligible,
            ),
            workers=workers,
            retry_config=retry_config,
        )
        self.endpoint_slice_controller = Controller(
            "endpointslice",
            EndpointSliceReconciler(
                member_cluster_id=self.member_cluster_id,
                member_store=member_store,
                hub_store=hub_store,
                hub_namespace=self.hub_namespace,
                is_permanently_unexportable=is_endpoint_slice_unexportable,
            ),
            workers=workers,
            retry_config=retry_config,
        )

        self._register_watches()
        self._running = False

        logger.info(
            "Manager initialized",
            member_cluster_id=self.member_cluster_id,
            hub_namespace=self.hub_namespace,
            workers=workers,
        )

    @property
    def controllers(self) -> List[Controller]:
        return [self.service_export_controller, self.endpoint_slice_controller]

    def _register_watches(self) -> None:
        svc_export_ctrl = self.service_export_controller
        svc_export_ctrl.watch(self.member_store, ServiceExport, ServiceExportEventHandler(svc_export_ctrl.queue))
        svc_export_ctrl.watch(self.member_store, Service, ServiceEventHandler(svc_export_ctrl.queue))

        slice_ctrl = self.endpoint_slice_controller
        slice_ctrl.watch(self.member_store, EndpointSlice, EnqueueRequestForObject(slice_ctrl.queue))
        slice_ctrl.watch(
            self.member_store,
            ServiceExport,
            EnqueueEndpointSlicesForServiceExport(slice_ctrl.queue, self.member_store),
        )

    async def _initial_sync(self) -> None:
        """Enqueue every existing object, as if each had just been added."""
        for svc_export in await self.member_store.list(ServiceExport):
            self.service_export_controller.queue.add(svc_export.key())

        for endpoint_slice in await self.member_store.list(EndpointSlice):
            self.endpoint_slice_controller.queue.add(endpoint_slice.key())

    async def start(self) -> None:
        """Queue existing objects and start both controllers."""
        if self._running:
            return

        self._running = True
        await self._initial_sync()
        for controller in self.controllers:
            await controller.start()

        logger.info("Manager started", member_cluster_id=self.member_cluster_id)

    async def stop(self) -> None:
        """Stop both controllers."""
        self._running = False
        for controller in self.controllers:
            await controller.stop()

        logger.info("Manager stopped", member_cluster_id=self.member_cluster_id)
