"""
Controller runner: drains a work queue into a reconciler.

Each controller owns one WorkQueue and a pool of asyncio worker tasks.
The queue guarantees that one key is never reconciled by two workers at
once; different keys proceed concurrently.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Type

from fleetsync.api.types import Resource
from fleetsync.controllers.retry import RetryConfig, classify_error
from fleetsync.controllers.workqueue import WorkQueue
from fleetsync.store.base import ObjectStore, WatchHandler
from fleetsync.utils.logging import get_logger, reconcile_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class Request:
    """
    Identity of one object to reconcile.

    Attributes:
        namespace: Object namespace
        name: Object name
    """
    namespace: str
    name: str

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_key(cls, key: str) -> "Request":
        """
        Parse a "namespace/name" key.

        Raises:
            ValueError: If the key has no namespace separator
        """
        namespace, sep, name = key.partition("/")
        if not sep or not name:
            raise ValueError(f"invalid object key {key!r}")
        return cls(namespace=namespace, name=name)


class Reconciler(ABC):
    """Brings the world in line with one object's desired state."""

    @abstractmethod
    async def reconcile(self, request: Request) -> None:
        """
        Run one level-triggered reconciliation pass.

        Raises:
            Exception: Any failure; the key is requeued with backoff
        """


class Controller:
    """
    Runs a reconciler over a work queue.

    Features:
    - Configurable worker pool
    - Requeue with per-key exponential backoff on failure
    - Failure counts reset on success
    """

    def __init__(
        self,
        name: str,
        reconciler: Reconciler,
        workers: int = 1,
        retry_config: Optional[RetryConfig] = None,
    ):
        """
        Initialize controller.

        Args:
            name: Controller name
            reconciler: Reconciler invoked once per dequeued key
            workers: Number of concurrent workers
            retry_config: Backoff configuration for failed keys
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")

        self.name = name
        self.reconciler = reconciler
        self.workers = workers
        self.queue = WorkQueue(name, retry_config)

        self._tasks: List[asyncio.Task] = []
        self._running = False

        logger.info(
            "Controller initialized",
            controller=name,
            workers=workers,
        )

    def watch(self, store: ObjectStore, cls: Type[Resource], handler: WatchHandler) -> None:
        """
        Feed change notifications for a kind into this controller.

        Args:
            store: Store to watch
            cls: Resource class naming the kind
            handler: Event handler that enqueues keys on self.queue
        """
        store.watch(cls, handler)

    async def start(self) -> None:
        """Start worker tasks."""
        if self._running:
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker_loop(worker_id), name=f"{self.name}-worker-{worker_id}")
            for worker_id in range(self.workers)
        ]

        logger.info("Controller started", controller=self.name)

    async def stop(self) -> None:
        """Stop accepting work and cancel worker tasks."""
        self._running = False
        self.queue.shut_down()

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        logger.info("Controller stopped", controller=self.name)

    async def _worker_loop(self, worker_id: int) -> None:
        while self._running and not self.queue.shutting_down:
            if not await self.process_next_item():
                break

    async def process_next_item(self) -> bool:
        """
        Take one key from the queue and reconcile it.

        Returns:
            False once the queue has shut down, True otherwise
        """
        key = await self.queue.get()
        if key is None:
            return False

        try:
            await self._reconcile_key(key)
        finally:
            self.queue.done(key)
        return True

    async def _reconcile_key(self, key: str) -> None:
        try:
            request = Request.from_key(key)
        except ValueError as e:
            logger.error("Dropping malformed key", controller=self.name, key=key, error=str(e))
            self.queue.forget(key)
            return

        with reconcile_context(self.name, key):
            try:
                await self.reconciler.reconcile(request)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                kind = classify_error(e)
                backoff_ms = self.queue.add_rate_limited(key)
                log = logger.warning if kind == "retryable" else logger.error
                log(
                    "Reconciliation failed, requeueing",
                    error=str(e),
                    error_type=type(e).__name__,
                    classification=kind,
                    backoff_ms=backoff_ms,
                    exc_info=kind != "retryable",
                )
            else:
                self.queue.forget(key)
