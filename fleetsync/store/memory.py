"""
In-memory object store.

Implements the full ObjectStore contract inside one process:
- Optimistic concurrency on resource versions
- Finalizer-gated deletion
- Equality label selectors
- Change notifications to registered watch handlers
- One-shot fault injection for exercising error paths

Objects are kept in their encoded manifest form, so every read decodes a
fresh snapshot and no caller ever holds a reference into stored state.
"""

import asyncio
import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Type

from fleetsync.api.meta import now_ms
from fleetsync.api.scheme import Scheme
from fleetsync.api.types import Resource
from fleetsync.errors import AlreadyExistsError, ConflictError, NotFoundError, UnknownKindError
from fleetsync.store.base import EventType, ObjectStore, T, WatchEvent, WatchHandler
from fleetsync.utils.logging import get_logger

logger = get_logger(__name__)

ObjectKey = Tuple[str, str, str]

# Top-level manifest keys that do not count as a spec change.
_NON_SPEC_KEYS = ("apiVersion", "kind", "metadata", "status")


@dataclass
class _Fault:
    operation: str
    kind: Optional[str]
    error: Exception
    remaining: int


class InMemoryObjectStore(ObjectStore):
    """
    Object store backed by a dictionary.

    Example:
        >>> store = InMemoryObjectStore(default_scheme(), name="member")
        >>> created = await store.create(Service(metadata=ObjectMeta(namespace="ns", name="web")))
        >>> created.metadata.resource_version
        '1'
    """

    def __init__(self, scheme: Scheme, name: str = "store"):
        """
        Initialize store.

        Args:
            scheme: Scheme of kinds this store accepts
            name: Store name for logging (e.g. "member", "hub")
        """
        self.scheme = scheme
        self.name = name

        self._objects: Dict[ObjectKey, Dict[str, Any]] = {}
        self._watchers: Dict[str, List[WatchHandler]] = defaultdict(list)
        self._faults: List[_Fault] = []
        self._resource_version = 0
        self._lock = asyncio.Lock()

        logger.info(
            "InMemoryObjectStore initialized",
            store=name,
            kinds=scheme.kinds(),
        )

    def _kind_of(self, cls: Type[Resource]) -> str:
        if not self.scheme.is_registered(cls):
            raise UnknownKindError(f"kind {cls.KIND!r} is not registered with store {self.name}")
        return cls.KIND

    def _next_resource_version(self) -> str:
        self._resource_version += 1
        return str(self._resource_version)

    def _check_fault(self, operation: str, kind: str) -> None:
        for fault in self._faults:
            if fault.operation == operation and fault.kind in (None, kind):
                fault.remaining -= 1
                if fault.remaining <= 0:
                    self._faults.remove(fault)
                raise fault.error

    def fail_next(
        self,
        operation: str,
        error: Exception,
        kind: Optional[Type[Resource]] = None,
        times: int = 1,
    ) -> None:
        """
        Make upcoming calls of an operation raise an error.

        Args:
            operation: One of "get", "list", "create", "update", "delete"
            error: Exception to raise
            kind: Only fail calls for this kind; None fails any kind
            times: Number of calls to fail
        """
        self._faults.append(
            _Fault(
                operation=operation,
                kind=kind.KIND if kind else None,
                error=error,
                remaining=times,
            )
        )

    async def get(self, cls: Type[T], namespace: str, name: str) -> T:
        kind = self._kind_of(cls)
        async with self._lock:
            self._check_fault("get", kind)
            manifest = self._objects.get((kind, namespace, name))
            if manifest is None:
                raise NotFoundError(kind, namespace, name)
            return self.scheme.decode(manifest)

    async def list(
        self,
        cls: Type[T],
        namespace: Optional[str] = None,
        label_selector: Optional[Dict[str, str]] = None,
    ) -> List[T]:
        kind = self._kind_of(cls)
        selector = label_selector or {}
        async with self._lock:
            self._check_fault("list", kind)
            result = []
            for (obj_kind, obj_namespace, obj_name), manifest in sorted(self._objects.items()):
                if obj_kind != kind:
                    continue
                if namespace is not None and obj_namespace != namespace:
                    continue
                labels = manifest["metadata"].get("labels", {})
                if all(labels.get(k) == v for k, v in selector.items()):
                    result.append(self.scheme.decode(manifest))
            return result

    async def create(self, obj: T) -> T:
        kind = self._kind_of(type(obj))
        meta = obj.metadata
        key = (kind, meta.namespace, meta.name)

        async with self._lock:
            self._check_fault("create", kind)
            if not meta.name:
                raise ValueError(f"cannot create {kind} without a name")
            if key in self._objects:
                raise AlreadyExistsError(f"{kind} {meta.namespace}/{meta.name} already exists")

            manifest = self.scheme.encode(obj)
            stored_meta = manifest["metadata"]
            stored_meta["uid"] = str(uuid.uuid4())
            stored_meta["resourceVersion"] = self._next_resource_version()
            stored_meta["generation"] = 1
            stored_meta["creationTimestamp"] = now_ms()
            stored_meta.pop("deletionTimestamp", None)
            self._objects[key] = manifest

        logger.debug(
            "Object created",
            store=self.name,
            kind=kind,
            key=meta.key(),
        )
        await self._notify(kind, EventType.ADDED, manifest, None)
        return self.scheme.decode(manifest)

    async def update(self, obj: T) -> T:
        kind = self._kind_of(type(obj))
        meta = obj.metadata
        key = (kind, meta.namespace, meta.name)

        async with self._lock:
            self._check_fault("update", kind)
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(kind, meta.namespace, meta.name)

            current_meta = current["metadata"]
            if meta.resource_version and meta.resource_version != current_meta["resourceVersion"]:
                raise ConflictError(
                    f"{kind} {meta.namespace}/{meta.name} has been modified: "
                    f"resource version {meta.resource_version} is stale, "
                    f"current is {current_meta['resourceVersion']}"
                )

            manifest = self.scheme.encode(obj)
            stored_meta = manifest["metadata"]
            for preserved in ("uid", "creationTimestamp", "deletionTimestamp"):
                if preserved in current_meta:
                    stored_meta[preserved] = current_meta[preserved]
                else:
                    stored_meta.pop(preserved, None)

            generation = current_meta.get("generation", 1)
            if self._spec_of(manifest) != self._spec_of(current):
                generation += 1
            stored_meta["generation"] = generation
            stored_meta["resourceVersion"] = self._next_resource_version()

            removed = "deletionTimestamp" in stored_meta and not stored_meta.get("finalizers")
            if removed:
                del self._objects[key]
            else:
                self._objects[key] = manifest

        if removed:
            logger.debug(
                "Object removed after last finalizer",
                store=self.name,
                kind=kind,
                key=meta.key(),
            )
            await self._notify(kind, EventType.DELETED, manifest, current)
        else:
            await self._notify(kind, EventType.MODIFIED, manifest, current)
        return self.scheme.decode(manifest)

    async def delete(self, cls: Type[Resource], namespace: str, name: str) -> None:
        kind = self._kind_of(cls)
        key = (kind, namespace, name)

        async with self._lock:
            self._check_fault("delete", kind)
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(kind, namespace, name)

            current_meta = current["metadata"]
            if current_meta.get("finalizers"):
                if "deletionTimestamp" in current_meta:
                    return
                manifest = self.scheme.encode(self.scheme.decode(current))
                manifest["metadata"]["deletionTimestamp"] = now_ms()
                manifest["metadata"]["resourceVersion"] = self._next_resource_version()
                self._objects[key] = manifest
                event_type = EventType.MODIFIED
            else:
                manifest = current
                del self._objects[key]
                event_type = EventType.DELETED

        logger.debug(
            "Object deletion requested",
            store=self.name,
            kind=kind,
            key=f"{namespace}/{name}",
            removed=event_type == EventType.DELETED,
        )
        await self._notify(kind, event_type, manifest, current if event_type == EventType.MODIFIED else None)

    def watch(self, cls: Type[Resource], handler: WatchHandler) -> None:
        kind = self._kind_of(cls)
        self._watchers[kind].append(handler)

        logger.debug(
            "Watch registered",
            store=self.name,
            kind=kind,
            handler=getattr(handler, "__qualname__", type(handler).__name__),
        )

    async def _notify(
        self,
        kind: str,
        event_type: EventType,
        manifest: Dict[str, Any],
        old_manifest: Optional[Dict[str, Any]],
    ) -> None:
        """
        Deliver an event to every handler watching a kind.

        Each handler receives its own decoded snapshots. Called with the
        store lock released so handlers may read from the store.
        """
        for handler in list(self._watchers.get(kind, [])):
            event = WatchEvent(
                type=event_type,
                object=self.scheme.decode(manifest),
                old_object=self.scheme.decode(old_manifest) if old_manifest else None,
            )
            await handler(event)

    @staticmethod
    def _spec_of(manifest: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in manifest.items() if k not in _NON_SPEC_KEYS}
