"""
Object store contract consumed by the reconcilers.

Two instances are used at runtime: one scoped to the member cluster and one
scoped to the hub cluster. Every object handed out by a store is a snapshot
owned by the caller; mutating it never changes stored state until it is
written back with create() or update().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Type, TypeVar

from fleetsync.api.types import Resource

T = TypeVar("T", bound=Resource)


class EventType(str, Enum):
    """Kinds of change notification."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass
class WatchEvent:
    """
    A change notification.

    Attributes:
        type: What happened
        object: State after the change (last known state for DELETED)
        old_object: State before the change, None for ADDED
    """
    type: EventType
    object: Resource
    old_object: Optional[Resource] = None


WatchHandler = Callable[[WatchEvent], Awaitable[None]]


class ObjectStore(ABC):
    """
    Abstract async object store with optimistic concurrency.

    Writes carry ``metadata.resource_version``; a stale version fails with
    ConflictError. Absence is reported with NotFoundError.
    """

    @abstractmethod
    async def get(self, cls: Type[T], namespace: str, name: str) -> T:
        """
        Get an object.

        Raises:
            NotFoundError: If the object does not exist
        """

    @abstractmethod
    async def list(
        self,
        cls: Type[T],
        namespace: Optional[str] = None,
        label_selector: Optional[Dict[str, str]] = None,
    ) -> List[T]:
        """
        List objects of a kind.

        Args:
            cls: Resource class naming the kind
            namespace: Restrict to one namespace; None lists all namespaces
            label_selector: Equality selector every returned object matches

        Returns:
            Matching objects ordered by namespace and name
        """

    @abstractmethod
    async def create(self, obj: T) -> T:
        """
        Create an object.

        Raises:
            AlreadyExistsError: If an object with the same key exists
        """

    @abstractmethod
    async def update(self, obj: T) -> T:
        """
        Replace an object.

        Raises:
            NotFoundError: If the object does not exist
            ConflictError: If the resource version is stale
        """

    @abstractmethod
    async def delete(self, cls: Type[Resource], namespace: str, name: str) -> None:
        """
        Request deletion of an object.

        Objects with finalizers are only marked for deletion.

        Raises:
            NotFoundError: If the object does not exist
        """

    @abstractmethod
    def watch(self, cls: Type[Resource], handler: WatchHandler) -> None:
        """
        Subscribe to change notifications for a kind.

        Args:
            cls: Resource class naming the kind
            handler: Coroutine function called once per event
        """
