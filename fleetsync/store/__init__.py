"""
Object store contract and its in-memory implementation.
"""

from fleetsync.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StoreError,
    TransientStoreError,
    UnknownKindError,
)
from fleetsync.store.base import EventType, ObjectStore, WatchEvent, WatchHandler
from fleetsync.store.memory import InMemoryObjectStore

__all__ = [
    # Contract
    "ObjectStore",
    "EventType",
    "WatchEvent",
    "WatchHandler",
    # Implementations
    "InMemoryObjectStore",
    # Errors
    "StoreError",
    "NotFoundError",
    "ConflictError",
    "AlreadyExistsError",
    "TransientStoreError",
    "UnknownKindError",
]
