"""
Create-or-update and teardown helpers for hub projections.
"""

import copy
from typing import Callable, Type, TypeVar

from fleetsync.api.types import Resource
from fleetsync.errors import NotFoundError
from fleetsync.store.base import ObjectStore

T = TypeVar("T", bound=Resource)

OP_CREATED = "created"
OP_UPDATED = "updated"
OP_UNCHANGED = "unchanged"


async def create_or_update(store: ObjectStore, obj: T, mutate: Callable[[T], None]) -> str:
    """
    Create an object or bring an existing one in line with the desired state.

    The object is looked up by the kind, namespace and name of ``obj``.
    ``mutate`` sets the desired fields on whichever object is written: on
    ``obj`` when it is created, on a snapshot of the stored object when it
    exists. No write is issued when mutate leaves the stored object as it was.

    Args:
        store: Store to write to
        obj: Object carrying the target identity
        mutate: Callback that sets the desired state in place

    Returns:
        "created", "updated" or "unchanged"

    Raises:
        StoreError: Any store error other than the initial NotFoundError
    """
    meta = obj.metadata
    try:
        current = await store.get(type(obj), meta.namespace, meta.name)
    except NotFoundError:
        mutate(obj)
        await store.create(obj)
        return OP_CREATED

    desired = copy.deepcopy(current)
    mutate(desired)
    if desired == current:
        return OP_UNCHANGED

    await store.update(desired)
    return OP_UPDATED


async def delete_ignore_not_found(
    store: ObjectStore,
    cls: Type[Resource],
    namespace: str,
    name: str,
) -> bool:
    """
    Delete an object, treating absence as success.

    Returns:
        True if a delete was issued, False if the object was already gone
    """
    try:
        await store.delete(cls, namespace, name)
    except NotFoundError:
        return False
    return True
