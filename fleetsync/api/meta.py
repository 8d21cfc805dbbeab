"""
Object metadata and status conditions shared by every resource kind.

Timestamps are integer milliseconds since the epoch.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


@dataclass
class ObjectMeta:
    """
    Identity and bookkeeping fields of a stored object.

    Attributes:
        name: Object name, unique within its namespace and kind
        namespace: Object namespace
        uid: Store-assigned unique ID
        resource_version: Optimistic-concurrency token, bumped on every write
        generation: Bumped on every write that changes the object's spec
        labels: Label map, queryable by equality selectors
        annotations: Free-form string annotations
        finalizers: Markers that block final removal while present
        creation_timestamp: Creation time (ms)
        deletion_timestamp: Time deletion was requested (ms), None if live
    """
    name: str = ""
    namespace: str = ""
    uid: str = ""
    resource_version: str = ""
    generation: int = 0
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    finalizers: List[str] = field(default_factory=list)
    creation_timestamp: Optional[int] = None
    deletion_timestamp: Optional[int] = None

    def key(self) -> str:
        """
        Get the object key.

        Returns:
            "namespace/name"
        """
        return f"{self.namespace}/{self.name}"

    def is_deleting(self) -> bool:
        return self.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """
        Add a finalizer if absent.

        Returns:
            True if the finalizer list changed
        """
        if finalizer in self.finalizers:
            return False
        self.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """
        Remove every occurrence of a finalizer.

        Returns:
            True if the finalizer list changed
        """
        kept = [f for f in self.finalizers if f != finalizer]
        changed = len(kept) != len(self.finalizers)
        self.finalizers = kept
        return changed


@dataclass
class Condition:
    """
    One observation of an object's state.

    Attributes:
        type: Condition type, unique within a condition list
        status: "True", "False" or "Unknown"
        reason: CamelCase machine-readable reason
        message: Human-readable detail
        last_transition_time: Time the status last changed (ms)
        observed_generation: Object generation the condition was computed from
    """
    type: str
    status: str = CONDITION_UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: int = 0
    observed_generation: int = 0


def find_status_condition(conditions: List[Condition], condition_type: str) -> Optional[Condition]:
    """
    Find a condition by type.

    Args:
        conditions: Condition list
        condition_type: Condition type

    Returns:
        The condition, or None if no condition of that type exists
    """
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def is_status_condition_true(conditions: List[Condition], condition_type: str) -> bool:
    condition = find_status_condition(conditions, condition_type)
    return condition is not None and condition.status == CONDITION_TRUE


def set_status_condition(conditions: List[Condition], new_condition: Condition) -> bool:
    """
    Set a condition in place, replacing any existing condition of the same type.

    The transition time is only moved when the status changes; a change of
    reason or message alone keeps the original transition time.

    Args:
        conditions: Condition list, modified in place
        new_condition: Condition to set

    Returns:
        True if the list changed
    """
    existing = find_status_condition(conditions, new_condition.type)

    if existing is None:
        if not new_condition.last_transition_time:
            new_condition.last_transition_time = now_ms()
        conditions.append(new_condition)
        return True

    changed = False
    if existing.status != new_condition.status:
        existing.status = new_condition.status
        existing.last_transition_time = new_condition.last_transition_time or now_ms()
        changed = True

    for attr in ("reason", "message", "observed_generation"):
        value = getattr(new_condition, attr)
        if getattr(existing, attr) != value:
            setattr(existing, attr, value)
            changed = True

    return changed
