"""Tests for object metadata and status conditions."""

from fleetsync.api.meta import (
    CONDITION_FALSE,
    CONDITION_TRUE,
    Condition,
    ObjectMeta,
    find_status_condition,
    is_status_condition_true,
    set_status_condition,
)


class TestObjectMeta:
    """Test ObjectMeta."""

    def test_key(self):
        """Test key format."""
        meta = ObjectMeta(namespace="work", name="svc-1")

        assert meta.key() == "work/svc-1"

    def test_add_finalizer_once(self):
        """Test adding a finalizer twice keeps one copy."""
        meta = ObjectMeta(name="a")

        assert meta.add_finalizer("x/cleanup")
        assert not meta.add_finalizer("x/cleanup")
        assert meta.finalizers == ["x/cleanup"]

    def test_remove_finalizer_keeps_others(self):
        """Test removing a finalizer leaves other finalizers in place."""
        meta = ObjectMeta(name="a", finalizers=["other", "x/cleanup"])

        assert meta.remove_finalizer("x/cleanup")
        assert not meta.remove_finalizer("x/cleanup")
        assert meta.finalizers == ["other"]

    def test_is_deleting(self):
        """Test deletion timestamp check."""
        assert not ObjectMeta(name="a").is_deleting()
        assert ObjectMeta(name="a", deletion_timestamp=1).is_deleting()


class TestConditions:
    """Test condition helpers."""

    def test_set_new_condition(self):
        """Test setting a condition on an empty list."""
        conditions = []

        changed = set_status_condition(
            conditions,
            Condition(type="Valid", status=CONDITION_TRUE, reason="Ok"),
        )

        assert changed
        assert len(conditions) == 1
        assert conditions[0].last_transition_time > 0

    def test_set_replaces_same_type(self):
        """Test a new reason replaces the existing condition of that type."""
        conditions = [Condition(type="Valid", status=CONDITION_FALSE, reason="A", last_transition_time=100)]

        changed = set_status_condition(
            conditions,
            Condition(type="Valid", status=CONDITION_FALSE, reason="B"),
        )

        assert changed
        assert len(conditions) == 1
        assert conditions[0].reason == "B"
        # Status did not change, so neither does the transition time
        assert conditions[0].last_transition_time == 100

    def test_status_change_moves_transition_time(self):
        """Test a status flip updates the transition time."""
        conditions = [Condition(type="Valid", status=CONDITION_FALSE, reason="A", last_transition_time=100)]

        set_status_condition(conditions, Condition(type="Valid", status=CONDITION_TRUE, reason="A"))

        assert conditions[0].status == CONDITION_TRUE
        assert conditions[0].last_transition_time > 100

    def test_set_identical_is_noop(self):
        """Test setting an identical condition reports no change."""
        conditions = [Condition(type="Valid", status=CONDITION_TRUE, reason="Ok", message="m")]

        changed = set_status_condition(
            conditions,
            Condition(type="Valid", status=CONDITION_TRUE, reason="Ok", message="m"),
        )

        assert not changed

    def test_other_types_untouched(self):
        """Test setting one type leaves other types alone."""
        conflict = Condition(type="Conflict", status=CONDITION_FALSE, reason="NoConflict")
        conditions = [conflict]

        set_status_condition(conditions, Condition(type="Valid", status=CONDITION_TRUE))

        assert find_status_condition(conditions, "Conflict") is conflict
        assert is_status_condition_true(conditions, "Valid")
        assert not is_status_condition_true(conditions, "Conflict")
        assert not is_status_condition_true(conditions, "Missing")
