"""
Unit tests for AcquiredLockRegistry.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from xactlock import AcquiredLockRegistry, LockAlreadyHeldError, LockRecord, lock_key


def make_record(name: str, level: int = 1) -> LockRecord:
    """Create a LockRecord with a mock session."""
    return LockRecord(
        name=name,
        lock_key=lock_key(name),
        session=MagicMock(),
        nesting_level=level,
        acquired_at=datetime.now(UTC),
    )


@pytest.fixture
def registry() -> AcquiredLockRegistry:
    """Provide an empty registry."""
    return AcquiredLockRegistry()


class TestReservation:
    """Tests for reserve() / cancel()."""

    def test_reserve_marks_pending(self, registry: AcquiredLockRegistry) -> None:
        """A reserved name is pending but not held."""
        registry.reserve("a")

        assert registry.is_pending("a")
        assert "a" not in registry

    def test_double_reserve_raises(self, registry: AcquiredLockRegistry) -> None:
        """A name cannot be reserved twice."""
        registry.reserve("a")

        with pytest.raises(LockAlreadyHeldError) as exc_info:
            registry.reserve("a")

        assert exc_info.value.name == "a"

    def test_reserve_held_name_raises(self, registry: AcquiredLockRegistry) -> None:
        """A held name cannot be reserved."""
        registry.insert(make_record("a"))

        with pytest.raises(LockAlreadyHeldError):
            registry.reserve("a")

    def test_cancel_frees_name(self, registry: AcquiredLockRegistry) -> None:
        """Cancelling a reservation allows reserving again."""
        registry.reserve("a")
        registry.cancel("a")

        assert not registry.is_pending("a")
        registry.reserve("a")

    def test_cancel_unknown_name_is_noop(self, registry: AcquiredLockRegistry) -> None:
        """Cancelling an unreserved name does nothing."""
        registry.cancel("never-reserved")

    def test_insert_consumes_reservation(self, registry: AcquiredLockRegistry) -> None:
        """Inserting a record turns the reservation into a held lock."""
        registry.reserve("a")
        registry.insert(make_record("a"))

        assert not registry.is_pending("a")
        assert "a" in registry


class TestRecords:
    """Tests for insert(), get(), pop() and snapshots."""

    def test_insert_and_get(self, registry: AcquiredLockRegistry) -> None:
        """Inserted records can be looked up by name."""
        record = make_record("a")
        registry.insert(record)

        assert registry.get("a") is record
        assert registry.get("b") is None

    def test_insert_duplicate_raises(self, registry: AcquiredLockRegistry) -> None:
        """A second record under the same name is rejected."""
        registry.insert(make_record("a"))

        with pytest.raises(LockAlreadyHeldError):
            registry.insert(make_record("a"))

    def test_pop_removes(self, registry: AcquiredLockRegistry) -> None:
        """pop() removes and returns the record."""
        record = make_record("a")
        registry.insert(record)

        assert registry.pop("a") is record
        assert registry.pop("a") is None
        assert len(registry) == 0

    def test_names_in_acquisition_order(self, registry: AcquiredLockRegistry) -> None:
        """Snapshots preserve insertion order."""
        for name in ["c", "a", "b"]:
            registry.insert(make_record(name))

        assert registry.names() == ["c", "a", "b"]
        assert [r.name for r in registry.records()] == ["c", "a", "b"]
        assert list(registry) == ["c", "a", "b"]

    def test_snapshot_is_independent(self, registry: AcquiredLockRegistry) -> None:
        """Mutating the registry does not affect a taken snapshot."""
        registry.insert(make_record("a"))
        names = registry.names()
        registry.pop("a")

        assert names == ["a"]

    def test_empty_registry_is_truthy(self, registry: AcquiredLockRegistry) -> None:
        """An empty registry is still truthy."""
        assert len(registry) == 0
        assert registry

    def test_nested_record(self) -> None:
        """Records above level 1 are nested."""
        assert make_record("a", level=2).nested
        assert not make_record("a", level=1).nested


class TestThreadSafety:
    """Tests for concurrent access."""

    def test_concurrent_reservations(self, registry: AcquiredLockRegistry) -> None:
        """Only one of many concurrent reservations of a name succeeds."""
        successes: list[int] = []
        barrier = threading.Barrier(8)

        def worker(i: int) -> None:
            barrier.wait()
            try:
                registry.reserve("contended")
                successes.append(i)
            except LockAlreadyHeldError:
                pass

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(successes) == 1
