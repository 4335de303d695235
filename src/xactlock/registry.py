"""
Bookkeeping of the locks held by one mutex.

The registry is the single source of truth for "what does this mutex hold".
It belongs to exactly one mutex instance and is never shared between
instances or processes.

Besides held records, the registry tracks names whose acquisition is in
progress. A name is reserved before any database work starts, which lets
the mutex reject a second acquisition of the same name instead of silently
replacing (and leaking) the first session.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

from xactlock.exceptions import LockAlreadyHeldError
from xactlock.types import LockRecord

logger = logging.getLogger(__name__)


class AcquiredLockRegistry:
    """
    Mapping from lock name to the record of the lock held under it.

    Thread-Safety:
        All operations are thread-safe and use internal locking. None of the
        methods await, so they are also atomic with respect to the event loop.

    Attributes:
        _records: Held locks by name
        _pending: Names reserved by acquisitions that have not finished
        _lock: Threading lock for thread-safe operations

    Example:
        >>> registry = AcquiredLockRegistry()
        >>> registry.reserve("reports")
        >>> registry.insert(record)
        >>> registry.pop("reports") is record
        True
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._records: dict[str, LockRecord] = {}
        self._pending: set[str] = set()
        self._lock = threading.RLock()

    def reserve(self, name: str) -> None:
        """
        Reserve a name for an acquisition attempt.

        Args:
            name: The lock name

        Raises:
            LockAlreadyHeldError: If the name is held or already reserved
        """
        with self._lock:
            if name in self._records or name in self._pending:
                raise LockAlreadyHeldError(name)
            self._pending.add(name)

    def cancel(self, name: str) -> None:
        """Drop the reservation of a name whose acquisition did not succeed."""
        with self._lock:
            self._pending.discard(name)

    def insert(self, record: LockRecord) -> None:
        """
        Store the record of a successfully acquired lock.

        Consumes the reservation of the record's name, if any.

        Args:
            record: The lock record

        Raises:
            LockAlreadyHeldError: If a record is already stored under the name
        """
        with self._lock:
            if record.name in self._records:
                raise LockAlreadyHeldError(record.name)
            self._pending.discard(record.name)
            self._records[record.name] = record
            logger.debug(
                "Registered lock '%s' (key=%d)",
                record.name,
                record.lock_key,
                extra={"lock_name": record.name, "lock_key": record.lock_key},
            )

    def get(self, name: str) -> LockRecord | None:
        """Get the record held under a name, or None."""
        with self._lock:
            return self._records.get(name)

    def pop(self, name: str) -> LockRecord | None:
        """
        Remove and return the record held under a name.

        Returns:
            The removed record, or None if the name is not held
        """
        with self._lock:
            return self._records.pop(name, None)

    def names(self) -> list[str]:
        """Snapshot of held lock names, in acquisition order."""
        with self._lock:
            return list(self._records)

    def records(self) -> list[LockRecord]:
        """Snapshot of held lock records, in acquisition order."""
        with self._lock:
            return list(self._records.values())

    def is_pending(self, name: str) -> bool:
        """Check if an acquisition of the name is in progress."""
        with self._lock:
            return name in self._pending

    def __len__(self) -> int:
        """Return the number of held locks."""
        with self._lock:
            return len(self._records)

    def __bool__(self) -> bool:
        """Registry is always truthy, even when empty."""
        return True

    def __contains__(self, name: object) -> bool:
        """Support 'in' operator for held names."""
        with self._lock:
            return name in self._records

    def __iter__(self) -> Iterator[str]:
        """Iterate over a snapshot of held lock names."""
        return iter(self.names())


__all__ = ["AcquiredLockRegistry"]
