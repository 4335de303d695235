"""
Core data structures for transaction-bound locks.

This module provides:
- LockMode: Exclusive or shared locking, fixed per mutex instance
- LockRecord: Registry entry for a lock held by a mutex
- LockInfo: Public, read-only view of a held lock
- ActiveLock: A row of the server's advisory lock catalog
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from xactlock.backends.interface import LockSession


class LockMode(Enum):
    """
    Locking mode of a mutex.

    Values:
        EXCLUSIVE: Excludes every other holder of the same key (writers)
        SHARED: Coexists with other shared holders, excludes exclusive (readers)
    """

    EXCLUSIVE = "exclusive"
    SHARED = "shared"

    @property
    def shared(self) -> bool:
        """True for SHARED, the flag passed to the lock function."""
        return self is LockMode.SHARED


@dataclass(frozen=True)
class LockRecord:
    """
    Registry entry for a lock held by a mutex.

    The session is owned exclusively by this record until the lock is
    released; it is never shared with another record.

    Attributes:
        name: The lock name
        lock_key: Numeric advisory lock key derived from the name
        session: Transactional session holding the lock
        nesting_level: Session nesting level when the lock was acquired
        acquired_at: When the lock was acquired
    """

    name: str
    lock_key: int
    session: LockSession
    nesting_level: int
    acquired_at: datetime

    @property
    def nested(self) -> bool:
        """True if the lock was taken inside an already open transaction."""
        return self.nesting_level > 1


@dataclass(frozen=True)
class LockInfo:
    """
    Information about a lock held by a mutex.

    Attributes:
        name: The lock name
        lock_key: Numeric advisory lock key
        mode: Mode the lock was acquired in
        nesting_level: Session nesting level at acquisition (1 = top-level)
        acquired_at: When the lock was acquired
        holder_id: Optional identifier of the mutex owner (for debugging)
    """

    name: str
    lock_key: int
    mode: LockMode
    nesting_level: int
    acquired_at: datetime
    holder_id: str | None = None


@dataclass(frozen=True)
class ActiveLock:
    """
    An advisory lock currently present in the server's lock catalog.

    Attributes:
        pid: Server process id of the session holding or awaiting the lock
        lock_type: Catalog lock type (always "advisory")
        mode: Catalog lock mode ("ExclusiveLock" or "ShareLock")
        granted: False while the session is still waiting for the lock
        lock_key: The 64-bit advisory lock key
        is_current_connection: True if held by the connection that ran the query
        is_self: True if held by a session of the mutex that ran the query
    """

    pid: int
    lock_type: str
    mode: str
    granted: bool
    lock_key: int
    is_current_connection: bool = False
    is_self: bool = False

    @property
    def shared(self) -> bool:
        """True for shared advisory locks."""
        return self.mode == "ShareLock"


__all__ = [
    "ActiveLock",
    "LockInfo",
    "LockMode",
    "LockRecord",
]
