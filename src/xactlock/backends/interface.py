"""
Backend interface for transaction-bound advisory locks.

A backend bundles the three capabilities a mutex consumes:
- Opening a transactional session dedicated to one lock (begin)
- Calling the server-side try-lock primitive inside that session (try_lock)
- Reading the server's advisory lock catalog (list_locks)

This module provides:
- LockSession: Protocol for a transaction opened to hold one lock
- LockBackend: Abstract base class for backend implementations
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

from xactlock.types import ActiveLock


@runtime_checkable
class LockSession(Protocol):
    """
    A transaction opened specifically to hold one lock.

    Transaction-level advisory locks are released by the server when the
    transaction that took them ends, so committing or rolling back the
    session is what releases the lock.

    When the session was opened while another transaction was already active
    on the same connection it is a savepoint (level > 1). Ending a savepoint
    does not end the outer transaction, so locks taken in it stay held until
    the outer transaction ends.
    """

    @property
    def level(self) -> int:
        """Nesting level: 1 for a top-level transaction, > 1 for a savepoint."""
        ...

    @property
    def is_active(self) -> bool:
        """True until the session is committed, rolled back or ended externally."""
        ...

    @property
    def backend_pid(self) -> int | None:
        """Server process id serving the session, once known."""
        ...

    async def commit(self) -> None:
        """
        Commit the session.

        Raises:
            LockStorageError: If the commit fails
        """
        ...

    async def rollback(self) -> None:
        """
        Roll back the session.

        Raises:
            LockStorageError: If the rollback fails
        """
        ...

    async def close(self) -> None:
        """
        Release the session's resources, rolling back if still active.

        Never raises; failures are logged. Safe to call more than once.
        """
        ...


class LockBackend(ABC):
    """
    Abstract base class for lock backends.

    Implementations:
    - PostgreSQLLockBackend: SQLAlchemy asyncio over PostgreSQL
    - InMemoryLockBackend: In-process simulation for tests and development
    """

    @abstractmethod
    async def begin(self) -> LockSession:
        """
        Open a new transactional session for a single lock.

        Returns:
            The opened session

        Raises:
            LockStorageError: If the transaction cannot be started
        """
        pass

    @abstractmethod
    async def try_lock(
        self,
        session: LockSession,
        lock_key: int,
        *,
        shared: bool,
        timeout_ms: int,
    ) -> bool:
        """
        Try to take a transaction-level advisory lock inside a session.

        Args:
            session: Session returned by begin() of this backend
            lock_key: Signed 64-bit lock key
            shared: Take a shared lock instead of an exclusive one
            timeout_ms: 0 for a non-blocking try, otherwise the maximum wait

        Returns:
            True if the lock was acquired, False if unavailable or timed out

        Raises:
            LockStorageError: If the call fails unexpectedly
        """
        pass

    @property
    def shares_connection(self) -> bool:
        """
        True if every session is opened on one connection.

        Sessions opened on a shared connection nest: a session begun while
        another is still active becomes a savepoint inside it.
        """
        return False

    @abstractmethod
    async def list_locks(self) -> list[ActiveLock]:
        """
        Read the advisory locks currently known to the server.

        Returns:
            Catalog rows ordered by pid and lock key

        Raises:
            LockStorageError: If the catalog cannot be read
        """
        pass


__all__ = [
    "LockBackend",
    "LockSession",
]
