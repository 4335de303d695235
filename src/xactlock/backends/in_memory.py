"""
In-memory lock backend.

Simulates PostgreSQL transaction-level advisory locks inside one process.
Useful for testing and development. Not suitable for coordinating separate
processes, since the lock table lives in process memory.

Simulated semantics:
- Shared locks coexist; an exclusive lock excludes every other connection
- Locks never conflict with other locks of the same connection
- timeout_ms == 0 is a non-blocking try; a positive timeout waits, then fails
- Committing a savepoint hands its locks to the enclosing transaction,
  rolling back a savepoint releases the locks taken inside it
- Ending the top-level transaction releases every lock of the connection
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass

from xactlock.backends.interface import LockBackend, LockSession
from xactlock.types import ActiveLock

_EXCLUSIVE_MODE = "ExclusiveLock"
_SHARE_MODE = "ShareLock"


@dataclass
class _Grant:
    """One lock taken by a transaction scope."""

    lock_key: int
    shared: bool
    scope: _Scope


class _Scope:
    """A top-level transaction (depth 1) or a savepoint (depth > 1)."""

    def __init__(self, connection: InMemoryConnection, depth: int) -> None:
        self.connection = connection
        self.depth = depth


class InMemoryLockServer:
    """
    The shared lock table connections contend on.

    Create one server per simulated database and hand it to every backend
    that should see the same locks.

    Example:
        >>> server = InMemoryLockServer()
        >>> first = InMemoryLockBackend(server)
        >>> second = InMemoryLockBackend(server)
    """

    def __init__(self) -> None:
        """Initialize an empty lock table."""
        self._grants: list[_Grant] = []
        self._waiting: list[tuple[int, int, bool]] = []  # (pid, key, shared)
        self._changed = asyncio.Condition()
        self._pids = itertools.count(1000)

    def connect(self) -> InMemoryConnection:
        """Open a new connection with its own process id."""
        return InMemoryConnection(self, next(self._pids))

    def _available(self, pid: int, lock_key: int, shared: bool) -> bool:
        for grant in self._grants:
            if grant.lock_key != lock_key or grant.scope.connection.pid == pid:
                continue
            if not (shared and grant.shared):
                return False
        return True

    async def _acquire(self, scope: _Scope, lock_key: int, shared: bool, timeout_ms: int) -> bool:
        pid = scope.connection.pid

        if not self._available(pid, lock_key, shared):
            if timeout_ms == 0:
                return False

            waiter = (pid, lock_key, shared)
            self._waiting.append(waiter)
            try:
                async with self._changed:
                    await asyncio.wait_for(
                        self._changed.wait_for(lambda: self._available(pid, lock_key, shared)),
                        timeout=timeout_ms / 1000,
                    )
            except TimeoutError:
                return False
            finally:
                self._waiting.remove(waiter)

            if not scope.connection._is_open(scope):
                return False

        self._grants.append(_Grant(lock_key, shared, scope))
        return True

    async def _end_scopes(self, ended: list[_Scope], parent: _Scope | None, commit: bool) -> None:
        released = False
        for grant in list(self._grants):
            if grant.scope not in ended:
                continue
            if commit and parent is not None:
                grant.scope = parent
            else:
                self._grants.remove(grant)
                released = True

        if released:
            async with self._changed:
                self._changed.notify_all()

    def locks(self, current_pid: int | None = None) -> list[ActiveLock]:
        """Snapshot of the lock table, including waiting requests."""
        rows = [
            ActiveLock(
                pid=grant.scope.connection.pid,
                lock_type="advisory",
                mode=_SHARE_MODE if grant.shared else _EXCLUSIVE_MODE,
                granted=True,
                lock_key=grant.lock_key,
                is_current_connection=grant.scope.connection.pid == current_pid,
            )
            for grant in self._grants
        ]
        rows.extend(
            ActiveLock(
                pid=pid,
                lock_type="advisory",
                mode=_SHARE_MODE if shared else _EXCLUSIVE_MODE,
                granted=False,
                lock_key=lock_key,
                is_current_connection=pid == current_pid,
            )
            for pid, lock_key, shared in self._waiting
        )
        # A connection holding the same key twice shows up once, as in pg_locks
        unique = {(r.pid, r.lock_key, r.mode, r.granted): r for r in rows}
        return sorted(unique.values(), key=lambda r: (r.pid, r.lock_key))


class InMemoryConnection:
    """
    A simulated database connection with transaction and savepoint support.

    begin() opens a top-level transaction, or a savepoint when a transaction
    is already open. commit() and rollback() end the top-level transaction
    (and every savepoint inside it), like their SQLAlchemy counterparts.
    """

    def __init__(self, server: InMemoryLockServer, pid: int) -> None:
        self._server = server
        self.pid = pid
        self._scopes: list[_Scope] = []

    def in_transaction(self) -> bool:
        """True while a top-level transaction is open."""
        return bool(self._scopes)

    @property
    def depth(self) -> int:
        """Number of open scopes (0 outside a transaction)."""
        return len(self._scopes)

    def begin(self) -> _Scope:
        """Open a transaction, or a savepoint if one is already open."""
        scope = _Scope(self, len(self._scopes) + 1)
        self._scopes.append(scope)
        return scope

    async def commit(self) -> None:
        """Commit the top-level transaction, releasing every lock."""
        if self._scopes:
            await self._end(self._scopes[0], commit=True)

    async def rollback(self) -> None:
        """Roll back the top-level transaction, releasing every lock."""
        if self._scopes:
            await self._end(self._scopes[0], commit=False)

    def _is_open(self, scope: _Scope) -> bool:
        return any(s is scope for s in self._scopes)

    async def _end(self, scope: _Scope, *, commit: bool) -> None:
        index = next(i for i, s in enumerate(self._scopes) if s is scope)
        ended = self._scopes[index:]
        del self._scopes[index:]
        parent = self._scopes[-1] if self._scopes else None
        await self._server._end_scopes(ended, parent, commit)


class InMemoryLockSession:
    """A transaction scope of an InMemoryConnection dedicated to one lock."""

    def __init__(self, connection: InMemoryConnection, scope: _Scope) -> None:
        self._connection = connection
        self._scope = scope

    @property
    def connection(self) -> InMemoryConnection:
        """The connection the session's scope belongs to."""
        return self._connection

    @property
    def level(self) -> int:
        return self._scope.depth

    @property
    def is_active(self) -> bool:
        return self._connection._is_open(self._scope)

    @property
    def backend_pid(self) -> int | None:
        return self._connection.pid

    async def commit(self) -> None:
        if self.is_active:
            await self._connection._end(self._scope, commit=True)

    async def rollback(self) -> None:
        if self.is_active:
            await self._connection._end(self._scope, commit=False)

    async def close(self) -> None:
        await self.rollback()

    def __repr__(self) -> str:
        return f"InMemoryLockSession(level={self.level}, active={self.is_active})"


class InMemoryLockBackend(LockBackend):
    """
    In-memory implementation of the lock backend.

    Without a connection, every session gets a fresh connection of the
    server (like an engine checking out pooled connections). With a
    connection, sessions are opened on it and nest as savepoints when a
    transaction is already open (like a shared AsyncConnection).

    Example:
        >>> server = InMemoryLockServer()
        >>> backend = InMemoryLockBackend(server)
        >>> mutex = TransactionalMutex(backend)
        >>>
        >>> # Simulate a caller-opened outer transaction
        >>> connection = server.connect()
        >>> connection.begin()
        >>> nested = TransactionalMutex(InMemoryLockBackend(server, connection=connection))
    """

    def __init__(
        self,
        server: InMemoryLockServer | None = None,
        *,
        connection: InMemoryConnection | None = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            server: Lock table to use. A private one is created if omitted.
            connection: Connection to open every session on (optional)

        Raises:
            ValueError: If the connection belongs to a different server
        """
        if server is None:
            server = connection._server if connection is not None else InMemoryLockServer()
        if connection is not None and connection._server is not server:
            raise ValueError("connection belongs to a different InMemoryLockServer")

        self._server = server
        self._connection = connection

    @property
    def server(self) -> InMemoryLockServer:
        """The lock table this backend uses."""
        return self._server

    @property
    def shares_connection(self) -> bool:
        return self._connection is not None

    async def begin(self) -> InMemoryLockSession:
        if self._connection is None:
            connection = self._server.connect()
            return InMemoryLockSession(connection, connection.begin())
        return InMemoryLockSession(self._connection, self._connection.begin())

    async def try_lock(
        self,
        session: LockSession,
        lock_key: int,
        *,
        shared: bool,
        timeout_ms: int,
    ) -> bool:
        if not isinstance(session, InMemoryLockSession):
            raise TypeError(f"Expected InMemoryLockSession, got {type(session).__name__}")
        if timeout_ms < 0:
            raise ValueError(f"timeout_ms must be non-negative, got {timeout_ms}")
        return await self._server._acquire(session._scope, lock_key, shared, timeout_ms)

    async def list_locks(self) -> list[ActiveLock]:
        current_pid = self._connection.pid if self._connection is not None else None
        return self._server.locks(current_pid)


__all__ = [
    "InMemoryConnection",
    "InMemoryLockBackend",
    "InMemoryLockServer",
    "InMemoryLockSession",
]
