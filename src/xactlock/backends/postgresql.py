"""
PostgreSQL lock backend.

Uses transaction-level advisory locks through a server-side function with
the signature:

    try_advisory_xact_lock_timeout(key bigint, shared boolean, timeout_ms integer)
        RETURNS boolean

(see xactlock.migrations). Transaction-level locks are released by the
server when the transaction ends, which keeps them safe behind connection
pooling proxies such as PgBouncer in transaction pooling mode, where
session-level locks could outlive the logical session that took them.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction

from xactlock.backends.interface import LockBackend, LockSession
from xactlock.config import DEFAULT_LOCK_FUNCTION, validate_function_name
from xactlock.exceptions import LockStorageError
from xactlock.types import ActiveLock

logger = logging.getLogger(__name__)

# pg_locks splits a bigint advisory key into classid (high 32 bits) and
# objid (low 32 bits); objsubid = 1 marks bigint keys.
_ACTIVE_LOCKS_QUERY = text(
    """
    SELECT
        l.pid AS pid,
        l.locktype AS lock_type,
        l.mode AS mode,
        l.granted AS granted,
        (CAST(l.classid AS bigint) << 32) | CAST(l.objid AS bigint) AS lock_key,
        l.pid = pg_backend_pid() AS is_current_connection
    FROM pg_locks l
    WHERE l.locktype = 'advisory' AND l.objsubid = 1
    ORDER BY l.pid, lock_key
    """
)


class SQLAlchemyLockSession:
    """
    A transaction opened on a SQLAlchemy AsyncConnection to hold one lock.

    Sessions opened from an engine own their connection and return it to
    the pool once the transaction ends. Sessions opened on a caller's
    connection only end their transaction (or savepoint).
    """

    def __init__(
        self,
        connection: AsyncConnection,
        transaction: AsyncTransaction,
        level: int,
        *,
        owns_connection: bool,
    ) -> None:
        self._connection = connection
        self._transaction = transaction
        self._level = level
        self._owns_connection = owns_connection
        self._backend_pid: int | None = None
        self._closed = False

    @property
    def connection(self) -> AsyncConnection:
        """The connection the session's transaction runs on."""
        return self._connection

    @property
    def level(self) -> int:
        return self._level

    @property
    def is_active(self) -> bool:
        return not self._closed and self._transaction.is_active

    @property
    def backend_pid(self) -> int | None:
        return self._backend_pid

    async def commit(self) -> None:
        try:
            await self._transaction.commit()
        except (SQLAlchemyError, OSError) as e:
            raise LockStorageError("commit", str(e)) from e
        await self.close()

    async def rollback(self) -> None:
        try:
            await self._transaction.rollback()
        except (SQLAlchemyError, OSError) as e:
            raise LockStorageError("rollback", str(e)) from e
        await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        try:
            if self._owns_connection:
                # Closing a pooled connection rolls back whatever is still open
                await self._connection.close()
            elif self._transaction.is_active:
                await self._transaction.rollback()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(
                "Error closing lock session: level=%d, error=%s",
                self._level,
                e,
            )

    def _record_backend_pid(self, pid: int) -> None:
        self._backend_pid = pid

    def __repr__(self) -> str:
        return (
            f"SQLAlchemyLockSession(level={self._level}, active={self.is_active}, "
            f"pid={self._backend_pid})"
        )


class PostgreSQLLockBackend(LockBackend):
    """
    Lock backend for PostgreSQL using SQLAlchemy asyncio.

    Accepts either an AsyncEngine or an AsyncConnection:

    - AsyncEngine (recommended): every lock gets its own pooled connection and
      top-level transaction, so each held lock is independent and releasing
      one never affects another.
    - AsyncConnection: locks are taken on the caller's connection. The first
      lock opens a transaction; if a transaction is already active (opened by
      the caller or by an earlier lock) the session is a SAVEPOINT, and its
      lock is only released when the outer transaction ends.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://localhost/app")
        >>> backend = PostgreSQLLockBackend(engine)
        >>> session = await backend.begin()
        >>> await backend.try_lock(session, 42, shared=False, timeout_ms=0)
        True
        >>> await session.commit()  # releases the lock

    Note:
        With an engine, each held lock occupies one pooled connection.
        Size the pool for the number of locks held concurrently.
    """

    def __init__(
        self,
        db: AsyncEngine | AsyncConnection,
        *,
        function_name: str = DEFAULT_LOCK_FUNCTION,
    ) -> None:
        """
        Initialize the backend.

        Args:
            db: Engine to check connections out of, or a single connection
            function_name: Server-side lock function to call

        Raises:
            TypeError: If db is neither an AsyncEngine nor an AsyncConnection
            ValueError: If function_name is not a plain SQL identifier
        """
        if not isinstance(db, AsyncEngine | AsyncConnection):
            raise TypeError(
                f"db must be an AsyncEngine or AsyncConnection, got {type(db).__name__}"
            )

        self._db = db
        self._function_name = validate_function_name(function_name)
        self._try_lock_query = text(
            f"SELECT {self._function_name}("
            "CAST(:key AS bigint), CAST(:shared AS boolean), CAST(:timeout_ms AS integer)"
            ") AS acquired, pg_backend_pid() AS pid"
        )
        # Sessions opened on a shared connection, for nesting level tracking
        self._connection_sessions: list[SQLAlchemyLockSession] = []

    @property
    def function_name(self) -> str:
        """Name of the server-side lock function."""
        return self._function_name

    @property
    def uses_engine(self) -> bool:
        """True if every session gets its own pooled connection."""
        return isinstance(self._db, AsyncEngine)

    @property
    def shares_connection(self) -> bool:
        return not self.uses_engine

    async def begin(self) -> SQLAlchemyLockSession:
        # Driver connect failures (refused, TimeoutError) are raw OSErrors
        try:
            if isinstance(self._db, AsyncEngine):
                return await self._begin_on_engine(self._db)
            return await self._begin_on_connection(self._db)
        except (SQLAlchemyError, OSError) as e:
            raise LockStorageError("begin", str(e)) from e

    async def _begin_on_engine(self, engine: AsyncEngine) -> SQLAlchemyLockSession:
        connection = await engine.connect()
        try:
            transaction = await connection.begin()
        except BaseException:
            await connection.close()
            raise
        return SQLAlchemyLockSession(connection, transaction, 1, owns_connection=True)

    async def _begin_on_connection(self, connection: AsyncConnection) -> SQLAlchemyLockSession:
        self._connection_sessions = [s for s in self._connection_sessions if s.is_active]

        if connection.in_transaction():
            transaction = await connection.begin_nested()
            # An outer transaction we did not open counts as level 1
            parent_level = max((s.level for s in self._connection_sessions), default=1)
            level = parent_level + 1
        else:
            transaction = await connection.begin()
            level = 1

        session = SQLAlchemyLockSession(connection, transaction, level, owns_connection=False)
        self._connection_sessions.append(session)
        return session

    async def try_lock(
        self,
        session: LockSession,
        lock_key: int,
        *,
        shared: bool,
        timeout_ms: int,
    ) -> bool:
        if not isinstance(session, SQLAlchemyLockSession):
            raise TypeError(f"Expected SQLAlchemyLockSession, got {type(session).__name__}")

        params: dict[str, Any] = {
            "key": lock_key,
            "shared": shared,
            "timeout_ms": timeout_ms,
        }
        try:
            result = await session.connection.execute(self._try_lock_query, params)
            row = result.one()
        except (SQLAlchemyError, OSError) as e:
            raise LockStorageError("try_lock", str(e), lock_key=lock_key) from e

        session._record_backend_pid(row.pid)
        return bool(row.acquired)

    async def list_locks(self) -> list[ActiveLock]:
        try:
            if isinstance(self._db, AsyncEngine):
                async with self._db.connect() as connection:
                    rows = (await connection.execute(_ACTIVE_LOCKS_QUERY)).all()
            elif self._db.in_transaction():
                # A failed query must not abort the transaction holding our locks
                async with self._db.begin_nested():
                    rows = (await self._db.execute(_ACTIVE_LOCKS_QUERY)).all()
            else:
                async with self._db.begin():
                    rows = (await self._db.execute(_ACTIVE_LOCKS_QUERY)).all()
        except (SQLAlchemyError, OSError) as e:
            raise LockStorageError("list_locks", str(e)) from e

        return [
            ActiveLock(
                pid=row.pid,
                lock_type=row.lock_type,
                mode=row.mode,
                granted=bool(row.granted),
                lock_key=row.lock_key,
                is_current_connection=bool(row.is_current_connection),
            )
            for row in rows
        ]


__all__ = [
    "PostgreSQLLockBackend",
    "SQLAlchemyLockSession",
]
