"""
Transaction-bound distributed mutex.

TransactionalMutex takes PostgreSQL transaction-level advisory locks, each
inside its own dedicated transaction. A lock is released by committing its
transaction, and the server releases it automatically if the transaction
ends any other way (rollback, connection loss). Unlike session-level
advisory locks this stays correct behind connection pooling proxies that
multiplex logical sessions over shared physical connections.

Usage:
    >>> mutex = TransactionalMutex(engine)
    >>> if await mutex.acquire("invoice:export", wait_seconds=5):
    ...     try:
    ...         await export_invoices()
    ...     finally:
    ...         await mutex.release("invoice:export")
    >>>
    >>> async with mutex.hold("invoice:export", wait_seconds=5):
    ...     await export_invoices()
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import UTC, datetime
from types import TracebackType

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from xactlock.backends.interface import LockBackend, LockSession
from xactlock.backends.postgresql import PostgreSQLLockBackend
from xactlock.config import MutexConfig
from xactlock.databases import Database, get_database
from xactlock.exceptions import (
    InvalidLockArgumentError,
    LockAcquisitionError,
    LockStorageError,
    NestedTransactionError,
)
from xactlock.keys import lock_key
from xactlock.observability import (
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_COUNT,
    ATTR_LOCK_KEY,
    ATTR_LOCK_MODE,
    ATTR_LOCK_NAME,
    ATTR_LOCK_NESTING_LEVEL,
    ATTR_LOCK_RELEASED,
    ATTR_LOCK_TIMEOUT_MS,
    Tracer,
    create_tracer,
)
from xactlock.registry import AcquiredLockRegistry
from xactlock.timeouts import to_timeout_ms
from xactlock.types import ActiveLock, LockInfo, LockMode, LockRecord

logger = logging.getLogger(__name__)


def resolve_backend(db: Database | str, config: MutexConfig) -> LockBackend:
    """
    Turn a database handle, or the name of a registered one, into a backend.

    Args:
        db: AsyncEngine, AsyncConnection, LockBackend, or a name registered
            with register_database()
        config: Mutex configuration (function_name is used for PostgreSQL)

    Returns:
        The lock backend

    Raises:
        DatabaseNotFoundError: If db is a name that is not registered
        TypeError: If db is not a supported handle
    """
    if isinstance(db, str):
        db = get_database(db)
    if isinstance(db, LockBackend):
        return db
    if isinstance(db, AsyncEngine | AsyncConnection):
        return PostgreSQLLockBackend(db, function_name=config.function_name)
    raise TypeError(
        f"db must be an AsyncEngine, AsyncConnection, LockBackend or registered name, "
        f"got {type(db).__name__}"
    )


class TransactionalMutex:
    """
    Distributed mutex based on transaction-level advisory locks.

    Every acquired lock gets its own transactional session, because the
    server releases a transaction-level lock only when the transaction that
    took it ends. Sharing a transaction between two locks would make
    releasing one release the other.

    The mode (exclusive or shared) is fixed for the lifetime of the mutex.
    Exclusive locks exclude every other holder of the name; shared locks
    coexist with each other but exclude exclusive ones.

    Nested transactions:
        If a transaction is already open on the connection when a lock is
        acquired, the lock's session becomes a savepoint. Committing a
        savepoint does NOT release the lock; it stays held until the outer
        transaction ends. Such acquisitions are logged as warnings, or
        rejected when MutexConfig.strict_nesting is set. On a shared
        connection the mutex holds at most one lock at a time: acquiring a
        second one while the first is held raises NestedTransactionError,
        because committing the first lock's transaction would also release
        the second. Pass an AsyncEngine rather than a shared AsyncConnection
        to give every lock its own connection and avoid nesting altogether.

    Limitations:
        - Not reentrant: acquiring a name the mutex already holds raises
          LockAlreadyHeldError
        - No deadlock detection across names; acquire names in a consistent
          order
        - Names are hashed to 64-bit keys; colliding names contend as one

    Example:
        >>> mutex = TransactionalMutex(engine)
        >>> await mutex.acquire("reports:nightly")
        True
        >>> await mutex.release("reports:nightly")
        True
        >>>
        >>> readers = TransactionalMutex(engine, MutexConfig(mode=LockMode.SHARED))
        >>> async with readers.hold("catalog", wait_seconds=2.5) as info:
        ...     print(info.lock_key)
    """

    def __init__(
        self,
        db: Database | str = "default",
        config: MutexConfig | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the mutex.

        Args:
            db: AsyncEngine (one pooled connection per lock), AsyncConnection
                (locks share the connection, one held at a time), LockBackend,
                or the name of a database registered with register_database().
                Resolved once, here.
            config: Mutex configuration. Defaults to exclusive mode.
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
        """
        self._config = config or MutexConfig()
        self._backend = resolve_backend(db, self._config)
        self._registry = AcquiredLockRegistry()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def config(self) -> MutexConfig:
        """The mutex configuration."""
        return self._config

    @property
    def mode(self) -> LockMode:
        """Lock mode used for every acquisition."""
        return self._config.mode

    @property
    def backend(self) -> LockBackend:
        """The backend the mutex takes its locks through."""
        return self._backend

    @property
    def registry(self) -> AcquiredLockRegistry:
        """Records of the locks currently held by this mutex."""
        return self._registry

    @property
    def held_lock_count(self) -> int:
        """Number of locks currently held by this mutex."""
        return len(self._registry)

    async def acquire(self, name: str, wait_seconds: float = 0) -> bool:
        """
        Acquire a lock.

        Opens a transaction dedicated to the lock and calls the server-side
        lock function in it. On success the transaction is kept open until
        release(); otherwise it is rolled back before returning.

        Args:
            name: Lock name (non-empty)
            wait_seconds: Seconds to wait for the lock. 0 (default) returns
                immediately if the lock is unavailable.

        Returns:
            True if acquired, False if unavailable or the wait timed out

        Raises:
            InvalidLockArgumentError: If name is empty or wait_seconds negative
            LockAlreadyHeldError: If this mutex already holds the name
            NestedTransactionError: In strict nesting mode, if the session
                would be a savepoint. On a shared connection, also if the
                session would nest inside a lock this mutex already holds.
            LockStorageError: If the database fails during acquisition
        """
        if not isinstance(name, str) or name == "":
            raise InvalidLockArgumentError("name", name, "lock name cannot be empty")
        timeout_ms = to_timeout_ms(wait_seconds)
        key = lock_key(name)

        self._registry.reserve(name)
        try:
            with self._tracer.span(
                "xactlock.lock.acquire",
                {
                    ATTR_LOCK_NAME: name,
                    ATTR_LOCK_KEY: key,
                    ATTR_LOCK_MODE: self.mode.value,
                    ATTR_LOCK_TIMEOUT_MS: timeout_ms,
                },
            ) as span:
                record = await self._acquire(name, key, timeout_ms)
                if span:
                    span.set_attribute(ATTR_LOCK_ACQUIRED, record is not None)
                    if record is not None:
                        span.set_attribute(ATTR_LOCK_NESTING_LEVEL, record.nesting_level)
        finally:
            # No-op after a successful insert, which consumed the reservation
            self._registry.cancel(name)

        return record is not None

    async def _acquire(self, name: str, key: int, timeout_ms: int) -> LockRecord | None:
        self._check_enclosing(name)

        try:
            session = await self._backend.begin()
        except LockStorageError as e:
            logger.error("Failed to acquire advisory lock '%s': %s", name, e)
            raise

        try:
            if self._config.strict_nesting and session.level > 1:
                raise NestedTransactionError(name, session.level)

            acquired = await self._backend.try_lock(
                session,
                key,
                shared=self._config.shared,
                timeout_ms=timeout_ms,
            )
        except LockStorageError as e:
            logger.error("Failed to acquire advisory lock '%s': %s", name, e)
            await self._discard(name, session)
            raise
        except BaseException:
            await self._discard(name, session)
            raise

        if not acquired:
            await self._discard(name, session)
            logger.debug(
                "Advisory lock '%s' (key=%d) NOT acquired (timeout_ms=%d)",
                name,
                key,
                timeout_ms,
            )
            return None

        record = LockRecord(
            name=name,
            lock_key=key,
            session=session,
            nesting_level=session.level,
            acquired_at=datetime.now(UTC),
        )
        self._registry.insert(record)
        self._check_nesting(record)

        logger.debug(
            "Advisory lock '%s' (key=%d) acquired in %s mode (tx level=%d)",
            name,
            key,
            self.mode.value.upper(),
            record.nesting_level,
        )
        return record

    def _check_enclosing(self, name: str) -> None:
        """Refuse to open a session inside the transaction of a lock this mutex holds."""
        if not self._backend.shares_connection:
            return
        for held in self._registry.records():
            if held.session.is_active:
                raise NestedTransactionError(name, held.nesting_level + 1, enclosing=held.name)

    def _check_nesting(self, record: LockRecord) -> None:
        if not record.nested:
            return
        logger.warning(
            "Advisory lock '%s' (key=%d) acquired in NESTED transaction (level=%d). "
            "Lock will NOT be released until the outer transaction ends. "
            "This usually means the caller or a test harness wraps work in a transaction.",
            record.name,
            record.lock_key,
            record.nesting_level,
        )

    async def _discard(self, name: str, session: LockSession) -> None:
        """End a session that does not (or no longer) hold a registered lock."""
        if session.is_active:
            try:
                await session.rollback()
            except LockStorageError as e:
                logger.warning("Error rolling back lock session for '%s': %s", name, e)
        await session.close()

    async def release(self, name: str) -> bool:
        """
        Release a lock held by this mutex.

        Commits the lock's transaction, which makes the server release the
        lock. Never raises for database failures, so it is safe to call from
        cleanup code; failures are logged and reported as False.

        Args:
            name: Lock name

        Returns:
            True if the lock's transaction was committed. False if the name is
            not held, its transaction was already ended externally, or the
            commit failed.
        """
        with self._tracer.span("xactlock.lock.release", {ATTR_LOCK_NAME: name}) as span:
            released = await self._release(name)
            if span:
                span.set_attribute(ATTR_LOCK_RELEASED, released)
            return released

    async def _release(self, name: str) -> bool:
        # Removed first so a retry never releases the same record twice
        record = self._registry.pop(name)
        if record is None:
            logger.warning(
                "Attempted to release advisory lock '%s' that was not acquired by this mutex",
                name,
            )
            return False

        session = record.session
        if not session.is_active:
            logger.warning(
                "Advisory lock '%s' (key=%d) transaction already closed externally",
                name,
                record.lock_key,
            )
            await session.close()
            return False

        try:
            await session.commit()
        except LockStorageError as e:
            logger.error("Failed to release advisory lock '%s': %s", name, e)
            await self._discard(name, session)
            return False

        logger.debug("Advisory lock '%s' (key=%d) released via COMMIT", name, record.lock_key)
        return True

    async def release_all(self) -> int:
        """
        Release every lock held by this mutex.

        Useful for cleanup on shutdown or error recovery.

        Returns:
            Number of locks successfully released
        """
        names = self._registry.names()

        with self._tracer.span("xactlock.lock.release_all", {ATTR_LOCK_COUNT: len(names)}):
            released = 0
            for name in names:
                try:
                    if await self.release(name):
                        released += 1
                except Exception as e:
                    logger.warning(
                        "Error releasing lock during release_all: name=%s, error=%s",
                        name,
                        e,
                    )
            return released

    def is_acquired(self, name: str) -> bool:
        """Check if this mutex currently holds a lock under the name."""
        return name in self._registry

    def list_held(self) -> dict[str, LockInfo]:
        """
        Get the locks held by this mutex.

        Returns:
            Mapping of lock name to LockInfo, in acquisition order
        """
        return {
            record.name: LockInfo(
                name=record.name,
                lock_key=record.lock_key,
                mode=self.mode,
                nesting_level=record.nesting_level,
                acquired_at=record.acquired_at,
                holder_id=self._config.holder_id,
            )
            for record in self._registry.records()
        }

    async def list_active(self) -> list[ActiveLock]:
        """
        Get the advisory locks currently present on the server.

        Diagnostics only: failures are logged and an empty list is returned.

        Returns:
            Catalog rows; is_self marks locks held by sessions of this mutex
        """
        with self._tracer.span("xactlock.lock.list_active") as span:
            try:
                rows = await self._backend.list_locks()
            except Exception as e:
                logger.error("Failed to fetch active advisory locks: %s", e)
                return []

            own_pids = {
                record.session.backend_pid
                for record in self._registry.records()
                if record.session.backend_pid is not None
            }
            if span:
                span.set_attribute(ATTR_LOCK_COUNT, len(rows))
            return [
                replace(row, is_self=row.is_current_connection or row.pid in own_pids)
                for row in rows
            ]

    @asynccontextmanager
    async def hold(self, name: str, wait_seconds: float = 0) -> AsyncIterator[LockInfo]:
        """
        Hold a lock for the duration of a context.

        Args:
            name: Lock name
            wait_seconds: Seconds to wait for the lock (0 = don't wait)

        Yields:
            LockInfo of the held lock

        Raises:
            LockAcquisitionError: If the lock could not be acquired
            (plus everything acquire() raises)

        Example:
            >>> async with mutex.hold("cache:rebuild", wait_seconds=10):
            ...     await rebuild_cache()
        """
        if not await self.acquire(name, wait_seconds):
            reason = (
                "lock is held elsewhere"
                if wait_seconds == 0
                else f"not available within {wait_seconds}s"
            )
            raise LockAcquisitionError(name, reason, wait_seconds)

        try:
            yield self.list_held()[name]
        finally:
            await self.release(name)

    async def __aenter__(self) -> TransactionalMutex:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        released = await self.release_all()
        if released:
            logger.debug("Released %d advisory lock(s) on mutex exit", released)

    def __repr__(self) -> str:
        return (
            f"TransactionalMutex(mode={self.mode.value}, backend={type(self._backend).__name__}, "
            f"held={len(self._registry)})"
        )


__all__ = [
    "TransactionalMutex",
    "resolve_backend",
]
