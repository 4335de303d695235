"""
Lock backends for xactlock.

A backend opens the transactions that hold locks, calls the server-side
lock function and reads the lock catalog.

Available backends:
- PostgreSQLLockBackend: SQLAlchemy asyncio over PostgreSQL (production)
- InMemoryLockBackend: In-process simulation (tests, development)
"""

from xactlock.backends.in_memory import (
    InMemoryConnection,
    InMemoryLockBackend,
    InMemoryLockServer,
    InMemoryLockSession,
)
from xactlock.backends.interface import LockBackend, LockSession
from xactlock.backends.postgresql import PostgreSQLLockBackend, SQLAlchemyLockSession

__all__ = [
    # Interface
    "LockBackend",
    "LockSession",
    # PostgreSQL
    "PostgreSQLLockBackend",
    "SQLAlchemyLockSession",
    # In-memory
    "InMemoryConnection",
    "InMemoryLockBackend",
    "InMemoryLockServer",
    "InMemoryLockSession",
]
