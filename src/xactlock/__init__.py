"""
xactlock - Transaction-bound distributed mutex for PostgreSQL.

This library provides:
- TransactionalMutex built on transaction-level advisory locks, safe behind
  connection pooling proxies
- Exclusive and shared lock modes with millisecond wait budgets
- PostgreSQL (SQLAlchemy asyncio) and In-Memory backends
- Inspection of the server's advisory lock catalog
- SQL migrations for the server-side lock function
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("xactlock")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Backends
from xactlock.backends import (
    InMemoryConnection,
    InMemoryLockBackend,
    InMemoryLockServer,
    InMemoryLockSession,
    LockBackend,
    LockSession,
    PostgreSQLLockBackend,
    SQLAlchemyLockSession,
)

# Configuration
from xactlock.config import DEFAULT_LOCK_FUNCTION, MutexConfig, validate_function_name

# Database handles
from xactlock.databases import (
    DEFAULT_DATABASE,
    Database,
    DatabaseRegistry,
    default_database_registry,
    get_database,
    register_database,
)

# Exceptions
from xactlock.exceptions import (
    DatabaseNotFoundError,
    DuplicateDatabaseError,
    InvalidLockArgumentError,
    LockAcquisitionError,
    LockAlreadyHeldError,
    LockStorageError,
    NestedTransactionError,
    XactLockError,
)

# Keys and timeouts
from xactlock.keys import LOCK_KEY_MAX, LOCK_KEY_MIN, lock_key, lock_name

# Migrations
from xactlock.migrations import (
    install_lock_function,
    lock_function_exists,
    uninstall_lock_function,
)

# Mutex
from xactlock.mutex import TransactionalMutex, resolve_backend
from xactlock.registry import AcquiredLockRegistry
from xactlock.timeouts import MAX_TIMEOUT_MS, to_timeout_ms

# Types
from xactlock.types import ActiveLock, LockInfo, LockMode, LockRecord

__all__ = [
    "__version__",
    # Mutex
    "TransactionalMutex",
    "resolve_backend",
    "AcquiredLockRegistry",
    # Types
    "ActiveLock",
    "LockInfo",
    "LockMode",
    "LockRecord",
    # Configuration
    "DEFAULT_LOCK_FUNCTION",
    "MutexConfig",
    "validate_function_name",
    # Keys and timeouts
    "LOCK_KEY_MAX",
    "LOCK_KEY_MIN",
    "MAX_TIMEOUT_MS",
    "lock_key",
    "lock_name",
    "to_timeout_ms",
    # Backends
    "LockBackend",
    "LockSession",
    "PostgreSQLLockBackend",
    "SQLAlchemyLockSession",
    "InMemoryConnection",
    "InMemoryLockBackend",
    "InMemoryLockServer",
    "InMemoryLockSession",
    # Database handles
    "DEFAULT_DATABASE",
    "Database",
    "DatabaseRegistry",
    "default_database_registry",
    "get_database",
    "register_database",
    # Migrations
    "install_lock_function",
    "lock_function_exists",
    "uninstall_lock_function",
    # Exceptions
    "XactLockError",
    "InvalidLockArgumentError",
    "LockStorageError",
    "LockAlreadyHeldError",
    "LockAcquisitionError",
    "NestedTransactionError",
    "DatabaseNotFoundError",
    "DuplicateDatabaseError",
]
