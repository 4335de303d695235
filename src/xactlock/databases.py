"""
Named database handles.

Lets applications register their database once (typically as "default")
and create mutexes by name, resolving the handle a single time when the
mutex is constructed.

Usage:
    # At application startup
    register_database("default", create_async_engine(url))

    # Anywhere else
    mutex = TransactionalMutex("default")

    # Isolated registry, e.g. in tests
    registry = DatabaseRegistry()
    registry.register("default", engine)
    mutex = TransactionalMutex(registry.get("default"))
"""

from __future__ import annotations

import logging
import threading
from typing import TypeAlias

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from xactlock.backends.interface import LockBackend
from xactlock.exceptions import DatabaseNotFoundError, DuplicateDatabaseError

logger = logging.getLogger(__name__)

Database: TypeAlias = AsyncEngine | AsyncConnection | LockBackend

DEFAULT_DATABASE = "default"


class DatabaseRegistry:
    """
    Registry mapping names to database handles.

    Can be used through the module-level `default_database_registry` or
    instantiated for isolated testing.

    Thread-Safety:
        All operations are thread-safe and use internal locking.

    Example:
        >>> registry = DatabaseRegistry()
        >>> registry.register("default", engine)
        >>> registry.get("default") is engine
        True
    """

    def __init__(self) -> None:
        """Initialize an empty database registry."""
        self._databases: dict[str, Database] = {}
        self._lock = threading.RLock()

    def register(self, name: str, database: Database, *, replace: bool = False) -> Database:
        """
        Register a database handle under a name.

        Args:
            name: Lookup name (e.g. "default")
            database: AsyncEngine, AsyncConnection or LockBackend
            replace: Overwrite an existing registration with a different handle

        Returns:
            The registered handle

        Raises:
            TypeError: If the handle is not a supported type
            DuplicateDatabaseError: If the name is taken and replace is False
        """
        if not isinstance(database, AsyncEngine | AsyncConnection | LockBackend):
            raise TypeError(
                f"database must be an AsyncEngine, AsyncConnection or LockBackend, "
                f"got {type(database).__name__}"
            )

        with self._lock:
            existing = self._databases.get(name)
            if existing is not None and existing is not database and not replace:
                raise DuplicateDatabaseError(name)
            self._databases[name] = database
            logger.debug(
                "Registered database '%s' -> %s",
                name,
                type(database).__name__,
                extra={"database_name": name},
            )
            return database

    def get(self, name: str) -> Database:
        """
        Get a database handle by name.

        Raises:
            DatabaseNotFoundError: If the name is not registered
        """
        with self._lock:
            if name not in self._databases:
                raise DatabaseNotFoundError(name, list(self._databases))
            return self._databases[name]

    def get_or_none(self, name: str) -> Database | None:
        """Get a database handle by name, returning None if not found."""
        with self._lock:
            return self._databases.get(name)

    def unregister(self, name: str) -> bool:
        """
        Unregister a database name.

        Returns:
            True if the name was registered and removed, False if not found
        """
        with self._lock:
            if name in self._databases:
                del self._databases[name]
                logger.debug("Unregistered database '%s'", name, extra={"database_name": name})
                return True
            return False

    def list_names(self) -> list[str]:
        """Sorted list of registered names."""
        with self._lock:
            return sorted(self._databases)

    def clear(self) -> None:
        """Remove every registration. Primarily useful between tests."""
        with self._lock:
            self._databases.clear()

    def __contains__(self, name: object) -> bool:
        """Support 'in' operator for registered names."""
        with self._lock:
            return name in self._databases

    def __len__(self) -> int:
        """Return the number of registered databases."""
        with self._lock:
            return len(self._databases)


# Module-level default registry instance
default_database_registry = DatabaseRegistry()


def register_database(
    name: str,
    database: Database,
    *,
    replace: bool = False,
) -> Database:
    """Register a database handle in the default registry."""
    return default_database_registry.register(name, database, replace=replace)


def get_database(name: str = DEFAULT_DATABASE) -> Database:
    """Get a database handle from the default registry."""
    return default_database_registry.get(name)


__all__ = [
    "DEFAULT_DATABASE",
    "Database",
    "DatabaseRegistry",
    "default_database_registry",
    "get_database",
    "register_database",
]
