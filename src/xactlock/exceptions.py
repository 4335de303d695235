"""Library exceptions for the xactlock package."""

from __future__ import annotations


class XactLockError(Exception):
    """Base exception for xactlock library."""

    pass


class InvalidLockArgumentError(XactLockError, ValueError):
    """
    Raised when a lock operation receives an invalid argument.

    Raised before any database work is attempted, e.g. for an empty lock
    name or a negative wait budget.

    Attributes:
        argument: Name of the offending argument
        value: The rejected value
    """

    def __init__(self, argument: str, value: object, message: str) -> None:
        self.argument = argument
        self.value = value
        super().__init__(f"Invalid {argument} {value!r}: {message}")


class LockStorageError(XactLockError):
    """
    Raised when the transactional layer fails while handling a lock.

    The original driver or SQLAlchemy exception is preserved as __cause__.

    Attributes:
        operation: The backend operation that failed (begin, try_lock, commit, ...)
        reason: Description of the failure
        lock_key: Numeric lock key involved, if known
    """

    def __init__(
        self,
        operation: str,
        reason: str,
        *,
        lock_key: int | None = None,
    ) -> None:
        self.operation = operation
        self.reason = reason
        self.lock_key = lock_key
        key_info = f" (key={lock_key})" if lock_key is not None else ""
        super().__init__(f"Lock storage failure during {operation}{key_info}: {reason}")


class LockAlreadyHeldError(XactLockError):
    """
    Raised when a mutex is asked to acquire a name it already holds.

    Transaction-level advisory locks are not reentrant through the mutex:
    a name must be released before it can be acquired again.

    Attributes:
        name: The lock name that is already held
    """

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Lock '{name}' is already held or being acquired by this mutex")


class LockAcquisitionError(XactLockError):
    """
    Raised when a lock cannot be acquired by TransactionalMutex.hold().

    Attributes:
        name: The lock name that could not be acquired
        reason: Description of why acquisition failed
        wait_seconds: The wait budget that was used
    """

    def __init__(
        self,
        name: str,
        reason: str,
        wait_seconds: float | None = None,
    ) -> None:
        self.name = name
        self.reason = reason
        self.wait_seconds = wait_seconds
        super().__init__(f"Failed to acquire lock '{name}': {reason}")


class NestedTransactionError(XactLockError):
    """
    Raised when a lock would be taken inside a savepoint it must not nest in.

    A lock acquired in a nested scope is only released when the enclosing
    transaction ends. Strict nesting mode refuses every such acquisition.
    Independently of the mode, a mutex on a shared connection refuses to
    nest a lock inside the transaction of another lock it holds, since
    releasing that lock would silently release the nested one too.

    Attributes:
        name: The lock name
        level: Nesting level the lock would have been taken at
        enclosing: Name of the held lock whose transaction would enclose it,
            or None if the enclosing transaction was opened by the caller
    """

    def __init__(self, name: str, level: int, enclosing: str | None = None) -> None:
        self.name = name
        self.level = level
        self.enclosing = enclosing
        if enclosing is None:
            message = (
                f"Refusing to acquire lock '{name}' in nested transaction (level={level}); "
                "it would not be released until the outer transaction ends"
            )
        else:
            message = (
                f"Refusing to acquire lock '{name}' inside the transaction of held lock "
                f"'{enclosing}' (level={level}); releasing '{enclosing}' would release it too"
            )
        super().__init__(message)


class DatabaseNotFoundError(XactLockError, KeyError):
    """
    Raised when a database name is not found in the database registry.

    Attributes:
        name: The requested database name
        available: Names that are registered
    """

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        listed = ", ".join(sorted(available)) if available else "none"
        super().__init__(
            f"Unknown database '{name}'. Registered databases: {listed}. "
            "Did you forget to call register_database()?"
        )

    def __str__(self) -> str:
        # KeyError quotes its argument by default
        return str(self.args[0])


class DuplicateDatabaseError(XactLockError, ValueError):
    """Raised when registering a different handle under an existing database name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Database '{name}' is already registered. Pass replace=True to overwrite it."
        )


__all__ = [
    "XactLockError",
    "InvalidLockArgumentError",
    "LockStorageError",
    "LockAlreadyHeldError",
    "LockAcquisitionError",
    "NestedTransactionError",
    "DatabaseNotFoundError",
    "DuplicateDatabaseError",
]
