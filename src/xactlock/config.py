"""
Configuration for transactional mutexes.

This module provides:
- MutexConfig: Per-mutex settings (mode, lock function, nesting policy)
- DEFAULT_LOCK_FUNCTION: Name of the server-side lock function
- validate_function_name: Guard for SQL identifiers interpolated into queries
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from xactlock.types import LockMode

DEFAULT_LOCK_FUNCTION = "try_advisory_xact_lock_timeout"

# Optionally schema-qualified, unquoted identifier
_FUNCTION_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_MAX_IDENTIFIER_LENGTH = 63


def validate_function_name(function_name: str) -> str:
    """
    Validate the name of the server-side lock function.

    The name is interpolated into SQL, so only plain (optionally
    schema-qualified) identifiers are accepted.

    Args:
        function_name: Function name, e.g. "try_advisory_xact_lock_timeout"
            or "locking.try_advisory_xact_lock_timeout"

    Returns:
        The validated function name

    Raises:
        ValueError: If the name is not a plain SQL identifier
    """
    if not _FUNCTION_NAME_PATTERN.match(function_name):
        raise ValueError(
            f"function_name must be a plain SQL identifier, optionally schema-qualified, "
            f"got {function_name!r}."
        )
    if any(len(part) > _MAX_IDENTIFIER_LENGTH for part in function_name.split(".")):
        raise ValueError(
            f"function_name parts must be at most {_MAX_IDENTIFIER_LENGTH} characters, "
            f"got {function_name!r}."
        )
    return function_name


@dataclass(frozen=True)
class MutexConfig:
    """
    Configuration for a TransactionalMutex.

    Attributes:
        mode: Lock mode used for every acquisition of the mutex. EXCLUSIVE
            (default) for writers, SHARED for concurrent readers.
        function_name: Server-side lock function with the signature
            (key bigint, shared boolean, timeout_ms integer) RETURNS boolean.
            Only used when the mutex builds its own PostgreSQL backend.
        strict_nesting: If True, refuse to acquire a lock inside an already
            open transaction (raises NestedTransactionError). If False
            (default), the lock is acquired and a warning is logged.
        holder_id: Optional identifier of the lock holder, reported in LockInfo

    Example:
        >>> config = MutexConfig(mode=LockMode.SHARED, holder_id="report-worker-1")
        >>> mutex = TransactionalMutex(engine, config)
    """

    mode: LockMode = LockMode.EXCLUSIVE
    function_name: str = DEFAULT_LOCK_FUNCTION
    strict_nesting: bool = False
    holder_id: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not isinstance(self.mode, LockMode):
            raise ValueError(
                f"mode must be a LockMode, got {self.mode!r}. "
                "Use LockMode.EXCLUSIVE (default) or LockMode.SHARED."
            )

        validate_function_name(self.function_name)

        if self.holder_id is not None and not self.holder_id:
            raise ValueError("holder_id must be a non-empty string or None.")

    @property
    def shared(self) -> bool:
        """True if the mutex takes shared locks."""
        return self.mode.shared


__all__ = [
    "DEFAULT_LOCK_FUNCTION",
    "MutexConfig",
    "validate_function_name",
]
