"""
Standard span attribute names for xactlock tracing.

Keeping attribute names in one place keeps spans from the mutex and from
application code consistent and queryable.
"""

# Lock identity
ATTR_LOCK_NAME = "xactlock.lock.name"
"""Caller-chosen lock name."""

ATTR_LOCK_KEY = "xactlock.lock.key"
"""Numeric advisory lock key derived from the name."""

ATTR_LOCK_MODE = "xactlock.lock.mode"
"""Lock mode: "exclusive" or "shared"."""

# Acquisition
ATTR_LOCK_TIMEOUT_MS = "xactlock.lock.timeout_ms"
"""Wait budget passed to the lock function, in milliseconds."""

ATTR_LOCK_ACQUIRED = "xactlock.lock.acquired"
"""Whether the lock was acquired."""

ATTR_LOCK_NESTING_LEVEL = "xactlock.lock.nesting_level"
"""Nesting level of the session holding the lock (1 = top-level)."""

# Release
ATTR_LOCK_RELEASED = "xactlock.lock.released"
"""Whether the release committed the lock's session."""

ATTR_LOCK_COUNT = "xactlock.lock.count"
"""Number of locks involved in a bulk operation."""


__all__ = [
    "ATTR_LOCK_ACQUIRED",
    "ATTR_LOCK_COUNT",
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_MODE",
    "ATTR_LOCK_NAME",
    "ATTR_LOCK_NESTING_LEVEL",
    "ATTR_LOCK_RELEASED",
    "ATTR_LOCK_TIMEOUT_MS",
]
