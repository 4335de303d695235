"""
Lock name to lock key conversion.

PostgreSQL advisory locks are identified by a signed 64-bit integer. Lock
names are free-form strings, so every name is hashed into that key space.
The mapping is stable across processes, hosts and Python versions: two
processes naming the same lock always contend for the same key.

Distinct names may collide. Colliding names behave as a single contended
resource, which is safe but can cause unexpected waiting.
"""

from __future__ import annotations

import hashlib

from xactlock.exceptions import InvalidLockArgumentError

LOCK_KEY_MIN = -(2**63)
LOCK_KEY_MAX = 2**63 - 1

NAME_SEPARATOR = ":"


def lock_key(name: str) -> int:
    """
    Convert a lock name to a PostgreSQL advisory lock key.

    Uses the first 8 bytes of the SHA-256 digest of the UTF-8 encoded name,
    read big-endian as a two's-complement signed integer, so the whole
    bigint range is used.

    Args:
        name: Lock name (any length, any Unicode)

    Returns:
        Signed 64-bit integer lock key

    Example:
        >>> lock_key("reports:nightly") == lock_key("reports:nightly")
        True
    """
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


def lock_name(*parts: object) -> str:
    """
    Build a namespaced lock name from its parts.

    Args:
        *parts: Name components; each is converted with str()

    Returns:
        Components joined with ":" (e.g. "invoice:export:42")

    Raises:
        InvalidLockArgumentError: If no parts are given or a part is empty

    Example:
        >>> lock_name("invoice", "export", 42)
        'invoice:export:42'
    """
    if not parts:
        raise InvalidLockArgumentError("parts", parts, "at least one name part is required")

    rendered = [str(part) for part in parts]
    if any(part == "" for part in rendered):
        raise InvalidLockArgumentError("parts", parts, "name parts must not be empty")
    return NAME_SEPARATOR.join(rendered)


__all__ = [
    "LOCK_KEY_MAX",
    "LOCK_KEY_MIN",
    "lock_key",
    "lock_name",
]
