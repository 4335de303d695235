"""Conversion of caller wait budgets into the lock function's timeout unit."""

from __future__ import annotations

import math

from xactlock.exceptions import InvalidLockArgumentError

# The lock function takes an int4 millisecond timeout (~24.8 days).
MAX_TIMEOUT_MS = 2**31 - 1


def to_timeout_ms(wait_seconds: float) -> int:
    """
    Convert a wait budget in seconds to lock function milliseconds.

    Zero stays zero (non-blocking try). Positive budgets are rounded up, so
    a small positive wait never turns into a non-blocking attempt. Budgets
    beyond the int4 range, including infinity, are clamped to MAX_TIMEOUT_MS.

    Args:
        wait_seconds: Non-negative number of seconds to wait

    Returns:
        Timeout in milliseconds, 0 <= result <= MAX_TIMEOUT_MS

    Raises:
        InvalidLockArgumentError: If wait_seconds is not a real number
            (bools included), negative or NaN

    Example:
        >>> to_timeout_ms(1.5)
        1500
        >>> to_timeout_ms(0)
        0
    """
    if isinstance(wait_seconds, bool) or not isinstance(wait_seconds, int | float):
        raise InvalidLockArgumentError("wait_seconds", wait_seconds, "must be a number")
    if math.isnan(wait_seconds):
        raise InvalidLockArgumentError("wait_seconds", wait_seconds, "must be a number")
    if wait_seconds < 0:
        raise InvalidLockArgumentError("wait_seconds", wait_seconds, "must be non-negative")
    if wait_seconds * 1000 >= MAX_TIMEOUT_MS:
        return MAX_TIMEOUT_MS

    # round() first so float noise (0.1 * 1000 == 100.00000000000001) is not rounded up
    return min(math.ceil(round(wait_seconds * 1000, 6)), MAX_TIMEOUT_MS)


__all__ = [
    "MAX_TIMEOUT_MS",
    "to_timeout_ms",
]
