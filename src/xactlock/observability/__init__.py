"""
Observability utilities for xactlock.

Provides the composition-based tracer used by TransactionalMutex and the
standard span attribute names.

Example:
    >>> from xactlock.observability import MockTracer
    >>>
    >>> tracer = MockTracer()
    >>> mutex = TransactionalMutex(engine, tracer=tracer)
    >>> await mutex.acquire("reports")
    >>> tracer.span_names
    ['xactlock.lock.acquire']

Note:
    OpenTelemetry is an optional dependency. Without it, create_tracer()
    returns a NullTracer.
"""

from xactlock.observability.attributes import (
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_COUNT,
    ATTR_LOCK_KEY,
    ATTR_LOCK_MODE,
    ATTR_LOCK_NAME,
    ATTR_LOCK_NESTING_LEVEL,
    ATTR_LOCK_RELEASED,
    ATTR_LOCK_TIMEOUT_MS,
)
from xactlock.observability.tracer import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "OTEL_AVAILABLE",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "create_tracer",
    # Attributes
    "ATTR_LOCK_NAME",
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_MODE",
    "ATTR_LOCK_TIMEOUT_MS",
    "ATTR_LOCK_ACQUIRED",
    "ATTR_LOCK_NESTING_LEVEL",
    "ATTR_LOCK_RELEASED",
    "ATTR_LOCK_COUNT",
]
