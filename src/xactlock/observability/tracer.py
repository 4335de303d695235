"""
Tracers for lock operations.

TransactionalMutex never talks to OpenTelemetry directly. It receives a
Tracer and opens spans through it, which keeps OpenTelemetry optional and
lets tests record what the mutex traced.

Three tracers are provided:
- NullTracer: tracing disabled, spans yield None
- OpenTelemetryTracer: real spans from the global tracer provider
- MockTracer: yields RecordedSpan objects kept in memory for assertions

Example:
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("xactlock.lock.acquire", {ATTR_LOCK_NAME: "reports"}) as span:
    ...     acquired = await backend.try_lock(session, key, shared=False, timeout_ms=0)
    ...     if span:
    ...         span.set_attribute(ATTR_LOCK_ACQUIRED, acquired)
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

# Optional OpenTelemetry import - single source of truth
try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]


@runtime_checkable
class Tracer(Protocol):
    """
    What the mutex needs from a tracer.

    span() returns a context manager yielding an object with
    set_attribute(key, value), or None when nothing is recorded. Callers
    guard attribute updates with `if span:`.
    """

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Any]:
        """Open a span named `name` with initial attributes."""
        ...

    @property
    def enabled(self) -> bool:
        """True if spans are recorded."""
        ...


class NullTracer:
    """Tracer used when tracing is disabled or OpenTelemetry is missing."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the OpenTelemetry API.

    Spans go to whatever tracer provider the application configured; with
    no provider configured the API hands out non-recording spans.

    Args:
        tracer_name: Instrumentation scope name (typically __name__)

    Raises:
        ImportError: If opentelemetry-api is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace as otel_trace

        self._tracer = otel_trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})

    @property
    def enabled(self) -> bool:
        return True


@dataclass
class RecordedSpan:
    """
    A span captured by MockTracer.

    Attributes:
        name: Span name
        initial_attributes: Attributes passed when the span was opened
            (None if none were passed)
        attributes: Initial attributes plus everything set while it was open
        error: Exception that escaped the span, if any
    """

    name: str
    initial_attributes: dict[str, Any] | None
    attributes: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None

    def set_attribute(self, key: str, value: Any) -> None:
        """Record an attribute set on the open span."""
        self.attributes[key] = value


class MockTracer:
    """
    Tracer for tests that keeps every span in memory.

    Example:
        >>> tracer = MockTracer()
        >>> mutex = TransactionalMutex(backend, tracer=tracer)
        >>> await mutex.acquire("reports")
        >>> tracer.span_names
        ['xactlock.lock.acquire']
        >>> tracer.spans[0].attributes[ATTR_LOCK_ACQUIRED]
        True
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[RecordedSpan, None, None]:
        recorded = RecordedSpan(name, attributes, dict(attributes or {}))
        self.spans.append(recorded)
        try:
            yield recorded
        except BaseException as e:
            recorded.error = e
            raise

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        """Names of recorded spans, in the order they were opened."""
        return [s.name for s in self.spans]

    def find(self, name: str) -> list[RecordedSpan]:
        """Recorded spans with the given name."""
        return [s for s in self.spans if s.name == name]

    def clear(self) -> None:
        """Forget recorded spans."""
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Pick a tracer for a component.

    Args:
        name: Instrumentation scope name (typically __name__)
        enable_tracing: False forces a NullTracer

    Returns:
        OpenTelemetryTracer if enabled and OpenTelemetry is installed,
        NullTracer otherwise
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "OTEL_AVAILABLE",
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "Tracer",
    "create_tracer",
]
