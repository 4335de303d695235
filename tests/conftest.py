"""
Shared pytest fixtures for the xactlock library tests.

This module provides:
- In-memory lock server and backend fixtures
- Mutex fixtures (exclusive, shared, competing mutexes on one server)
- A MockTracer for span assertions
- Isolation of the module-level database registry

Unit tests run entirely against the in-memory backend; PostgreSQL fixtures
live in tests/integration/conftest.py.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from xactlock import (
    InMemoryLockBackend,
    InMemoryLockServer,
    LockMode,
    MutexConfig,
    TransactionalMutex,
    default_database_registry,
)
from xactlock.observability import MockTracer

# ============================================================================
# Backend Fixtures
# ============================================================================


@pytest.fixture
def lock_server() -> InMemoryLockServer:
    """Provide a fresh in-memory lock table shared by the test's backends."""
    return InMemoryLockServer()


@pytest.fixture
def backend(lock_server: InMemoryLockServer) -> InMemoryLockBackend:
    """Provide an engine-like in-memory backend (one connection per lock)."""
    return InMemoryLockBackend(lock_server)


# ============================================================================
# Mutex Fixtures
# ============================================================================


@pytest.fixture
def tracer() -> MockTracer:
    """Provide a MockTracer that records spans."""
    return MockTracer()


@pytest.fixture
def mutex(backend: InMemoryLockBackend, tracer: MockTracer) -> TransactionalMutex:
    """Provide an exclusive mutex on the in-memory backend."""
    return TransactionalMutex(backend, tracer=tracer)


@pytest.fixture
def other_mutex(lock_server: InMemoryLockServer) -> TransactionalMutex:
    """Provide a second exclusive mutex contending on the same lock table."""
    return TransactionalMutex(InMemoryLockBackend(lock_server), enable_tracing=False)


@pytest.fixture
def shared_mutex(lock_server: InMemoryLockServer) -> TransactionalMutex:
    """Provide a shared-mode mutex on the same lock table."""
    return TransactionalMutex(
        InMemoryLockBackend(lock_server),
        MutexConfig(mode=LockMode.SHARED),
        enable_tracing=False,
    )


@pytest.fixture
def other_shared_mutex(lock_server: InMemoryLockServer) -> TransactionalMutex:
    """Provide a second shared-mode mutex on the same lock table."""
    return TransactionalMutex(
        InMemoryLockBackend(lock_server),
        MutexConfig(mode=LockMode.SHARED),
        enable_tracing=False,
    )


# ============================================================================
# Registry Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_database_registry() -> Generator[None, None, None]:
    """Keep registrations made by one test out of the others."""
    default_database_registry.clear()
    yield
    default_database_registry.clear()
