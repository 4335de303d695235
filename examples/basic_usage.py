"""
Basic Usage Example

This example demonstrates the fundamental concepts of transaction-bound locks:
- Acquiring and releasing a lock
- Contention between two holders
- Shared (reader) and exclusive (writer) modes
- Scoped locking with hold()
- Inspecting held and active locks

It runs on the in-memory backend. To use PostgreSQL, install the lock
function (xactlock.migrations.install_lock_function) and pass an AsyncEngine
instead of the backend.

Run with: python examples/basic_usage.py
"""

import asyncio

from xactlock import (
    InMemoryLockBackend,
    InMemoryLockServer,
    LockAcquisitionError,
    LockMode,
    MutexConfig,
    TransactionalMutex,
    lock_name,
)


async def main() -> None:
    print("=" * 60)
    print("Transaction-Bound Lock Example")
    print("=" * 60)

    # Two workers contending on the same (simulated) database
    server = InMemoryLockServer()
    worker_a = TransactionalMutex(InMemoryLockBackend(server), enable_tracing=False)
    worker_b = TransactionalMutex(InMemoryLockBackend(server), enable_tracing=False)

    name = lock_name("invoice", "export", 2024)

    # Acquire and contend
    print("\n1. Acquiring a lock:")
    print(f"   worker A acquires {name!r}: {await worker_a.acquire(name)}")
    print(f"   worker B tries without waiting: {await worker_b.acquire(name)}")
    print(f"   worker B waits 0.2s: {await worker_b.acquire(name, wait_seconds=0.2)}")

    # Release and retry
    print("\n2. Releasing:")
    print(f"   worker A releases: {await worker_a.release(name)}")
    print(f"   worker B acquires: {await worker_b.acquire(name)}")
    await worker_b.release(name)

    # Readers and writers
    print("\n3. Shared and exclusive modes:")
    shared = MutexConfig(mode=LockMode.SHARED)
    reader_1 = TransactionalMutex(InMemoryLockBackend(server), shared, enable_tracing=False)
    reader_2 = TransactionalMutex(InMemoryLockBackend(server), shared, enable_tracing=False)
    print(f"   reader 1: {await reader_1.acquire('catalog')}")
    print(f"   reader 2: {await reader_2.acquire('catalog')}")
    print(f"   writer:   {await worker_a.acquire('catalog')}")
    await reader_1.release_all()
    await reader_2.release_all()

    # Scoped locking
    print("\n4. Scoped locking with hold():")
    async with worker_a.hold("reports:nightly") as info:
        print(f"   holding {info.name!r} (key={info.lock_key})")
        try:
            async with worker_b.hold("reports:nightly"):
                pass
        except LockAcquisitionError as e:
            print(f"   worker B blocked: {e}")
    print(f"   released on exit: {not worker_a.is_acquired('reports:nightly')}")

    # Inspection
    print("\n5. Inspection:")
    await worker_a.acquire("a")
    await worker_b.acquire("b")
    print(f"   worker A holds: {list(worker_a.list_held())}")
    for row in await worker_a.list_active():
        owner = "self" if row.is_self else f"pid {row.pid}"
        print(f"   {row.mode:<13} key={row.lock_key:<21} held by {owner}")

    # Cleanup
    print("\n6. Cleanup:")
    print(f"   worker A released {await worker_a.release_all()} lock(s)")
    print(f"   worker B released {await worker_b.release_all()} lock(s)")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
