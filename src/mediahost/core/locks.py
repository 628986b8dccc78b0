"""Per-customer locks for lifecycle operations."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mediahost.core.errors import ConflictError


class CustomerLocks:
    """Fail-fast ``asyncio.Lock`` per customer.

    Every lifecycle transition and every reconcile pass for a customer runs
    under that customer's lock, so two operations on the same instance never
    interleave. Different customers never contend.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def exclusive(self, customer_id: str) -> AsyncIterator[None]:
        """Hold the customer's lock or fail fast with ConflictError.

        Callers are rejected instead of queued: a second request for the
        same customer sees Conflict while the first is in flight. Nobody
        ever waits on a lock, so the entry is dropped on release.
        """
        lock = self._locks.get(customer_id)
        if lock is not None and lock.locked():
            raise ConflictError("Another operation is in progress for this instance")
        lock = self._locks[customer_id] = asyncio.Lock()
        # Fresh and unlocked with no await since the check, acquire is immediate
        await lock.acquire()
        try:
            yield
        finally:
            lock.release()
            if self._locks.get(customer_id) is lock:
                del self._locks[customer_id]
