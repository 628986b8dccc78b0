"""Tests for CustomerLocks."""

import asyncio

import pytest

from mediahost.core.errors import ConflictError
from mediahost.core.locks import CustomerLocks


async def _can_acquire(locks: CustomerLocks, customer_id: str) -> bool:
    try:
        async with locks.exclusive(customer_id):
            return True
    except ConflictError:
        return False


class TestCustomerLocks:
    """Per-customer fail-fast locking."""

    async def test_exclusive_holds_lock(self) -> None:
        locks = CustomerLocks()

        async with locks.exclusive("c1"):
            assert await _can_acquire(locks, "c1") is False

        assert await _can_acquire(locks, "c1") is True

    async def test_second_holder_conflicts(self) -> None:
        """A second operation is rejected, not queued."""
        locks = CustomerLocks()

        async with locks.exclusive("c1"):
            with pytest.raises(ConflictError):
                async with locks.exclusive("c1"):
                    pass

    async def test_customers_do_not_contend(self) -> None:
        locks = CustomerLocks()

        async with locks.exclusive("c1"):
            async with locks.exclusive("c2"):
                assert set(locks._locks) == {"c1", "c2"}

    async def test_released_on_exception(self) -> None:
        locks = CustomerLocks()

        with pytest.raises(RuntimeError):
            async with locks.exclusive("c1"):
                raise RuntimeError("boom")

        assert await _can_acquire(locks, "c1") is True

    async def test_registry_pruned_after_release(self) -> None:
        locks = CustomerLocks()

        for customer_id in ("c1", "c2", "c3"):
            async with locks.exclusive(customer_id):
                pass

        assert locks._locks == {}

    async def test_conflict_keeps_holder_entry(self) -> None:
        locks = CustomerLocks()

        async with locks.exclusive("c1"):
            assert await _can_acquire(locks, "c1") is False
            assert "c1" in locks._locks

        assert locks._locks == {}

    async def test_concurrent_tasks_one_wins(self) -> None:
        locks = CustomerLocks()
        entered = asyncio.Event()
        release = asyncio.Event()

        async def holder() -> None:
            async with locks.exclusive("c1"):
                entered.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await entered.wait()

        with pytest.raises(ConflictError):
            async with locks.exclusive("c1"):
                pass

        release.set()
        await task
        assert locks._locks == {}
