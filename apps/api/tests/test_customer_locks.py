from __future__ import annotations

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError

from rcn_api.services.errors import CustomerLockBusy, TransientStoreError
from rcn_api.services.redemption import CustomerLockRegistry, RedisCustomerLockRegistry

CUSTOMER = "0x" + "c0" * 20
OTHER = "0x" + "c1" * 20


@pytest.mark.asyncio
async def test_commits_for_one_customer_run_one_at_a_time() -> None:
    locks = CustomerLockRegistry()
    active = 0
    peak = 0

    async def critical_section() -> None:
        nonlocal active, peak
        async with locks.hold(CUSTOMER, 1.0):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(critical_section() for _ in range(5)))

    assert peak == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_different_customers_do_not_block_each_other() -> None:
    locks = CustomerLockRegistry()

    async with locks.hold(CUSTOMER, 0.05):
        async with locks.hold(OTHER, 0.05):
            assert len(locks) == 2


@pytest.mark.asyncio
async def test_lock_wait_is_bounded() -> None:
    locks = CustomerLockRegistry()

    async with locks.hold(CUSTOMER, 1.0):
        with pytest.raises(CustomerLockBusy) as excinfo:
            async with locks.hold(CUSTOMER, 0.02):
                pass

    assert excinfo.value.address == CUSTOMER
    assert excinfo.value.retryable is True
    assert len(locks) == 0


class StubRedisLock:
    def __init__(self, *, acquired: bool = True, acquire_error: Exception | None = None, release_error: Exception | None = None) -> None:
        self.acquired = acquired
        self.acquire_error = acquire_error
        self.release_error = release_error
        self.released = False

    async def acquire(self) -> bool:
        if self.acquire_error is not None:
            raise self.acquire_error
        return self.acquired

    async def release(self) -> None:
        if self.release_error is not None:
            raise self.release_error
        self.released = True


class StubRedis:
    def __init__(self, lock: StubRedisLock) -> None:
        self._lock = lock
        self.calls: list[tuple[str, dict]] = []

    def lock(self, name: str, **kwargs) -> StubRedisLock:
        self.calls.append((name, kwargs))
        return self._lock


@pytest.mark.asyncio
async def test_redis_lock_uses_lease_and_blocking_timeout() -> None:
    lock = StubRedisLock()
    redis = StubRedis(lock)

    async with RedisCustomerLockRegistry(redis, lease_seconds=12.0).hold(CUSTOMER, 0.5):
        pass

    assert redis.calls == [(f"rcn:redemption-lock:{CUSTOMER}", {"timeout": 12.0, "blocking_timeout": 0.5})]
    assert lock.released is True


@pytest.mark.asyncio
async def test_redis_lock_not_acquired_is_busy() -> None:
    registry = RedisCustomerLockRegistry(StubRedis(StubRedisLock(acquired=False)))

    with pytest.raises(CustomerLockBusy):
        async with registry.hold(CUSTOMER, 0.1):
            pass


@pytest.mark.asyncio
async def test_redis_backend_failure_is_transient() -> None:
    registry = RedisCustomerLockRegistry(StubRedis(StubRedisLock(acquire_error=RedisConnectionError("down"))))

    with pytest.raises(TransientStoreError):
        async with registry.hold(CUSTOMER, 0.1):
            pass


@pytest.mark.asyncio
async def test_expired_redis_lease_does_not_mask_the_commit() -> None:
    lock = StubRedisLock(release_error=LockError("Cannot release a lock that's no longer owned"))
    ran = False

    async with RedisCustomerLockRegistry(StubRedis(lock)).hold(CUSTOMER, 0.1):
        ran = True

    assert ran is True
