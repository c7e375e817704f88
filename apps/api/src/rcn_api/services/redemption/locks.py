"""Per-customer commit locks."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import LockError, RedisError

from rcn_api.services.errors import CustomerLockBusy, TransientStoreError


class CustomerLocks(Protocol):
    def hold(self, address: str, timeout_seconds: float) -> AsyncIterator[None]:
        """Async context manager serializing commits for one customer address."""


class CustomerLockRegistry:
    """In-process locks keyed by normalized customer address.

    Entries are dropped once no task holds or waits on them, so the registry
    does not grow with the number of customers ever seen.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, address: str, timeout_seconds: float) -> AsyncIterator[None]:
        lock = self._locks.setdefault(address, asyncio.Lock())
        self._users[address] = self._users.get(address, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout_seconds)
            except asyncio.TimeoutError as exc:
                logger.warning("Customer lock busy", address=address, timeout=timeout_seconds)
                raise CustomerLockBusy(address, timeout_seconds) from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[address] -= 1
            if self._users[address] == 0:
                del self._users[address]
                self._locks.pop(address, None)

    def __len__(self) -> int:
        return len(self._locks)


class RedisCustomerLockRegistry:
    """Redis-backed locks for deployments running several API processes."""

    def __init__(self, redis_client: Redis, *, lease_seconds: float = 30.0, prefix: str = "rcn:redemption-lock") -> None:
        self._redis = redis_client
        self._lease_seconds = lease_seconds
        self._prefix = prefix

    def _key(self, address: str) -> str:
        return f"{self._prefix}:{address}"

    @asynccontextmanager
    async def hold(self, address: str, timeout_seconds: float) -> AsyncIterator[None]:
        lock = self._redis.lock(
            self._key(address),
            timeout=self._lease_seconds,
            blocking_timeout=timeout_seconds,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            logger.warning("Customer lock backend unavailable", address=address, error=str(exc))
            raise TransientStoreError(f"Lock backend unavailable: {exc}") from exc
        if not acquired:
            logger.warning("Customer lock busy", address=address, timeout=timeout_seconds)
            raise CustomerLockBusy(address, timeout_seconds)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as exc:
                # Lease expired while the commit was running.
                logger.error("Customer lock lost before release", address=address, error=str(exc))
