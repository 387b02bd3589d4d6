"""
Keyed locks used to serialise per-driver rating updates.

``DistributedLock`` is Redis-based and safe across API processes: SET NX EX
to acquire, a Lua script for atomic check-and-delete on release.  Entering
it as a context manager polls until the lock is free or ``wait_seconds``
runs out.

``LocalLock`` is the in-process equivalent for single-process deployments
and tests (``settings.lock_backend = "local"``).

A rating lock is held until its unit of work ends, so the Redis TTL must
outlast the longest transaction that takes one.  ``RedisLockProvider``
never uses a TTL shorter than the wait window plus ``TTL_MARGIN_SECONDS``;
a transaction that runs past the TTL loses its lock.
"""

from __future__ import annotations

import asyncio
import math
import time
import uuid
import weakref

import redis.asyncio as aioredis

from src.config import settings

TTL_MARGIN_SECONDS = 20


class LockTimeout(RuntimeError):
    """The lock stayed held by someone else for the whole wait window."""


class DistributedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 30,
        wait_seconds: float = 0.0,
        retry_interval: float = 0.05,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.wait_seconds = wait_seconds
        self.retry_interval = retry_interval
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire once. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def acquire_blocking(self) -> bool:
        """Retry ``acquire`` until it succeeds or the wait window closes."""
        deadline = time.monotonic() + self.wait_seconds
        while True:
            if await self.acquire():
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self.retry_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        lua = """
        if redis.call("get", KEYS[1]) == ARGV[1] then
            return redis.call("del", KEYS[1])
        else
            return 0
        end
        """
        await self.redis.eval(lua, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        if not await self.acquire_blocking():
            raise LockTimeout(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()


class LocalLock:
    def __init__(self, lock: asyncio.Lock, key: str, wait_seconds: float = 0.0):
        self._lock = lock
        self.key = f"lock:{key}"
        self.wait_seconds = wait_seconds

    async def __aenter__(self):
        if not self._lock.locked():
            await self._lock.acquire()
            return self
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.wait_seconds)
        except asyncio.TimeoutError:
            raise LockTimeout(f"Could not acquire lock: {self.key}") from None
        return self

    async def __aexit__(self, *args):
        self._lock.release()


class RedisLockProvider:
    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int = settings.lock_ttl_seconds,
        wait_seconds: float = settings.lock_wait_seconds,
    ):
        self.client = client
        self.ttl_seconds = max(ttl_seconds, math.ceil(wait_seconds) + TTL_MARGIN_SECONDS)
        self.wait_seconds = wait_seconds

    def lock(self, key: str) -> DistributedLock:
        return DistributedLock(
            self.client, key, ttl_seconds=self.ttl_seconds, wait_seconds=self.wait_seconds
        )


class LocalLockProvider:
    def __init__(self, wait_seconds: float = settings.lock_wait_seconds):
        self.wait_seconds = wait_seconds
        # an entry lives only while some LocalLock still references it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock(self, key: str) -> LocalLock:
        inner = self._locks.setdefault(key, asyncio.Lock())
        return LocalLock(inner, key, wait_seconds=self.wait_seconds)
