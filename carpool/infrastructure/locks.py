"""
Redis-based distributed lock.

Used by the expiry sweep so that only one API process expires rides,
bookings and requests in a given cycle.

Acquire is ``SET NX PX``; release and extend are Lua scripts that act only
while the stored token is still ours, so a lock that timed out and was taken
by another worker is never released or extended by the old holder.
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

_RELEASE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_EXTEND = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    """Another holder owns the lock."""


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, name: str, ttl_seconds: float = 60
    ):
        self.redis = client
        self.key = f"carpool:lock:{name}"
        self.ttl_ms = int(ttl_seconds * 1000)
        self.token = uuid.uuid4().hex
        self.held = False

    async def acquire(self) -> bool:
        """Try once.  Returns True on success; never blocks."""
        self.held = bool(
            await self.redis.set(self.key, self.token, nx=True, px=self.ttl_ms)
        )
        return self.held

    async def extend(self) -> bool:
        """Push the expiry out by another TTL if we still hold the lock."""
        if not self.held:
            return False
        ok = bool(await self.redis.eval(_EXTEND, 1, self.key, self.token, self.ttl_ms))
        if not ok:
            logger.warning("Lost lock %s before extending it", self.key)
            self.held = False
        return ok

    async def release(self) -> None:
        if not self.held:
            return
        await self.redis.eval(_RELEASE, 1, self.key, self.token)
        self.held = False

    async def __aenter__(self) -> "DistributedLock":
        if not await self.acquire():
            raise LockNotAcquired(self.key)
        return self

    async def __aexit__(self, *exc) -> None:
        await self.release()
