"""
Redis distributed lock for crawl jobs.

``with_lock`` takes ``lock:job:{name}`` with ``SET NX EX`` and a random
owner token. If the key exists the job is skipped, not queued. The release
only deletes the key when it still holds this run's token, so a run whose
TTL expired cannot free a lock taken by a later run.

The release is get-compare-delete in three round trips: a lock that
expires and is re-acquired between the GET and the DEL can still be
deleted. Jobs are idempotent, so this window is accepted.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import redis.asyncio as aioredis

from harvester.db.connection import get_redis
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

LOCK_KEY_PREFIX = "lock:job:"


def lock_key(name: str) -> str:
    return f"{LOCK_KEY_PREFIX}{name}"


@dataclass
class LockResult:
    """Outcome of ``with_lock``.

    Attributes:
        acquired: False when another holder had the lock; the job did not run.
        value: The job's return value when it ran.
    """

    acquired: bool
    value: Any = None


class DistributedLock:
    def __init__(self, redis_client: aioredis.Redis | None = None) -> None:
        self._redis = redis_client

    def _get_redis(self) -> aioredis.Redis:
        """Lazy-load Redis client."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    async def acquire(self, key: str, ttl: int) -> str | None:
        """Return the owner token, or None when the lock is held elsewhere."""
        token = uuid.uuid4().hex
        was_set = await self._get_redis().set(key, token, ex=ttl, nx=True)
        return token if was_set else None

    async def release(self, key: str, token: str) -> bool:
        """Delete ``key`` if it still holds ``token``."""
        r = self._get_redis()
        try:
            current = await r.get(key)
            if current != token:
                logger.warning("[lock] %s no longer owned by this run, leaving it", key)
                return False
            await r.delete(key)
            return True
        except Exception as e:
            logger.error("[lock] release of %s failed: %s", key, e)
            return False

    async def with_lock(
        self, key: str, ttl: int, job: Callable[[], Awaitable[Any]]
    ) -> LockResult:
        """Run ``job`` only if ``key`` can be acquired.

        Args:
            key: Lock key, usually ``lock_key(job_name)``.
            ttl: Lock expiry in seconds; should exceed the job's usual runtime.
            job: Zero-arg coroutine function.

        Returns:
            ``LockResult(acquired=False)`` when skipped, else the job value.
            Exceptions raised by ``job`` propagate after the lock is released.
        """
        token = await self.acquire(key, ttl)
        if token is None:
            logger.info("[lock] %s is held, skipping this run", key)
            return LockResult(acquired=False)
        try:
            return LockResult(acquired=True, value=await job())
        finally:
            await self.release(key, token)
