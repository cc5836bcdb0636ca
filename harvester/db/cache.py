"""
Redis-backed JSON cache.

Every crawl product that is not stored relationally (calendar periods,
quotes, the symbol catalog, job status) and the read-API response cache go
through this service. Entries always carry a TTL; nothing is cached in
process memory.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis

from harvester.db.connection import get_redis
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

CALENDAR_TTL = 15 * 60
HISTORICAL_TTL = 2 * 3600
CATALOG_TTL = 6 * 3600
QUOTES_TTL = 60
NEWS_LIST_TTL = 5 * 60
STATUS_TTL = 7 * 24 * 3600


def calendar_key(period: str) -> str:
    return f"calendar:{period}"


def historical_key(symbol: str) -> str:
    return f"historical:{symbol.lower()}:all"


def news_list_key(
    language: str, category: str, search: str, page: int, fields: str
) -> str:
    return f"news:{language}:{category or 'all'}:{search or '-'}:{page}:{fields or 'full'}"


def news_pattern(language: str) -> str:
    return f"news:{language}:*"


CATALOG_KEY = "catalog:symbols"
QUOTES_KEY = "quotes:live"


class CacheService:
    """JSON get/set with TTL plus pattern invalidation.

    Redis failures on reads are treated as cache misses; failures on writes
    are logged and swallowed so a cache outage never breaks a crawl.
    """

    def __init__(self, redis_client: aioredis.Redis | None = None) -> None:
        self._redis = redis_client

    def _get_redis(self) -> aioredis.Redis:
        """Lazy-load Redis client."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    async def get_json(self, key: str) -> Any | None:
        """Return the decoded value stored at ``key`` or None on miss."""
        try:
            raw = await self._get_redis().get(key)
        except Exception as e:
            logger.error("Cache get failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Cache entry %s is not valid JSON, ignoring", key)
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> bool:
        """Store ``value`` as JSON under ``key`` for ``ttl`` seconds."""
        try:
            await self._get_redis().set(key, json.dumps(value, default=str), ex=ttl)
            return True
        except Exception as e:
            logger.error("Cache set failed for %s: %s", key, e)
            return False

    async def delete(self, key: str) -> int:
        try:
            return int(await self._get_redis().delete(key))
        except Exception as e:
            logger.error("Cache delete failed for %s: %s", key, e)
            return 0

    async def keys(self, pattern: str) -> list[str]:
        try:
            return [key async for key in self._get_redis().scan_iter(match=pattern, count=1000)]
        except Exception as e:
            logger.error("Cache scan failed for %s: %s", pattern, e)
            return []

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns deleted count."""
        r = self._get_redis()
        try:
            keys: list[str] = []
            async for key in r.scan_iter(match=pattern, count=1000):
                keys.append(key)
            if not keys:
                return 0
            deleted = await r.delete(*keys)
            logger.info("Cache: cleared %d keys matching %s", deleted, pattern)
            return int(deleted)
        except Exception as e:
            logger.error("Cache pattern delete failed for %s: %s", pattern, e)
            return 0
