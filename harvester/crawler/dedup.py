"""
Redis-based push deduplication markers.

A marker ``push:dedup:{sha1(key)}`` is claimed with ``SET NX EX`` before a
notification goes out. Whoever creates the marker owns the send; everyone
else (other instances, later runs within the TTL) skips it.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Any

import redis.asyncio as aioredis

from harvester.db.connection import get_redis
from harvester.utils.logger import get_logger

logger = get_logger(__name__)

_DEDUP_KEY_PREFIX = "push:dedup:"
_DEFAULT_TTL_SECONDS = 3 * 24 * 3600  # 3 days


def dedupe_key_for(row: dict[str, Any]) -> str:
    """Canonical link when present, else ``title|published_at|language``."""
    link = (row.get("link") or "").strip()
    if link:
        return link
    published = row.get("published_at")
    if isinstance(published, datetime):
        published = published.isoformat()
    return f"{row.get('title', '')}|{published or ''}|{row.get('language', '')}"


class PushDedup:
    """Cluster-wide at-most-once claim for push notifications."""

    def __init__(
        self,
        redis_client: aioredis.Redis | None = None,
        ttl_seconds: int = _DEFAULT_TTL_SECONDS,
        key_prefix: str = _DEDUP_KEY_PREFIX,
    ) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds
        self._key_prefix = key_prefix

    def _get_redis(self) -> aioredis.Redis:
        """Lazy-load Redis client."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    @staticmethod
    def compute_hash(dedupe_key: str) -> str:
        return hashlib.sha1(dedupe_key.encode("utf-8")).hexdigest()

    def _make_key(self, content_hash: str) -> str:
        return f"{self._key_prefix}{content_hash}"

    async def claim(self, dedupe_key: str) -> tuple[bool, str]:
        """Try to become the single sender for ``dedupe_key``.

        Returns:
            Tuple of (claimed: bool, content_hash: str). A Redis failure
            counts as not claimed: skipping a push is preferred over
            sending it twice.
        """
        content_hash = self.compute_hash(dedupe_key)
        key = self._make_key(content_hash)
        try:
            # Returns True if the key was set (new), None if it already existed
            was_set = await self._get_redis().set(key, "1", ex=self._ttl, nx=True)
            return bool(was_set), content_hash
        except Exception as e:
            logger.error("Redis push dedup claim failed: %s", e)
            return False, content_hash
