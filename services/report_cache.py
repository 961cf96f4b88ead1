"""
Short-lived Redis cache for complete report lookups.

Keys:
- report:{user_id}:{report_id} -> JSON report payload (TTL)
- report-cache:{user_id} -> set of the user's cached report keys

Without a Redis client every operation is a no-op.
"""

import json
import logging
from typing import Any
from uuid import UUID

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class ReportCache:
    """Per-user report cache with bulk invalidation."""

    def __init__(self, redis: Redis | None, ttl_seconds: int = 300):
        self._redis = redis
        self._ttl = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self._redis is not None and self._ttl > 0

    @staticmethod
    def _key(user_id: UUID, report_id: UUID) -> str:
        return f"report:{user_id}:{report_id}"

    @staticmethod
    def _index_key(user_id: UUID) -> str:
        return f"report-cache:{user_id}"

    async def get(self, user_id: UUID, report_id: UUID) -> dict[str, Any] | None:
        if not self.enabled:
            return None
        try:
            raw = await self._redis.get(self._key(user_id, report_id))
        except RedisError as e:
            logger.warning(f"Report cache read failed: {e}")
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, user_id: UUID, report_id: UUID, report: dict[str, Any]) -> None:
        if not self.enabled:
            return
        key = self._key(user_id, report_id)
        try:
            await self._redis.set(key, json.dumps(report, default=str), ex=self._ttl)
            await self._redis.sadd(self._index_key(user_id), key)
        except RedisError as e:
            logger.warning(f"Report cache write failed: {e}")

    async def delete(self, user_id: UUID, report_id: UUID) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.delete(self._key(user_id, report_id))
        except RedisError as e:
            logger.warning(f"Report cache delete failed: {e}")

    async def invalidate_user(self, user_id: UUID) -> int:
        """Drop every cached report of a user. Returns the number of keys removed."""
        if self._redis is None:
            return 0
        index_key = self._index_key(user_id)
        try:
            keys = await self._redis.smembers(index_key)
            if keys:
                await self._redis.delete(*keys)
            await self._redis.delete(index_key)
        except RedisError as e:
            logger.warning(f"Report cache invalidation failed: {e}")
            return 0
        return len(keys)
