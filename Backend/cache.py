"""
Short-lived Redis cache for leaderboard reads.

The cache is optional: with no ``REDIS_URL`` (or an unreachable server) every
read is a miss and writes are no-ops, so the API keeps serving from the
database.
"""

import json
import logging
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "leaderboard:"


class LeaderboardCache:
    """JSON values under ``leaderboard:*`` keys with a TTL."""

    def __init__(self, client: Optional[redis.Redis], ttl: int = 5):
        self.client = client
        self.ttl = ttl

    @classmethod
    def from_url(cls, url: str, ttl: int = 5) -> "LeaderboardCache":
        if not url:
            logger.info("Cache disabled (REDIS_URL not set)")
            return cls(None, ttl)
        try:
            client = redis.Redis.from_url(url, decode_responses=True)
            client.ping()
            logger.info("✓ Redis connected — caching is enabled")
            return cls(client, ttl)
        except redis.RedisError as exc:
            logger.warning("⚠ Redis unavailable — running without cache (%s)", exc)
            return cls(None, ttl)

    def get(self, key: str) -> Optional[Any]:
        if self.client is None:
            return None
        try:
            data = self.client.get(KEY_PREFIX + key)
            return json.loads(data) if data else None
        except redis.RedisError as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None

    def set(self, key: str, value: Any) -> None:
        if self.client is None:
            return
        try:
            self.client.setex(KEY_PREFIX + key, self.ttl, json.dumps(value, default=str))
        except redis.RedisError as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)

    def invalidate(self) -> None:
        """Drop every leaderboard entry; called after writes that move standings."""
        if self.client is None:
            return
        try:
            keys = list(self.client.scan_iter(match=KEY_PREFIX + "*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as exc:
            logger.warning("Cache invalidation failed: %s", exc)
