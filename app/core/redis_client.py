"""Redis connection and the doctor directory cache."""

import asyncio
import json
from typing import Any, cast

import redis
import structlog

from app.config import settings

logger = structlog.get_logger(__name__)

DOCTOR_LIST_PREFIX = "doctor:list"

_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Get or create the shared Redis client."""
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_timeout=2,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Ping Redis from a worker thread.

    The client is synchronous, so the ping runs off the event loop where a
    caller's ``asyncio.wait_for`` can still give up on it.
    """
    try:
        return bool(await asyncio.to_thread(get_redis_client().ping))
    except (redis.RedisError, OSError) as e:
        logger.warning("redis_ping_failed", error=str(e))
        return False


def close_redis_connection() -> None:
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


def doctor_list_key(city: str | None, locality: str | None) -> str:
    """Cache key for an approved-doctor listing, ``*`` standing for no filter."""
    parts = [(value or "*").strip().lower() or "*" for value in (city, locality)]
    return ":".join([DOCTOR_LIST_PREFIX, *parts])


class CacheManager:
    """Redis-backed JSON cache.

    Cache failures are treated as misses so that a Redis outage only costs a
    database read.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    def get_json(self, key: str) -> Any | None:
        """Return the decoded value at ``key``, or None on a miss."""
        try:
            value = cast(str | None, self.redis.get(key))
            return json.loads(value) if value else None
        except (redis.RedisError, ValueError) as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store ``value`` as JSON.

        Args:
            key: Cache key
            value: JSON-serializable value; UUIDs and datetimes are stringified
            ttl: Expiry in seconds, no expiry when omitted

        Returns:
            True if the value was written
        """
        try:
            payload = json.dumps(value, default=str)
            if ttl:
                self.redis.setex(key, ttl, payload)
            else:
                self.redis.set(key, payload)
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning("cache_write_failed", key=key, error=str(e))
            return False

    def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching ``pattern``.

        Uses SCAN so a large keyspace does not block the server.

        Returns:
            Number of keys deleted
        """
        try:
            keys = list(self.redis.scan_iter(match=pattern))
            return cast(int, self.redis.delete(*keys)) if keys else 0
        except redis.RedisError as e:
            logger.warning("cache_delete_failed", pattern=pattern, error=str(e))
            return 0

    def invalidate_doctor_lists(self) -> int:
        """Drop every cached doctor listing after the directory changes."""
        removed = self.delete_pattern(f"{DOCTOR_LIST_PREFIX}:*")
        logger.info("doctor_cache_invalidated", removed=removed)
        return removed
