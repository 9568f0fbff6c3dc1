"""
Redis client factory.

Redis backs the per-IP login throttle and the maintenance worker lock. The
API client is created once in the application lifespan (see
``dietpanel.main``) and handed to routes through
``dietpanel.api.deps.get_redis``; nothing imports it as a global.
"""
from __future__ import annotations

import logging

import redis

from dietpanel.core.config import Settings

logger = logging.getLogger(__name__)


def create_redis(config: Settings) -> redis.Redis:
    """
    Build a Redis client from settings.

    The connection is lazy: no network traffic happens until the first command.

    Args:
        config: application settings

    Returns:
        Redis client with ``decode_responses=True``
    """
    return redis.Redis(
        host=config.REDIS_HOST,
        port=config.REDIS_PORT,
        db=config.REDIS_DB,
        password=config.REDIS_PASSWORD,
        decode_responses=True,
        socket_timeout=1.0,
    )


def hit_fixed_window(client: redis.Redis, key: str, *, limit: int, window_seconds: int) -> bool:
    """
    Count one hit against a fixed window counter.

    Returns:
        True while the caller is within ``limit`` hits for the current window
    """
    count = int(client.incr(key))
    if count == 1:
        client.expire(key, window_seconds)
    return count <= limit


def close_redis(client: redis.Redis | None) -> None:
    if client is None:
        return
    try:
        client.close()
    except redis.RedisError as e:
        logger.warning("Failed to close redis client: %s", e)


def acquire_lock(client: redis.Redis, key: str, value: str, *, expire_seconds: int) -> bool:
    return bool(client.set(key, value, nx=True, ex=expire_seconds))


def release_lock(client: redis.Redis, key: str, value: str) -> None:
    """Delete the lock only if this holder still owns it."""
    if client.get(key) == value:
        client.delete(key)
