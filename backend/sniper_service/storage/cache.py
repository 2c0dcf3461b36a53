"""Redis connection used by the Redis learner state backend.

Values are orjson-encoded documents. While Redis is unreachable every
helper degrades to a no-op (None / False) and logs a warning, so the
learner keeps running on its in-memory state. The learner store calls
init_cache() again on its next save.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
import redis.asyncio as redis

from sniper_service.config import get_settings

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


async def init_cache(url: str | None = None) -> bool:
    """Connect to Redis.

    Args:
        url: Redis URL (defaults to settings.redis_url)

    Returns:
        True if the server answered a PING
    """
    global _client

    if _client is not None:
        return True

    url = url or get_settings().redis_url
    client = redis.from_url(
        url,
        max_connections=10,
        socket_connect_timeout=5,
        decode_responses=False,
    )
    try:
        await client.ping()
    except (redis.ConnectionError, redis.TimeoutError, OSError) as e:
        logger.warning(f"Redis unreachable at {url}: {e}")
        await client.aclose()
        return False

    _client = client
    logger.info(f"Redis connected: {url}")
    return True


async def close_cache() -> None:
    """Close the Redis connection (no-op if not connected)."""
    global _client

    if _client is None:
        return
    client, _client = _client, None
    await client.aclose()
    logger.info("Redis connection closed")


def is_cache_available() -> bool:
    return _client is not None


async def get_json(key: str) -> Any | None:
    """Read and decode a document; None if missing, undecodable or offline."""
    if _client is None:
        return None

    try:
        raw = await _client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis GET {key} failed: {e}")
        return None
    if raw is None:
        return None

    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        logger.warning(f"Undecodable document at {key}: {e}")
        return None


async def set_json(key: str, value: Any) -> bool:
    """Encode and store a document. Returns False if it was not written."""
    if _client is None:
        return False

    try:
        payload = orjson.dumps(value)
    except TypeError as e:
        logger.warning(f"Cannot encode document for {key}: {e}")
        return False

    try:
        await _client.set(key, payload)
    except redis.RedisError as e:
        logger.warning(f"Redis SET {key} failed: {e}")
        return False
    return True
