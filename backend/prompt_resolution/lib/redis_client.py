"""Redis client for the shared resolved prompt cache.

This module provides a shared Redis connection so that every worker process
reads and writes the same resolved prompt documents.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from prompt_resolution.config import get_redis_url

logger = logging.getLogger(__name__)

# Global async Redis client
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create the async Redis client.

    Returns:
        Async Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        redis_url = get_redis_url()
        logger.info('Connecting to Redis at %s', redis_url)
        _redis_client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True
        )

    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None
        logger.info("Redis connection closed")


async def ping_redis() -> bool:
    """Check that Redis answers.

    Returns:
        True if the server replied to PING
    """
    try:
        client = await get_redis()
        return bool(await client.ping())
    except Exception as e:
        logger.error('Redis ping failed: %s', e)
        return False
