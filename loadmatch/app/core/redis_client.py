"""
Redis client initialization and connection management.

Redis backs the process-wide geocoding cache.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError
from loadmatch.app.core.config import settings


redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.
    
    Used as a FastAPI dependency so tests can swap in a fake.
    """
    return redis_client


async def ping_redis() -> bool:
    """Return True if Redis answers a PING."""
    try:
        return await redis_client.ping()
    except RedisError:
        return False
