"""
Geocoding cache.

Process-wide cache of ZIP lookups in Redis. Cache trouble is never fatal:
a Redis error or an unreadable entry is logged and treated as a miss.
"""

import json
import logging
from typing import Optional

from redis.exceptions import RedisError

from loadmatch.app.core.config import settings
from loadmatch.app.domain.matching.types import Coordinates

logger = logging.getLogger(__name__)

KEY_PREFIX = "geocode:zip:"


class GeocodeCache:
    
    def __init__(self, redis, ttl_seconds: int = None):
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.geocode_cache_ttl_seconds

    async def get(self, zip_code: str) -> Optional[Coordinates]:
        try:
            raw = await self.redis.get(KEY_PREFIX + zip_code)
        except RedisError as exc:
            logger.warning("Geocode cache read failed for %s: %s", zip_code, exc)
            return None
        if not raw:
            return None
        try:
            return Coordinates(**json.loads(raw))
        except (ValueError, TypeError) as exc:
            logger.warning("Ignoring unreadable geocode cache entry for %s: %s", zip_code, exc)
            return None

    async def set(self, zip_code: str, coordinates: Coordinates) -> None:
        try:
            await self.redis.set(
                KEY_PREFIX + zip_code, coordinates.model_dump_json(), ex=self.ttl_seconds
            )
        except RedisError as exc:
            logger.warning("Geocode cache write failed for %s: %s", zip_code, exc)
