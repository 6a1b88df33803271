"""Redis memoisation for derived feed data.

Key schema
----------
feed:{viewer_id}:interests   JSON object {tag: weight}   TTL 5 min

The cache is optional and fail-open: a Redis error is logged and treated as a
miss, never surfaced to the ranking call.
"""

import json
import logging
from uuid import UUID

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.ranking.types import InterestProfile

logger = logging.getLogger(__name__)

_INTEREST_TTL_S: int = 300  # 5 minutes


def _interests_key(viewer_id: UUID) -> str:
    return f"feed:{viewer_id}:interests"


class InterestProfileCache:
    def __init__(self, redis: Redis, ttl_s: int = _INTEREST_TTL_S) -> None:
        self._redis = redis
        self._ttl_s = ttl_s

    async def get(self, viewer_id: UUID) -> InterestProfile | None:
        """Return the cached profile or None on miss / error."""
        try:
            val = await self._redis.get(_interests_key(viewer_id))
        except RedisError:
            logger.warning("Interest cache read failed for %s", viewer_id, exc_info=True)
            return None
        if val is None:
            return None
        try:
            raw = json.loads(val)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding malformed interest cache entry for %s", viewer_id)
            return None
        return {str(tag): float(weight) for tag, weight in raw.items()}

    async def set(self, viewer_id: UUID, profile: InterestProfile) -> None:
        try:
            await self._redis.setex(
                _interests_key(viewer_id), self._ttl_s, json.dumps(profile)
            )
        except RedisError:
            logger.warning("Interest cache write failed for %s", viewer_id, exc_info=True)
