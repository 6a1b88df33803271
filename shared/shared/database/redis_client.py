from typing import Any

import redis.asyncio as redis

RedisClient = redis.Redis


def get_redis_client(
    redis_url: str,
    *,
    socket_timeout_s: float | None = 1.0,
    **kwargs: Any,
) -> redis.Redis:
    """Build an asyncio Redis client with string decoding.

    The socket timeout is short: Redis only memoises derived data for the feed,
    so a slow cache must never hold up a ranking call.
    """
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=socket_timeout_s,
        socket_connect_timeout=socket_timeout_s,
        **kwargs,
    )
