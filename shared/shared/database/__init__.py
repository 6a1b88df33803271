from shared.database.postgres import (
    AsyncSessionFactory,
    Base,
    get_async_engine,
    get_async_session_factory,
)
from shared.database.redis_client import RedisClient, get_redis_client

__all__ = [
    "Base",
    "AsyncSessionFactory",
    "get_async_engine",
    "get_async_session_factory",
    "RedisClient",
    "get_redis_client",
]
