from functools import lru_cache
from uuid import UUID

import jwt
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.asyncio import Redis

from app.config import Settings, build_ranking_config
from app.database import get_session_factory
from app.exceptions import UnauthorizedError
from app.ranking.cache import InterestProfileCache
from app.ranking.engine import FeedRankingEngine
from app.ranking.store import FeedStore, SqlFeedStore
from app.ranking.weights import RankingConfig

_bearer = HTTPBearer(auto_error=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_ranking_config() -> RankingConfig:
    return build_ranking_config(get_settings())


def _decode_viewer(token: str, settings: Settings) -> UUID:
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    return UUID(payload["sub"])


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    settings: Settings = Depends(get_settings),
) -> UUID:
    if credentials is None:
        raise UnauthorizedError()
    try:
        return _decode_viewer(credentials.credentials, settings)
    except (jwt.PyJWTError, KeyError, ValueError):
        raise UnauthorizedError("Invalid or expired token")


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    settings: Settings = Depends(get_settings),
) -> UUID | None:
    """Returns user_id if a valid JWT is present, None for unauthenticated requests."""
    if credentials is None:
        return None
    try:
        return _decode_viewer(credentials.credentials, settings)
    except (jwt.PyJWTError, KeyError, ValueError):
        return None


def get_redis(request: Request) -> Redis | None:
    return getattr(request.app.state, "redis", None)


def get_feed_store() -> FeedStore:
    return SqlFeedStore(get_session_factory())


def get_engine(
    store: FeedStore = Depends(get_feed_store),
    redis: Redis | None = Depends(get_redis),
    settings: Settings = Depends(get_settings),
    config: RankingConfig = Depends(get_ranking_config),
) -> FeedRankingEngine:
    cache = None
    if redis is not None and settings.interest_profile_cache_ttl_s > 0:
        cache = InterestProfileCache(redis, ttl_s=settings.interest_profile_cache_ttl_s)
    return FeedRankingEngine(store, config, interest_cache=cache)
