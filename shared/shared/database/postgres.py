import os
import ssl
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _build_connect_args(command_timeout_s: float | None = None) -> dict[str, Any]:
    """Return asyncpg ``connect_args`` for SSL and the per-statement timeout.

    SSL is controlled by DATABASE_SSL (``disable`` / ``require``) and an optional
    RDS_SSL_CERT bundle path.
    """
    connect_args: dict[str, Any] = {}
    if command_timeout_s is not None:
        connect_args["command_timeout"] = command_timeout_s

    mode = os.environ.get("DATABASE_SSL", "").lower()
    if mode and mode != "disable":
        cert_path = os.environ.get("RDS_SSL_CERT", "")
        if cert_path and Path(cert_path).exists():
            connect_args["ssl"] = ssl.create_default_context(cafile=cert_path)
        else:
            connect_args["ssl"] = "require"

    return {"connect_args": connect_args} if connect_args else {}


def get_async_engine(
    database_url: str,
    *,
    command_timeout_s: float | None = None,
    **kwargs: Any,
) -> AsyncEngine:
    merged = {**_build_connect_args(command_timeout_s), **kwargs}
    # Feed reads fan out per candidate, so the pool is wider than a CRUD service's.
    merged.setdefault("pool_size", 10)
    merged.setdefault("max_overflow", 20)
    return create_async_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        **merged,
    )


def get_async_session_factory(
    database_url: str,
    *,
    expire_on_commit: bool = False,
    command_timeout_s: float | None = None,
    **engine_kwargs: Any,
) -> async_sessionmaker[AsyncSession]:
    engine = get_async_engine(
        database_url, command_timeout_s=command_timeout_s, **engine_kwargs
    )
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=expire_on_commit,
        autoflush=False,
        autocommit=False,
    )


AsyncSessionFactory = async_sessionmaker[AsyncSession]
