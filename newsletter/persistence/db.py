from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from newsletter.core.config import Settings, get_settings


def build_engine(settings: Settings) -> AsyncEngine:
    engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    # Configure bounded asyncpg pools and server-side timeouts; SQLite gets driver defaults.
    if not settings.database_url.startswith("sqlite"):
        engine_kwargs["pool_size"] = max(1, int(settings.db_pool_size))
        engine_kwargs["max_overflow"] = max(0, int(settings.db_max_overflow))
        engine_kwargs["pool_timeout"] = 30
        engine_kwargs["pool_recycle"] = 1800
        server_settings: dict[str, str] = {}
        if settings.db_statement_timeout_ms > 0:
            server_settings["statement_timeout"] = str(int(settings.db_statement_timeout_ms))
        if settings.db_idle_in_transaction_timeout_ms > 0:
            server_settings["idle_in_transaction_session_timeout"] = str(
                int(settings.db_idle_in_transaction_timeout_ms)
            )
        if server_settings:
            engine_kwargs["connect_args"] = {"server_settings": server_settings}
    return create_async_engine(settings.database_url, **engine_kwargs)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@lru_cache
def get_engine() -> AsyncEngine:
    return build_engine(get_settings())


@lru_cache
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(get_engine())


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with get_sessionmaker()() as session:
        yield session


async def check_connection(engine: AsyncEngine) -> None:
    # Round-trip a trivial query so startup fails fast when the store is unreachable.
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
