from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from newsletter.core.config import get_settings
from newsletter.domain.models import Base
from newsletter.persistence.db import build_sessionmaker


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> None:
    # Settings are cached per process; env overrides must not leak between tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def engine(tmp_path) -> AsyncEngine:
    # File-backed SQLite so separate sessions share one database within a test.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'newsletter.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine):
    return build_sessionmaker(engine)
