from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from docgate.core.config import get_settings
from docgate.persistence.db import build_engine, create_schema
from docgate.providers.storage.fake import FakeObjectStore
from docgate.services.authz.tuples import PolicyTupleStore


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    # Settings are cached per process; monkeypatched env vars must rebuild them.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    # A file-backed SQLite database per test keeps every pooled connection on the same schema.
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'docgate.db'}")
    await create_schema(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as db:
        yield db


@pytest.fixture
async def tuple_store(session: AsyncSession) -> PolicyTupleStore:
    store = PolicyTupleStore.from_settings()
    await store.load(session)
    return store


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()
