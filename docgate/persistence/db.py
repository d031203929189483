from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Any, AsyncIterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from docgate.core.config import get_settings
from docgate.core.errors import ConflictError, DependencyFailureError


logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> AsyncEngine:
    # Configure bounded pools for Postgres; SQLite runs with driver defaults.
    settings = get_settings()
    engine_kwargs: dict[str, Any] = {}
    if not database_url.startswith("sqlite"):
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = max(1, int(settings.db_pool_size))
        engine_kwargs["max_overflow"] = max(0, int(settings.db_max_overflow))
        engine_kwargs["pool_timeout"] = 30
        engine_kwargs["pool_recycle"] = 1800
    return create_async_engine(database_url, **engine_kwargs)


engine = build_engine(get_settings().database_url)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def create_schema(target: AsyncEngine | None = None) -> None:
    # Create tables directly for local runs and tests; deployments use alembic.
    from docgate.domain.models import Base

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def atomic(session: AsyncSession, *, operation: str) -> AsyncIterator[AsyncSession]:
    # Roll back the whole unit of work on any failure and translate driver errors.
    try:
        yield session
    except IntegrityError as exc:
        await session.rollback()
        logger.info("unit_of_work_conflict operation=%s", operation)
        raise ConflictError(f"{operation}: duplicate or conflicting record") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("unit_of_work_failed operation=%s", operation)
        raise DependencyFailureError(f"{operation}: database error") from exc
    except BaseException:
        await session.rollback()
        raise
