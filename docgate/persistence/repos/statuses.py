from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.domain.models import StatusDocument


async def get_status_by_id(session: AsyncSession, status_id: int) -> StatusDocument | None:
    result = await session.execute(select(StatusDocument).where(StatusDocument.id == status_id))
    return result.scalar_one_or_none()


async def get_status(session: AsyncSession, status_uuid: str) -> StatusDocument | None:
    result = await session.execute(
        select(StatusDocument).where(
            StatusDocument.uuid == status_uuid,
            StatusDocument.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_status_by_name(session: AsyncSession, name: str) -> StatusDocument | None:
    # Case-insensitive; status names double as lower-cased read actions.
    result = await session.execute(
        select(StatusDocument)
        .where(
            func.lower(StatusDocument.name) == name.strip().lower(),
            StatusDocument.deleted_at.is_(None),
        )
        .order_by(StatusDocument.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_statuses(session: AsyncSession) -> list[StatusDocument]:
    result = await session.execute(
        select(StatusDocument).where(StatusDocument.deleted_at.is_(None)).order_by(StatusDocument.id)
    )
    return list(result.scalars().all())


async def insert_status(session: AsyncSession, *, name: str) -> StatusDocument:
    status = StatusDocument(name=name)
    session.add(status)
    await session.flush()
    return status
