from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.domain.models import Role


async def get_role(session: AsyncSession, role_uuid: str) -> Role | None:
    result = await session.execute(select(Role).where(Role.uuid == role_uuid))
    return result.scalar_one_or_none()


async def get_role_by_identity(session: AsyncSession, *, name: str, guard_name: str) -> Role | None:
    result = await session.execute(
        select(Role).where(Role.name == name, Role.guard_name == guard_name)
    )
    return result.scalar_one_or_none()


async def get_role_by_guard_name(session: AsyncSession, guard_name: str) -> Role | None:
    # Several display names may share a guard; the oldest row wins.
    result = await session.execute(
        select(Role).where(Role.guard_name == guard_name).order_by(Role.id).limit(1)
    )
    return result.scalar_one_or_none()


async def list_roles(session: AsyncSession, *, search: str | None = None) -> list[Role]:
    stmt = select(Role)
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(func.lower(Role.name).like(pattern), func.lower(Role.guard_name).like(pattern))
        )
    result = await session.execute(stmt.order_by(Role.name, Role.id))
    return list(result.scalars().all())


async def insert_role(session: AsyncSession, *, name: str, guard_name: str) -> Role:
    role = Role(name=name, guard_name=guard_name)
    session.add(role)
    await session.flush()
    return role


async def delete_role(session: AsyncSession, role: Role) -> None:
    await session.delete(role)
    await session.flush()
