from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.errors import ConflictError, NotFoundError
from docgate.domain.models import Role
from docgate.domain.schemas import parse_uuid
from docgate.domain.scope import PolicyTuple
from docgate.persistence.db import atomic
from docgate.persistence.repos import catalog as catalog_repo
from docgate.persistence.repos import roles as roles_repo
from docgate.persistence.repos import tuples as tuples_repo
from docgate.services.authz.tuples import PolicyTupleStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleWithTuples:
    role: Role
    grants: list[PolicyTuple]


class RoleRegistry:
    # Role rows are independent of tuples; only cascade deletes and assignments touch them.

    def __init__(self, tuple_store: PolicyTupleStore) -> None:
        self._tuples = tuple_store

    async def create_role(self, session: AsyncSession, *, name: str, guard_name: str) -> Role:
        async with atomic(session, operation="create_role"):
            if await roles_repo.get_role_by_identity(session, name=name, guard_name=guard_name):
                raise ConflictError(f"role already exists: {name}/{guard_name}")
            role = await roles_repo.insert_role(session, name=name, guard_name=guard_name)
            await session.commit()
        logger.info("role_created name=%s guard_name=%s", name, guard_name)
        return role

    async def list_roles(self, session: AsyncSession, *, search: str | None = None) -> list[Role]:
        return await roles_repo.list_roles(session, search=search)

    async def _require_role(self, session: AsyncSession, role_uuid: str) -> Role:
        role = await roles_repo.get_role(session, parse_uuid(role_uuid))
        if role is None:
            raise NotFoundError(f"role not found: {role_uuid}")
        return role

    async def get_role(self, session: AsyncSession, role_uuid: str) -> RoleWithTuples:
        role = await self._require_role(session, role_uuid)
        rows = await tuples_repo.list_grants_for_subject(session, role.guard_name)
        return RoleWithTuples(role=role, grants=[tuples_repo.row_to_tuple(row) for row in rows])

    async def update_role(
        self, session: AsyncSession, role_uuid: str, *, name: str, guard_name: str
    ) -> Role:
        # Renaming a guard does not rewrite tuples; callers move rules explicitly.
        async with atomic(session, operation="update_role"):
            role = await self._require_role(session, role_uuid)
            clash = await roles_repo.get_role_by_identity(session, name=name, guard_name=guard_name)
            if clash is not None and clash.id != role.id:
                raise ConflictError(f"role already exists: {name}/{guard_name}")
            role.name = name
            role.guard_name = guard_name
            await session.commit()
        return role

    async def delete_role(self, session: AsyncSession, role_uuid: str, *, cascade: bool = False) -> None:
        # Without cascade the role's tuples stay enforced until removed explicitly.
        async with atomic(session, operation="delete_role"):
            role = await self._require_role(session, role_uuid)
            guard_name = role.guard_name
            await roles_repo.delete_role(session, role)
            if cascade:
                removed_rules = await catalog_repo.delete_rules_by_role(session, guard_name)
                removed_tuples = await self._tuples.remove_role(session, guard_name)
                logger.info(
                    "role_cascade_deleted guard_name=%s rules=%s tuples=%s",
                    guard_name,
                    removed_rules,
                    removed_tuples,
                )
            await self._tuples.save(session)
        logger.info("role_deleted uuid=%s cascade=%s", role_uuid, cascade)

    async def assign_role(self, session: AsyncSession, *, user: str, role_guard_name: str) -> None:
        async with atomic(session, operation="assign_role"):
            if await roles_repo.get_role_by_guard_name(session, role_guard_name) is None:
                raise NotFoundError(f"role not found: {role_guard_name}")
            if not await self._tuples.add_grouping(session, user, role_guard_name):
                raise ConflictError(f"user {user} already holds role {role_guard_name}")
            await self._tuples.save(session)

    async def revoke_role(self, session: AsyncSession, *, user: str, role_guard_name: str) -> None:
        async with atomic(session, operation="revoke_role"):
            if not await self._tuples.remove_grouping(session, user, role_guard_name):
                raise NotFoundError(f"user {user} does not hold role {role_guard_name}")
            await self._tuples.save(session)

    async def members(self, session: AsyncSession, role_guard_name: str) -> list[str]:
        return await self._tuples.grouping_subjects(session, role_guard_name)
