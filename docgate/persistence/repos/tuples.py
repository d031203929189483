from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.config import SCOPE_NONE
from docgate.domain.models import CasbinRule
from docgate.domain.scope import PTYPE_GRANT, PTYPE_GROUPING, PolicyTuple


def _columns(policy: PolicyTuple) -> dict[str, str]:
    # Pad unused positions with the sentinel so lookups match stored rows exactly.
    values = policy.params() + [SCOPE_NONE] * (6 - len(policy.params()))
    return {"ptype": policy.ptype, **{f"v{idx}": value for idx, value in enumerate(values)}}


def row_to_tuple(row: CasbinRule) -> PolicyTuple:
    if row.ptype == PTYPE_GROUPING:
        return PolicyTuple.grouping(row.v0, row.v1)
    return PolicyTuple(
        ptype=row.ptype,
        subject=row.v0,
        resource=row.v1,
        action=row.v2,
        category=row.v3,
        type=row.v4,
        extra=row.v5,
    )


async def list_rules(session: AsyncSession) -> list[CasbinRule]:
    # Stable ordering keeps enforcer rebuilds deterministic.
    result = await session.execute(select(CasbinRule).order_by(CasbinRule.id))
    return list(result.scalars().all())


async def find_rule(session: AsyncSession, policy: PolicyTuple) -> CasbinRule | None:
    columns = _columns(policy)
    stmt = select(CasbinRule).where(
        *(getattr(CasbinRule, name) == value for name, value in columns.items())
    )
    result = await session.execute(stmt.order_by(CasbinRule.id).limit(1))
    return result.scalar_one_or_none()


async def insert_rule(session: AsyncSession, policy: PolicyTuple) -> CasbinRule:
    row = CasbinRule(**_columns(policy))
    session.add(row)
    await session.flush()
    return row


async def delete_rule(session: AsyncSession, policy: PolicyTuple) -> int:
    # Remove every copy of the tuple; duplicates written out-of-process converge here.
    columns = _columns(policy)
    result = await session.execute(
        delete(CasbinRule).where(
            *(getattr(CasbinRule, name) == value for name, value in columns.items())
        )
    )
    return int(result.rowcount or 0)


async def rescope_category(session: AsyncSession, *, old_category: str, new_category: str) -> int:
    # Rename the category component of type-scoped grants only.
    result = await session.execute(
        update(CasbinRule)
        .where(
            CasbinRule.ptype == PTYPE_GRANT,
            CasbinRule.v3 == old_category,
            CasbinRule.v4 != SCOPE_NONE,
        )
        .values(v3=new_category)
    )
    return int(result.rowcount or 0)


async def list_grants_for_subject(session: AsyncSession, subject: str) -> list[CasbinRule]:
    result = await session.execute(
        select(CasbinRule)
        .where(CasbinRule.ptype == PTYPE_GRANT, CasbinRule.v0 == subject)
        .order_by(CasbinRule.id)
    )
    return list(result.scalars().all())


async def list_grouping_subjects(session: AsyncSession, role: str) -> list[str]:
    result = await session.execute(
        select(CasbinRule.v0)
        .where(CasbinRule.ptype == PTYPE_GROUPING, CasbinRule.v1 == role)
        .order_by(CasbinRule.v0)
    )
    return list(dict.fromkeys(result.scalars().all()))


async def delete_for_role(session: AsyncSession, role: str) -> int:
    # Drop grant tuples owned by a role and every grouping that binds users to it.
    grants = await session.execute(
        delete(CasbinRule).where(CasbinRule.ptype == PTYPE_GRANT, CasbinRule.v0 == role)
    )
    groupings = await session.execute(
        delete(CasbinRule).where(CasbinRule.ptype == PTYPE_GROUPING, CasbinRule.v1 == role)
    )
    return int(grants.rowcount or 0) + int(groupings.rowcount or 0)


async def delete_grants_in_scope(session: AsyncSession, *, category: str, type_: str) -> int:
    # Exact scope match; category-level grants survive a type-level purge and vice versa.
    result = await session.execute(
        delete(CasbinRule).where(
            CasbinRule.ptype == PTYPE_GRANT,
            CasbinRule.v3 == category,
            CasbinRule.v4 == type_,
        )
    )
    return int(result.rowcount or 0)
