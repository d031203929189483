from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.config import SCOPE_NONE
from docgate.domain.models import RoleHasRule


async def find_rule(
    session: AsyncSession,
    *,
    role_guard_name: str,
    rule_policy: str,
    action: str,
    category: str = SCOPE_NONE,
    type_: str = SCOPE_NONE,
) -> RoleHasRule | None:
    result = await session.execute(
        select(RoleHasRule).where(
            RoleHasRule.role_guard_name == role_guard_name,
            RoleHasRule.rule_policy == rule_policy,
            RoleHasRule.action == action,
            RoleHasRule.category == category,
            RoleHasRule.type_ == type_,
        )
    )
    return result.scalar_one_or_none()


async def get_rule(session: AsyncSession, rule_uuid: str) -> RoleHasRule | None:
    result = await session.execute(select(RoleHasRule).where(RoleHasRule.uuid == rule_uuid))
    return result.scalar_one_or_none()


async def list_rules_by_role(session: AsyncSession, role_guard_name: str) -> list[RoleHasRule]:
    result = await session.execute(
        select(RoleHasRule)
        .where(RoleHasRule.role_guard_name == role_guard_name)
        .order_by(RoleHasRule.rule_policy, RoleHasRule.action, RoleHasRule.id)
    )
    return list(result.scalars().all())


async def list_rules_in_scope(
    session: AsyncSession, *, category: str, type_: str = SCOPE_NONE
) -> list[RoleHasRule]:
    # Exact scope match; category-only rows are not returned for a type scope.
    result = await session.execute(
        select(RoleHasRule)
        .where(RoleHasRule.category == category, RoleHasRule.type_ == type_)
        .order_by(RoleHasRule.id)
    )
    return list(result.scalars().all())


async def insert_rule(
    session: AsyncSession,
    *,
    role_guard_name: str,
    rule_policy: str,
    action: str,
    category: str = SCOPE_NONE,
    type_: str = SCOPE_NONE,
) -> RoleHasRule:
    rule = RoleHasRule(
        role_guard_name=role_guard_name,
        rule_policy=rule_policy,
        action=action,
        category=category,
        type_=type_,
    )
    session.add(rule)
    await session.flush()
    return rule


async def delete_rule(session: AsyncSession, rule: RoleHasRule) -> None:
    await session.delete(rule)
    await session.flush()


async def delete_rules_by_role(session: AsyncSession, role_guard_name: str) -> int:
    rules = await list_rules_by_role(session, role_guard_name)
    for rule in rules:
        await session.delete(rule)
    await session.flush()
    return len(rules)


async def rescope_category(session: AsyncSession, *, old_category: str, new_category: str) -> int:
    # Rename the category component of type-scoped rows only.
    result = await session.execute(
        update(RoleHasRule)
        .where(RoleHasRule.category == old_category, RoleHasRule.type_ != SCOPE_NONE)
        .values(category=new_category)
    )
    return int(result.rowcount or 0)


async def list_distinct_policies(session: AsyncSession) -> list[str]:
    result = await session.execute(
        select(RoleHasRule.rule_policy).distinct().order_by(RoleHasRule.rule_policy)
    )
    return list(result.scalars().all())


async def list_distinct_actions(session: AsyncSession) -> list[str]:
    result = await session.execute(
        select(RoleHasRule.action).distinct().order_by(RoleHasRule.action)
    )
    return list(result.scalars().all())
