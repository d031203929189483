from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from docgate.core.errors import ConflictError, NotFoundError
from docgate.domain.models import RoleHasRule
from docgate.domain.schemas import DesiredRule, PermissionToggle, RuleEntry, parse_uuid
from docgate.domain.scope import PolicyTuple, Scope, scope_value
from docgate.persistence.db import atomic
from docgate.persistence.repos import catalog as catalog_repo
from docgate.persistence.repos import roles as roles_repo
from docgate.services.authz.tuples import PolicyTupleStore


logger = logging.getLogger(__name__)

ADMIN_ROLE_GUARD_NAME = "admin"


@dataclass(frozen=True)
class CatalogRuleView:
    # Catalog row plus whether its grant tuple is currently enforced.
    rule: RoleHasRule
    active: bool


@dataclass(frozen=True)
class ActivationResult:
    activated: list[tuple[str, str]]
    deactivated: list[tuple[str, str]]


def _grant_for(rule: RoleHasRule) -> PolicyTuple:
    return PolicyTuple.grant(
        rule.role_guard_name, rule.rule_policy, rule.action, rule.category, rule.type_
    )


class PolicyCatalog:
    """Human-manageable role-has-rule rows kept in lock-step with grant tuples.

    ``stage_*`` methods only write to the session so taxonomy services can
    compose them into their own unit of work. Public methods wrap a stage in
    ``atomic`` and finish with ``PolicyTupleStore.save``.
    """

    def __init__(self, tuple_store: PolicyTupleStore) -> None:
        self._tuples = tuple_store

    async def _ensure_role(self, session: AsyncSession, role_guard_name: str, role_name: str | None) -> None:
        # Rule authoring is the one flow allowed to create a role implicitly.
        # A display name pins the full (name, guard) identity; without one any role on the guard counts.
        if role_name:
            existing = await roles_repo.get_role_by_identity(session, name=role_name, guard_name=role_guard_name)
        else:
            existing = await roles_repo.get_role_by_guard_name(session, role_guard_name)
        if existing is not None:
            return
        await roles_repo.insert_role(session, name=role_name or role_guard_name, guard_name=role_guard_name)
        logger.info("role_created_for_rules guard_name=%s", role_guard_name)

    async def _grant(self, session: AsyncSession, rule: RoleHasRule) -> bool:
        return await self._tuples.add_grant(
            session, rule.role_guard_name, rule.rule_policy, rule.action, rule.category, rule.type_
        )

    async def _revoke(self, session: AsyncSession, rule: RoleHasRule) -> bool:
        return await self._tuples.remove_grant(
            session, rule.role_guard_name, rule.rule_policy, rule.action, rule.category, rule.type_
        )

    async def stage_entries(
        self,
        session: AsyncSession,
        role_guard_name: str,
        entries: list[RuleEntry],
        *,
        category: str | Scope = Scope.NONE,
        type_: str | Scope = Scope.NONE,
    ) -> list[RoleHasRule]:
        # Existing triples are skipped silently; only new rows receive a grant.
        category_value = scope_value(category)
        type_value = scope_value(type_)
        created: list[RoleHasRule] = []
        for entry in entries:
            for action in sorted(entry.actions):
                existing = await catalog_repo.find_rule(
                    session,
                    role_guard_name=role_guard_name,
                    rule_policy=entry.policy,
                    action=action,
                    category=category_value,
                    type_=type_value,
                )
                if existing is not None:
                    logger.info(
                        "catalog_entry_skipped role=%s policy=%s action=%s",
                        role_guard_name,
                        entry.policy,
                        action,
                    )
                    continue
                rule = await catalog_repo.insert_rule(
                    session,
                    role_guard_name=role_guard_name,
                    rule_policy=entry.policy,
                    action=action,
                    category=category_value,
                    type_=type_value,
                )
                await self._grant(session, rule)
                created.append(rule)
        return created

    async def create_catalog_entries(
        self,
        session: AsyncSession,
        role_guard_name: str,
        entries: list[RuleEntry],
        *,
        role_name: str | None = None,
    ) -> list[RoleHasRule]:
        async with atomic(session, operation="create_catalog_entries"):
            await self._ensure_role(session, role_guard_name, role_name)
            created = await self.stage_entries(session, role_guard_name, entries)
            await self._tuples.save(session)
        logger.info("catalog_entries_created role=%s count=%s", role_guard_name, len(created))
        return created

    async def bulk_activate(
        self,
        session: AsyncSession,
        role_guard_name: str,
        permissions: list[PermissionToggle],
    ) -> ActivationResult:
        # Deactivation removes only the tuple; the catalog row stays as an inactive record.
        activated: list[tuple[str, str]] = []
        deactivated: list[tuple[str, str]] = []
        async with atomic(session, operation="bulk_activate"):
            for permission in permissions:
                for action, allowed in sorted(permission.actions.items()):
                    if allowed:
                        rule = await catalog_repo.find_rule(
                            session,
                            role_guard_name=role_guard_name,
                            rule_policy=permission.policy,
                            action=action,
                        )
                        if rule is None:
                            rule = await catalog_repo.insert_rule(
                                session,
                                role_guard_name=role_guard_name,
                                rule_policy=permission.policy,
                                action=action,
                            )
                        await self._grant(session, rule)
                        activated.append((permission.policy, action))
                    else:
                        await self._tuples.remove_grant(
                            session, role_guard_name, permission.policy, action
                        )
                        deactivated.append((permission.policy, action))
            await self._tuples.save(session)
        logger.info(
            "catalog_bulk_activated role=%s activated=%s deactivated=%s",
            role_guard_name,
            len(activated),
            len(deactivated),
        )
        return ActivationResult(activated=activated, deactivated=deactivated)

    async def stage_scoped_rules(
        self,
        session: AsyncSession,
        *,
        category: str,
        type_: str | Scope,
        desired: list[DesiredRule],
    ) -> list[RoleHasRule]:
        # Rules supplied when a taxonomy entity is created; duplicates are skipped.
        type_value = scope_value(type_)
        created: list[RoleHasRule] = []
        for item in desired:
            existing = await catalog_repo.find_rule(
                session,
                role_guard_name=item.role_guard_name,
                rule_policy=item.rule_policy,
                action=item.action,
                category=category,
                type_=type_value,
            )
            if existing is not None:
                continue
            rule = await catalog_repo.insert_rule(
                session,
                role_guard_name=item.role_guard_name,
                rule_policy=item.rule_policy,
                action=item.action,
                category=category,
                type_=type_value,
            )
            await self._grant(session, rule)
            created.append(rule)
        return created

    async def stage_category_scoped_update(
        self,
        session: AsyncSession,
        *,
        old_category: str,
        old_type: str | Scope,
        new_category: str,
        new_type: str | Scope,
        desired: list[DesiredRule],
    ) -> list[RoleHasRule]:
        old_type_value = scope_value(old_type)
        new_type_value = scope_value(new_type)
        scope_changed = (old_category, old_type_value) != (new_category, new_type_value)

        existing = await catalog_repo.list_rules_in_scope(
            session, category=old_category, type_=old_type_value
        )
        by_key = {(rule.role_guard_name, rule.rule_policy, rule.action): rule for rule in existing}

        result: list[RoleHasRule] = []
        for item in dict.fromkeys(desired):
            rule = by_key.pop((item.role_guard_name, item.rule_policy, item.action), None)
            if rule is not None:
                if scope_changed:
                    await self._revoke(session, rule)
                    rule.category = new_category
                    rule.type_ = new_type_value
                    await session.flush()
            else:
                rule = await catalog_repo.find_rule(
                    session,
                    role_guard_name=item.role_guard_name,
                    rule_policy=item.rule_policy,
                    action=item.action,
                    category=new_category,
                    type_=new_type_value,
                )
                if rule is None:
                    rule = await catalog_repo.insert_rule(
                        session,
                        role_guard_name=item.role_guard_name,
                        rule_policy=item.rule_policy,
                        action=item.action,
                        category=new_category,
                        type_=new_type_value,
                    )
            await self._grant(session, rule)
            result.append(rule)

        for stale in by_key.values():
            await self._revoke(session, stale)
            await catalog_repo.delete_rule(session, stale)
            logger.info(
                "catalog_rule_dropped role=%s action=%s category=%s type=%s",
                stale.role_guard_name,
                stale.action,
                stale.category,
                stale.type_,
            )
        if scope_changed:
            await self._tuples.remove_scope(session, category=old_category, type_=old_type_value)
        return result

    async def update_category_scoped_rules(
        self,
        session: AsyncSession,
        *,
        old_category: str,
        old_type: str | Scope,
        new_category: str,
        new_type: str | Scope,
        desired: list[DesiredRule],
    ) -> list[RoleHasRule]:
        async with atomic(session, operation="update_category_scoped_rules"):
            result = await self.stage_category_scoped_update(
                session,
                old_category=old_category,
                old_type=old_type,
                new_category=new_category,
                new_type=new_type,
                desired=desired,
            )
            await self._tuples.save(session)
        return result

    async def list_distinct_policies(self, session: AsyncSession) -> list[str]:
        return await catalog_repo.list_distinct_policies(session)

    async def list_distinct_actions(self, session: AsyncSession) -> list[str]:
        return await catalog_repo.list_distinct_actions(session)

    async def list_rules_by_role(self, session: AsyncSession, role_guard_name: str) -> list[CatalogRuleView]:
        rules = await catalog_repo.list_rules_by_role(session, role_guard_name)
        views: list[CatalogRuleView] = []
        for rule in rules:
            active = await self._tuples.has_tuple(session, _grant_for(rule))
            views.append(CatalogRuleView(rule=rule, active=active))
        return views

    async def get_rule(self, session: AsyncSession, rule_uuid: str) -> RoleHasRule:
        rule = await catalog_repo.get_rule(session, parse_uuid(rule_uuid))
        if rule is None:
            raise NotFoundError(f"rule not found: {rule_uuid}")
        return rule

    async def update_rule(
        self,
        session: AsyncSession,
        rule_uuid: str,
        *,
        role_guard_name: str,
        rule_policy: str,
        action: str,
    ) -> RoleHasRule:
        # Move the grant with the row; an inactive row stays inactive.
        async with atomic(session, operation="update_rule"):
            rule = await self.get_rule(session, rule_uuid)
            was_active = await self._revoke(session, rule)
            rule.role_guard_name = role_guard_name
            rule.rule_policy = rule_policy
            rule.action = action
            await session.flush()
            if was_active:
                await self._grant(session, rule)
            await self._tuples.save(session)
        return rule

    async def delete_rule(self, session: AsyncSession, rule_uuid: str) -> None:
        async with atomic(session, operation="delete_rule"):
            rule = await self.get_rule(session, rule_uuid)
            await self._revoke(session, rule)
            await catalog_repo.delete_rule(session, rule)
            await self._tuples.save(session)
        logger.info("catalog_rule_deleted uuid=%s", rule_uuid)

    async def ensure_admin_rule(self, session: AsyncSession, rule_policy: str, action: str) -> RoleHasRule:
        # Bootstrap an unscoped admin rule; an existing row is reported, not duplicated.
        async with atomic(session, operation="ensure_admin_rule"):
            existing = await catalog_repo.find_rule(
                session,
                role_guard_name=ADMIN_ROLE_GUARD_NAME,
                rule_policy=rule_policy,
                action=action,
            )
            if existing is not None:
                raise ConflictError(
                    f"rule already exists: {ADMIN_ROLE_GUARD_NAME}/{rule_policy}/{action}"
                )
            await self._ensure_role(session, ADMIN_ROLE_GUARD_NAME, None)
            rule = await catalog_repo.insert_rule(
                session,
                role_guard_name=ADMIN_ROLE_GUARD_NAME,
                rule_policy=rule_policy,
                action=action,
            )
            await self._grant(session, rule)
            await self._tuples.save(session)
        return rule
