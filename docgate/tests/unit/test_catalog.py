from __future__ import annotations

import pytest
from sqlalchemy import func, select

from docgate.core.errors import ConflictError, NotFoundError
from docgate.domain.models import CasbinRule, Role, RoleHasRule
from docgate.domain.schemas import PermissionToggle, RuleEntry
from docgate.persistence.repos import roles as roles_repo
from docgate.services.catalog import ADMIN_ROLE_GUARD_NAME, PolicyCatalog


async def _count(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_create_catalog_entries_skips_existing_triples(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    entries = [RuleEntry(policy="banner", actions={"read", "create"})]

    first = await catalog.create_catalog_entries(session, "editor", entries)
    second = await catalog.create_catalog_entries(
        session, "editor", [RuleEntry(policy="banner", actions={"read", "delete"})]
    )

    assert sorted(rule.action for rule in first) == ["create", "read"]
    assert [rule.action for rule in second] == ["delete"]
    assert await _count(session, RoleHasRule) == 3
    assert await _count(session, CasbinRule) == 3
    assert tuple_store.enforce("editor", "banner", "delete") is True


@pytest.mark.asyncio
async def test_create_catalog_entries_creates_missing_role(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    await catalog.create_catalog_entries(
        session, "editor", [RuleEntry(policy="banner", actions={"read"})], role_name="Editor"
    )
    role = await roles_repo.get_role_by_guard_name(session, "editor")
    assert role is not None
    assert role.name == "Editor"


@pytest.mark.asyncio
async def test_new_display_name_on_a_known_guard_creates_a_role(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    banner = [RuleEntry(policy="banner", actions={"read"})]
    await catalog.create_catalog_entries(session, "editor", banner, role_name="Editor")
    await catalog.create_catalog_entries(session, "editor", banner, role_name="Senior Editor")
    await catalog.create_catalog_entries(session, "editor", banner, role_name="Editor")

    names = (await session.execute(select(Role.name).where(Role.guard_name == "editor"))).scalars().all()
    assert sorted(names) == ["Editor", "Senior Editor"]


@pytest.mark.asyncio
async def test_legacy_rule_shape_is_accepted(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    entry = RuleEntry.model_validate({"rule_policy": "banner", "action": {"read": True, "update": False}})
    created = await catalog.create_catalog_entries(session, "editor", [entry])
    assert [rule.action for rule in created] == ["read"]


@pytest.mark.asyncio
async def test_bulk_activate_keeps_rows_and_toggles_tuples(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    await catalog.bulk_activate(
        session,
        "editor",
        [PermissionToggle(policy="banner", actions={"read": True, "update": True})],
    )
    result = await catalog.bulk_activate(
        session,
        "editor",
        [PermissionToggle(policy="banner", actions={"read": True, "update": False})],
    )

    assert result.activated == [("banner", "read")]
    assert result.deactivated == [("banner", "update")]
    views = {view.rule.action: view.active for view in await catalog.list_rules_by_role(session, "editor")}
    assert views == {"read": True, "update": False}
    assert tuple_store.enforce("editor", "banner", "update") is False
    assert await _count(session, RoleHasRule) == 2


@pytest.mark.asyncio
async def test_update_rule_moves_an_active_grant(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    [rule] = await catalog.create_catalog_entries(
        session, "editor", [RuleEntry(policy="banner", actions={"read"})]
    )
    updated = await catalog.update_rule(
        session, rule.uuid, role_guard_name="editor", rule_policy="gallery", action="read"
    )

    assert updated.rule_policy == "gallery"
    assert tuple_store.enforce("editor", "banner", "read") is False
    assert tuple_store.enforce("editor", "gallery", "read") is True


@pytest.mark.asyncio
async def test_update_rule_keeps_an_inactive_row_inactive(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    [rule] = await catalog.create_catalog_entries(
        session, "editor", [RuleEntry(policy="banner", actions={"read"})]
    )
    await catalog.bulk_activate(session, "editor", [PermissionToggle(policy="banner", actions={"read": False})])
    await catalog.update_rule(session, rule.uuid, role_guard_name="editor", rule_policy="gallery", action="read")
    assert tuple_store.enforce("editor", "gallery", "read") is False


@pytest.mark.asyncio
async def test_delete_rule_removes_row_and_tuple(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    [rule] = await catalog.create_catalog_entries(
        session, "editor", [RuleEntry(policy="banner", actions={"read"})]
    )
    rule_uuid = rule.uuid
    await catalog.delete_rule(session, rule_uuid)

    assert await _count(session, RoleHasRule) == 0
    assert await _count(session, CasbinRule) == 0
    with pytest.raises(NotFoundError):
        await catalog.get_rule(session, rule_uuid)


@pytest.mark.asyncio
async def test_ensure_admin_rule_reports_existing_rows(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    await catalog.ensure_admin_rule(session, "roles", "create")
    assert tuple_store.enforce(ADMIN_ROLE_GUARD_NAME, "roles", "create") is True

    with pytest.raises(ConflictError):
        await catalog.ensure_admin_rule(session, "roles", "create")
    assert await _count(session, Role) == 1
    assert await _count(session, RoleHasRule) == 1


@pytest.mark.asyncio
async def test_distinct_policies_and_actions(session, tuple_store) -> None:
    catalog = PolicyCatalog(tuple_store)
    await catalog.create_catalog_entries(session, "editor", [RuleEntry(policy="banner", actions={"read"})])
    await catalog.create_catalog_entries(session, "viewer", [RuleEntry(policy="gallery", actions={"read"})])

    assert await catalog.list_distinct_policies(session) == ["banner", "gallery"]
    assert await catalog.list_distinct_actions(session) == ["read"]
