from __future__ import annotations

import pytest
from sqlalchemy import func, select

from docgate.core.errors import ConflictError, InputValidationError, NotFoundError
from docgate.domain.models import CasbinRule, RoleHasRule
from docgate.domain.schemas import RuleEntry
from docgate.services.catalog import PolicyCatalog
from docgate.services.roles import RoleRegistry


async def _seed_editor(session, tuple_store) -> str:
    registry = RoleRegistry(tuple_store)
    role = await registry.create_role(session, name="Editor", guard_name="editor")
    await PolicyCatalog(tuple_store).create_catalog_entries(
        session, "editor", [RuleEntry(policy="banner", actions={"read", "update"})]
    )
    await registry.assign_role(session, user="alice", role_guard_name="editor")
    return role.uuid


@pytest.mark.asyncio
async def test_duplicate_role_identity_conflicts(session, tuple_store) -> None:
    registry = RoleRegistry(tuple_store)
    await registry.create_role(session, name="Editor", guard_name="editor")
    with pytest.raises(ConflictError):
        await registry.create_role(session, name="Editor", guard_name="editor")
    # A second display name over the same guard is a distinct role.
    await registry.create_role(session, name="Content editor", guard_name="editor")
    assert len(await registry.list_roles(session, search="edit")) == 2


@pytest.mark.asyncio
async def test_assignment_requires_an_existing_role(session, tuple_store) -> None:
    registry = RoleRegistry(tuple_store)
    with pytest.raises(NotFoundError):
        await registry.assign_role(session, user="alice", role_guard_name="ghost")


@pytest.mark.asyncio
async def test_assignment_and_revocation(session, tuple_store) -> None:
    await _seed_editor(session, tuple_store)
    registry = RoleRegistry(tuple_store)

    assert tuple_store.enforce("alice", "banner", "update") is True
    assert await registry.members(session, "editor") == ["alice"]
    with pytest.raises(ConflictError):
        await registry.assign_role(session, user="alice", role_guard_name="editor")

    await registry.revoke_role(session, user="alice", role_guard_name="editor")
    assert tuple_store.enforce("alice", "banner", "update") is False
    with pytest.raises(NotFoundError):
        await registry.revoke_role(session, user="alice", role_guard_name="editor")


@pytest.mark.asyncio
async def test_get_role_returns_grant_tuples(session, tuple_store) -> None:
    role_uuid = await _seed_editor(session, tuple_store)
    result = await RoleRegistry(tuple_store).get_role(session, role_uuid)
    assert result.role.guard_name == "editor"
    assert sorted(policy.action for policy in result.grants) == ["read", "update"]


@pytest.mark.asyncio
async def test_delete_without_cascade_keeps_tuples(session, tuple_store) -> None:
    role_uuid = await _seed_editor(session, tuple_store)
    await RoleRegistry(tuple_store).delete_role(session, role_uuid)

    assert tuple_store.enforce("alice", "banner", "read") is True
    assert await session.scalar(select(func.count()).select_from(RoleHasRule)) == 2


@pytest.mark.asyncio
async def test_delete_with_cascade_removes_rules_and_bindings(session, tuple_store) -> None:
    role_uuid = await _seed_editor(session, tuple_store)
    await RoleRegistry(tuple_store).delete_role(session, role_uuid, cascade=True)

    assert tuple_store.enforce("alice", "banner", "read") is False
    assert tuple_store.roles_of("alice") == []
    assert await session.scalar(select(func.count()).select_from(RoleHasRule)) == 0
    assert await session.scalar(select(func.count()).select_from(CasbinRule)) == 0


@pytest.mark.asyncio
async def test_malformed_role_uuid_is_rejected(session, tuple_store) -> None:
    with pytest.raises(InputValidationError):
        await RoleRegistry(tuple_store).get_role(session, "not-a-uuid")
