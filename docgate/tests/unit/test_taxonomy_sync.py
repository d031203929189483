from __future__ import annotations

import pytest
from sqlalchemy import select

from docgate.core.errors import ConflictError, NotFoundError
from docgate.domain.models import CasbinRule, RoleHasRule
from docgate.domain.schemas import CategoryPayload, DocumentTypePayload
from docgate.services.authz.decisions import AccessDecisionService
from docgate.tests.utils.seed import create_role_with_member, seed_category, seed_type, taxonomy_for


READ_RULE = {"role_guard_name": "finance-clerk", "rule_policy": "document", "action": {"read": True}}


async def _catalog_scopes(session) -> list[tuple[str, str, str, str]]:
    rows = (await session.execute(select(RoleHasRule).order_by(RoleHasRule.id))).scalars().all()
    return [(row.role_guard_name, row.action, row.category, row.type_) for row in rows]


async def _grant_scopes(session) -> list[tuple[str, str, str, str]]:
    rows = (
        await session.execute(select(CasbinRule).where(CasbinRule.ptype == "p").order_by(CasbinRule.id))
    ).scalars().all()
    return [(row.v0, row.v2, row.v3, row.v4) for row in rows]


@pytest.mark.asyncio
async def test_type_rules_need_a_role_binding(session, tuple_store) -> None:
    category = await seed_category(session, tuple_store, prefix="FIN")
    await seed_type(session, tuple_store, category=category, prefix="INV", rules=[READ_RULE])
    access = AccessDecisionService(tuple_store)

    assert await _catalog_scopes(session) == [("finance-clerk", "read", "FIN", "INV")]
    assert access.check("alice", "document", "read", "FIN", "INV") is False

    await create_role_with_member(session, tuple_store, guard_name="finance-clerk", user="alice")
    assert access.check("alice", "document", "read", "FIN", "INV") is True
    assert access.check("alice", "document", "read", "FIN") is False


@pytest.mark.asyncio
async def test_type_prefix_rename_moves_rules_and_tuples(session, tuple_store) -> None:
    category = await seed_category(session, tuple_store, prefix="FIN")
    doc_type = await seed_type(session, tuple_store, category=category, prefix="INV", rules=[READ_RULE])
    await create_role_with_member(session, tuple_store, guard_name="finance-clerk", user="alice")

    await taxonomy_for(tuple_store).update_type(
        session,
        doc_type.uuid,
        DocumentTypePayload(
            name="Invoices", prefix="INVX", document_category_id=category.id, role_has_rules=[READ_RULE]
        ),
    )

    access = AccessDecisionService(tuple_store)
    assert await _catalog_scopes(session) == [("finance-clerk", "read", "FIN", "INVX")]
    assert await _grant_scopes(session) == [("finance-clerk", "read", "FIN", "INVX")]
    assert access.check("alice", "document", "read", "FIN", "INV") is False
    assert access.check("alice", "document", "read", "FIN", "INVX") is True


@pytest.mark.asyncio
async def test_update_converges_on_the_desired_rule_set(session, tuple_store) -> None:
    category = await seed_category(session, tuple_store, prefix="FIN")
    doc_type = await seed_type(
        session,
        tuple_store,
        category=category,
        prefix="INV",
        rules=[READ_RULE, {"role_guard_name": "auditor", "action": ["read", "draft"]}],
    )

    desired = [
        {"role_guard_name": "auditor", "action": ["draft"]},
        {"role_guard_name": "manager", "action": ["read"]},
    ]
    result = await taxonomy_for(tuple_store).update_type(
        session,
        doc_type.uuid,
        DocumentTypePayload(name="Invoices", prefix="INV", document_category_id=category.id, role_has_rules=desired),
    )

    expected = {("auditor", "draft", "FIN", "INV"), ("manager", "read", "FIN", "INV")}
    assert len(result.rules) == 2
    assert set(await _catalog_scopes(session)) == expected
    assert set(await _grant_scopes(session)) == expected


@pytest.mark.asyncio
async def test_moving_a_type_purges_old_scope_tuples(session, tuple_store) -> None:
    finance = await seed_category(session, tuple_store, prefix="FIN")
    legal = await seed_category(session, tuple_store, prefix="LEG")
    doc_type = await seed_type(session, tuple_store, category=finance, prefix="INV", rules=[READ_RULE])
    # A tuple with no catalog row under the old scope.
    await tuple_store.add_grant(session, "auditor", "document", "read", "FIN", "INV")
    await tuple_store.save(session)

    await taxonomy_for(tuple_store).update_type(
        session,
        doc_type.uuid,
        DocumentTypePayload(name="Invoices", prefix="INV", document_category_id=legal.id, role_has_rules=[READ_RULE]),
    )

    assert await _grant_scopes(session) == [("finance-clerk", "read", "LEG", "INV")]
    assert await _catalog_scopes(session) == [("finance-clerk", "read", "LEG", "INV")]


@pytest.mark.asyncio
async def test_category_rename_rescopes_category_and_type_rules(session, tuple_store) -> None:
    category = await seed_category(
        session, tuple_store, prefix="FIN", rules=[{"role_guard_name": "finance-lead", "action": ["read"]}]
    )
    await seed_type(session, tuple_store, category=category, prefix="INV", rules=[READ_RULE])

    await taxonomy_for(tuple_store).update_category(
        session,
        category.uuid,
        CategoryPayload(
            name="Finance",
            prefix="FINX",
            role_has_rules=[{"role_guard_name": "finance-lead", "action": ["read"]}],
        ),
    )

    expected = {("finance-lead", "read", "FINX", "none"), ("finance-clerk", "read", "FINX", "INV")}
    assert set(await _catalog_scopes(session)) == expected
    assert set(await _grant_scopes(session)) == expected
    assert tuple_store.enforce("finance-clerk", "document", "read", "FIN", "INV") is False


@pytest.mark.asyncio
async def test_duplicate_prefix_rolls_back_rules(session, tuple_store) -> None:
    await seed_category(session, tuple_store, prefix="FIN")
    with pytest.raises(ConflictError):
        await taxonomy_for(tuple_store).create_category(
            session,
            CategoryPayload(name="Other", prefix="FIN", role_has_rules=[READ_RULE]),
        )
    assert await _catalog_scopes(session) == []
    assert await _grant_scopes(session) == []


@pytest.mark.asyncio
async def test_soft_deleted_category_keeps_rules_and_blocks_new_types(session, tuple_store) -> None:
    category = await seed_category(
        session, tuple_store, prefix="FIN", rules=[{"role_guard_name": "finance-lead", "action": ["read"]}]
    )
    category_id = category.id
    taxonomy = taxonomy_for(tuple_store)
    await taxonomy.delete_category(session, category.uuid)

    assert tuple_store.enforce("finance-lead", "document", "read", "FIN") is True
    assert await taxonomy.list_categories(session) == []
    with pytest.raises(NotFoundError):
        await taxonomy.create_type(
            session, DocumentTypePayload(name="Invoices", prefix="INV", document_category_id=category_id)
        )
    # The prefix stays reserved after a soft delete.
    with pytest.raises(ConflictError):
        await taxonomy.create_category(session, CategoryPayload(name="Again", prefix="FIN"))


@pytest.mark.asyncio
async def test_list_types_filters_by_category(session, tuple_store) -> None:
    finance = await seed_category(session, tuple_store, prefix="FIN")
    legal = await seed_category(session, tuple_store, prefix="LEG")
    await seed_type(session, tuple_store, category=finance, prefix="INV", rules=[READ_RULE])
    await seed_type(session, tuple_store, category=legal, prefix="CON")

    entries = await taxonomy_for(tuple_store).list_types(session, category_id=finance.id)
    assert [(entry.category_prefix, entry.doc_type.prefix) for entry in entries] == [("FIN", "INV")]
    assert [rule.action for rule in entries[0].rules] == ["read"]
