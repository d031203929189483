from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.apps.api.deps import Principal, get_catalog, get_db, require_permission
from docgate.apps.api.errors import DEFAULT_ERROR_RESPONSES
from docgate.apps.api.response import success_response
from docgate.domain.models import RoleHasRule
from docgate.domain.schemas import PermissionToggle, RuleEntry
from docgate.domain.scope import RESOURCE_RULES
from docgate.services.catalog import PolicyCatalog


router = APIRouter(prefix="/rules", tags=["rules"], responses=DEFAULT_ERROR_RESPONSES)


class CreateRulesRequest(BaseModel):
    role_guard_name: str = Field(min_length=1)
    role_name: str | None = None
    rules: list[RuleEntry]

    model_config = {"extra": "forbid"}


class ActivateRulesRequest(BaseModel):
    role_guard_name: str = Field(min_length=1)
    permissions: list[PermissionToggle]

    model_config = {"extra": "forbid"}


class UpdateRuleRequest(BaseModel):
    role_guard_name: str = Field(min_length=1)
    rule_policy: str = Field(min_length=1)
    action: str = Field(min_length=1)

    model_config = {"extra": "forbid"}


class AdminRuleRequest(BaseModel):
    rule_policy: str = Field(min_length=1)
    action: str = Field(min_length=1)

    model_config = {"extra": "forbid"}


class RuleResponse(BaseModel):
    uuid: str
    role_guard_name: str
    rule_policy: str
    action: str
    category: str
    type: str
    active: bool | None = None


def _to_response(rule: RoleHasRule, *, active: bool | None = None) -> RuleResponse:
    return RuleResponse(
        uuid=rule.uuid,
        role_guard_name=rule.role_guard_name,
        rule_policy=rule.rule_policy,
        action=rule.action,
        category=rule.category,
        type=rule.type_,
        active=active,
    )


@router.get("")
async def list_rules(
    request: Request,
    role: str = Query(min_length=1),
    _principal: Principal = Depends(require_permission(RESOURCE_RULES, "read")),
    db: AsyncSession = Depends(get_db),
    catalog: PolicyCatalog = Depends(get_catalog),
) -> dict:
    views = await catalog.list_rules_by_role(db, role)
    data = [_to_response(view.rule, active=view.active).model_dump() for view in views]
    return success_response(request=request, data=data)


@router.post("", status_code=201)
async def create_rules(
    request: Request,
    payload: CreateRulesRequest,
    _principal: Principal = Depends(require_permission(RESOURCE_RULES, "create")),
    db: AsyncSession = Depends(get_db),
    catalog: PolicyCatalog = Depends(get_catalog),
) -> dict:
    # Existing triples are skipped, so only newly created rows are returned.
    created = await catalog.create_catalog_entries(
        db, payload.role_guard_name, payload.rules, role_name=payload.role_name
    )
    return success_response(request=request, data=[_to_response(rule).model_dump() for rule in created])


@router.post("/activate")
async def activate_rules(
    request: Request,
    payload: ActivateRulesRequest,
    _principal: Principal = Depends(require_permission(RESOURCE_RULES, "update")),
    db: AsyncSession = Depends(get_db),
    catalog: PolicyCatalog = Depends(get_catalog),
) -> dict:
    result = await catalog.bulk_activate(db, payload.role_guard_name, payload.permissions)
    data = {
        "activated": [{"rule_policy": policy, "action": action} for policy, action in result.activated],
        "deactivated": [{"rule_policy": policy, "action": action} for policy, action in result.deactivated],
    }
    return success_response(request=request, data=data)


@router.post("/admin", status_code=201)
async def create_admin_rule(
    request: Request,
    payload: AdminRuleRequest,
    _principal: Principal = Depends(require_permission(RESOURCE_RULES, "create")),
    db: AsyncSession = Depends(get_db),
    catalog: PolicyCatalog = Depends(get_catalog),
) -> dict:
    rule = await catalog.ensure_admin_rule(db, payload.rule_policy, payload.action)
    return success_response(request=request, data=_to_response(rule, active=True).model_dump())


@router.get("/policies")
async def list_policies(
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_RULES, "read")),
    db: AsyncSession = Depends(get_db),
    catalog: PolicyCatalog = Depends(get_catalog),
) -> dict:
    return success_response(request=request, data=await catalog.list_distinct_policies(db))


@router.get("/actions")
async def list_actions(
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_RULES, "read")),
    db: AsyncSession = Depends(get_db),
    catalog: PolicyCatalog = Depends(get_catalog),
) -> dict:
    return success_response(request=request, data=await catalog.list_distinct_actions(db))


@router.get("/{rule_uuid}")
async def get_rule(
    rule_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_RULES, "read")),
    db: AsyncSession = Depends(get_db),
    catalog: PolicyCatalog = Depends(get_catalog),
) -> dict:
    rule = await catalog.get_rule(db, rule_uuid)
    return success_response(request=request, data=_to_response(rule).model_dump())


@router.put("/{rule_uuid}")
async def update_rule(
    rule_uuid: str,
    request: Request,
    payload: UpdateRuleRequest,
    _principal: Principal = Depends(require_permission(RESOURCE_RULES, "update")),
    db: AsyncSession = Depends(get_db),
    catalog: PolicyCatalog = Depends(get_catalog),
) -> dict:
    rule = await catalog.update_rule(
        db,
        rule_uuid,
        role_guard_name=payload.role_guard_name,
        rule_policy=payload.rule_policy,
        action=payload.action,
    )
    return success_response(request=request, data=_to_response(rule).model_dump())


@router.delete("/{rule_uuid}")
async def delete_rule(
    rule_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_RULES, "delete")),
    db: AsyncSession = Depends(get_db),
    catalog: PolicyCatalog = Depends(get_catalog),
) -> dict:
    await catalog.delete_rule(db, rule_uuid)
    return success_response(request=request, data={"uuid": rule_uuid, "deleted": True})
