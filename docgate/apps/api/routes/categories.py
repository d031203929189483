from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.apps.api.deps import Principal, get_db, get_taxonomy, require_permission
from docgate.apps.api.errors import DEFAULT_ERROR_RESPONSES
from docgate.apps.api.response import success_response
from docgate.domain.models import RoleHasRule
from docgate.domain.schemas import CategoryPayload
from docgate.domain.scope import RESOURCE_CATEGORY
from docgate.services.taxonomy import CategoryWithRules, DocumentTaxonomy


router = APIRouter(prefix="/category-documents", tags=["taxonomy"], responses=DEFAULT_ERROR_RESPONSES)


def scoped_rule_view(rule: RoleHasRule) -> dict[str, str]:
    return {
        "uuid": rule.uuid,
        "role_guard_name": rule.role_guard_name,
        "rule_policy": rule.rule_policy,
        "action": rule.action,
    }


def _to_response(entry: CategoryWithRules) -> dict:
    category = entry.category
    return {
        "id": category.id,
        "uuid": category.uuid,
        "name": category.name,
        "prefix": category.prefix,
        "role_has_rules": [scoped_rule_view(rule) for rule in entry.rules],
    }


@router.get("")
async def list_categories(
    request: Request,
    search: str | None = Query(default=None),
    _principal: Principal = Depends(require_permission(RESOURCE_CATEGORY, "read")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    entries = await taxonomy.list_categories(db, search=search)
    return success_response(request=request, data=[_to_response(entry) for entry in entries])


@router.post("", status_code=201)
async def create_category(
    request: Request,
    payload: CategoryPayload,
    _principal: Principal = Depends(require_permission(RESOURCE_CATEGORY, "create")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    entry = await taxonomy.create_category(db, payload)
    return success_response(request=request, data=_to_response(entry))


@router.get("/{category_uuid}")
async def get_category(
    category_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_CATEGORY, "read")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    entry = await taxonomy.get_category(db, category_uuid)
    return success_response(request=request, data=_to_response(entry))


@router.put("/{category_uuid}")
async def update_category(
    category_uuid: str,
    request: Request,
    payload: CategoryPayload,
    _principal: Principal = Depends(require_permission(RESOURCE_CATEGORY, "update")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    # The payload's rules replace the category-level rule set.
    entry = await taxonomy.update_category(db, category_uuid, payload)
    return success_response(request=request, data=_to_response(entry))


@router.delete("/{category_uuid}")
async def delete_category(
    category_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_CATEGORY, "delete")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    await taxonomy.delete_category(db, category_uuid)
    return success_response(request=request, data={"uuid": category_uuid, "deleted": True})
