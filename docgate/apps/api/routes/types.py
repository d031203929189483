from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.apps.api.deps import Principal, get_db, get_taxonomy, require_permission
from docgate.apps.api.errors import DEFAULT_ERROR_RESPONSES
from docgate.apps.api.response import success_response
from docgate.apps.api.routes.categories import scoped_rule_view
from docgate.domain.schemas import DocumentTypePayload
from docgate.domain.scope import RESOURCE_TYPE
from docgate.services.taxonomy import DocumentTaxonomy, TypeWithRules


router = APIRouter(prefix="/document-types", tags=["taxonomy"], responses=DEFAULT_ERROR_RESPONSES)


def _to_response(entry: TypeWithRules) -> dict:
    doc_type = entry.doc_type
    return {
        "id": doc_type.id,
        "uuid": doc_type.uuid,
        "name": doc_type.name,
        "prefix": doc_type.prefix,
        "document_category_id": doc_type.document_category_id,
        "category_prefix": entry.category_prefix,
        "role_has_rules": [scoped_rule_view(rule) for rule in entry.rules],
    }


@router.get("")
async def list_types(
    request: Request,
    search: str | None = Query(default=None),
    category_id: int | None = Query(default=None),
    _principal: Principal = Depends(require_permission(RESOURCE_TYPE, "read")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    entries = await taxonomy.list_types(db, search=search, category_id=category_id)
    return success_response(request=request, data=[_to_response(entry) for entry in entries])


@router.post("", status_code=201)
async def create_type(
    request: Request,
    payload: DocumentTypePayload,
    _principal: Principal = Depends(require_permission(RESOURCE_TYPE, "create")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    entry = await taxonomy.create_type(db, payload)
    return success_response(request=request, data=_to_response(entry))


@router.get("/{type_uuid}")
async def get_type(
    type_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_TYPE, "read")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    entry = await taxonomy.get_type(db, type_uuid)
    return success_response(request=request, data=_to_response(entry))


@router.put("/{type_uuid}")
async def update_type(
    type_uuid: str,
    request: Request,
    payload: DocumentTypePayload,
    _principal: Principal = Depends(require_permission(RESOURCE_TYPE, "update")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    entry = await taxonomy.update_type(db, type_uuid, payload)
    return success_response(request=request, data=_to_response(entry))


@router.delete("/{type_uuid}")
async def delete_type(
    type_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_TYPE, "delete")),
    db: AsyncSession = Depends(get_db),
    taxonomy: DocumentTaxonomy = Depends(get_taxonomy),
) -> dict:
    await taxonomy.delete_type(db, type_uuid)
    return success_response(request=request, data={"uuid": type_uuid, "deleted": True})
