from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.apps.api.deps import Principal, get_db, require_permission
from docgate.apps.api.errors import DEFAULT_ERROR_RESPONSES
from docgate.apps.api.response import success_response
from docgate.domain.models import StatusDocument
from docgate.domain.schemas import StatusDocumentPayload
from docgate.domain.scope import RESOURCE_STATUS
from docgate.services import statuses as status_service


router = APIRouter(prefix="/status-documents", tags=["statuses"], responses=DEFAULT_ERROR_RESPONSES)


def _to_response(status: StatusDocument) -> dict:
    return {"id": status.id, "uuid": status.uuid, "name": status.name}


@router.get("")
async def list_statuses(
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_STATUS, "read")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    statuses = await status_service.list_statuses(db)
    return success_response(request=request, data=[_to_response(status) for status in statuses])


@router.post("", status_code=201)
async def create_status(
    request: Request,
    payload: StatusDocumentPayload,
    _principal: Principal = Depends(require_permission(RESOURCE_STATUS, "create")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    status = await status_service.create_status(db, payload)
    return success_response(request=request, data=_to_response(status))


@router.post("/seed")
async def seed_statuses(
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_STATUS, "create")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    statuses = await status_service.seed_default_statuses(db)
    return success_response(request=request, data=[_to_response(status) for status in statuses])


@router.get("/{status_uuid}")
async def get_status(
    status_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_STATUS, "read")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    status = await status_service.get_status(db, status_uuid)
    return success_response(request=request, data=_to_response(status))


@router.put("/{status_uuid}")
async def update_status(
    status_uuid: str,
    request: Request,
    payload: StatusDocumentPayload,
    _principal: Principal = Depends(require_permission(RESOURCE_STATUS, "update")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    status = await status_service.update_status(db, status_uuid, payload)
    return success_response(request=request, data=_to_response(status))


@router.delete("/{status_uuid}")
async def delete_status(
    status_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_STATUS, "delete")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await status_service.delete_status(db, status_uuid)
    return success_response(request=request, data={"uuid": status_uuid, "deleted": True})
