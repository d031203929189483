from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from docgate.apps.api.deps import Principal, get_db, get_roles, require_permission
from docgate.apps.api.errors import DEFAULT_ERROR_RESPONSES
from docgate.apps.api.response import success_response
from docgate.domain.models import Role
from docgate.domain.scope import RESOURCE_ROLES
from docgate.services.roles import RoleRegistry


router = APIRouter(prefix="/roles", tags=["roles"], responses=DEFAULT_ERROR_RESPONSES)


class RoleRequest(BaseModel):
    name: str = Field(min_length=1)
    guard_name: str = Field(min_length=1)

    model_config = {"extra": "forbid"}


class RoleAssignmentRequest(BaseModel):
    user: str = Field(min_length=1)

    model_config = {"extra": "forbid"}


class RoleResponse(BaseModel):
    uuid: str
    name: str
    guard_name: str
    created_at: str


def _to_response(role: Role) -> RoleResponse:
    return RoleResponse(
        uuid=role.uuid,
        name=role.name,
        guard_name=role.guard_name,
        created_at=role.created_at.isoformat(),
    )


@router.get("")
async def list_roles(
    request: Request,
    search: str | None = Query(default=None),
    _principal: Principal = Depends(require_permission(RESOURCE_ROLES, "read")),
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_roles),
) -> dict:
    roles = await registry.list_roles(db, search=search)
    return success_response(request=request, data=[_to_response(role).model_dump() for role in roles])


@router.post("", status_code=201)
async def create_role(
    request: Request,
    payload: RoleRequest,
    _principal: Principal = Depends(require_permission(RESOURCE_ROLES, "create")),
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_roles),
) -> dict:
    role = await registry.create_role(db, name=payload.name, guard_name=payload.guard_name)
    return success_response(request=request, data=_to_response(role).model_dump())


@router.get("/{role_uuid}")
async def get_role(
    role_uuid: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_ROLES, "read")),
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_roles),
) -> dict:
    # Include the role's grant tuples so admins see what is actually enforced.
    result = await registry.get_role(db, role_uuid)
    data = _to_response(result.role).model_dump()
    data["rules"] = [policy.as_dict() for policy in result.grants]
    data["members"] = await registry.members(db, result.role.guard_name)
    return success_response(request=request, data=data)


@router.put("/{role_uuid}")
async def update_role(
    role_uuid: str,
    request: Request,
    payload: RoleRequest,
    _principal: Principal = Depends(require_permission(RESOURCE_ROLES, "update")),
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_roles),
) -> dict:
    role = await registry.update_role(db, role_uuid, name=payload.name, guard_name=payload.guard_name)
    return success_response(request=request, data=_to_response(role).model_dump())


@router.delete("/{role_uuid}")
async def delete_role(
    role_uuid: str,
    request: Request,
    cascade: bool = Query(default=False),
    _principal: Principal = Depends(require_permission(RESOURCE_ROLES, "delete")),
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_roles),
) -> dict:
    await registry.delete_role(db, role_uuid, cascade=cascade)
    return success_response(request=request, data={"uuid": role_uuid, "deleted": True, "cascade": cascade})


@router.post("/{guard_name}/members", status_code=201)
async def assign_role(
    guard_name: str,
    request: Request,
    payload: RoleAssignmentRequest,
    _principal: Principal = Depends(require_permission(RESOURCE_ROLES, "update")),
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_roles),
) -> dict:
    await registry.assign_role(db, user=payload.user, role_guard_name=guard_name)
    return success_response(request=request, data={"user": payload.user, "role": guard_name})


@router.delete("/{guard_name}/members/{user}")
async def revoke_role(
    guard_name: str,
    user: str,
    request: Request,
    _principal: Principal = Depends(require_permission(RESOURCE_ROLES, "update")),
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_roles),
) -> dict:
    await registry.revoke_role(db, user=user, role_guard_name=guard_name)
    return success_response(request=request, data={"user": user, "role": guard_name, "revoked": True})
